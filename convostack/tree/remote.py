from __future__ import annotations

import enum
from abc import ABC, abstractmethod

from convostack.tree.graph import Folder


class DeletePolicy(str, enum.Enum):
    # Subfolders and the items filed in them are removed with the folder.
    CASCADE = "cascade"
    # Subfolders move up to the deleted folder's parent.
    REPARENT = "reparent"

    @classmethod
    def parse(cls, value) -> "DeletePolicy":
        if isinstance(value, cls):
            return value
        try:
            return cls((value or cls.CASCADE.value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown delete policy {value!r}") from None


class FolderKind(str, enum.Enum):
    # Folders that file bookmarked chats.
    BOOKMARK = "bookmark"
    # Folders that file saved prompts.
    PROMPT = "prompt"

    @classmethod
    def parse(cls, value) -> "FolderKind":
        if isinstance(value, cls):
            return value
        try:
            return cls((value or cls.BOOKMARK.value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown folder kind {value!r}") from None


class FolderStore(ABC):
    """Remote persistence the folder tree writes through.

    Every call is asynchronous and may fail; the coordinator treats any
    exception as a failed mutation. A store serves a single folder kind.
    """

    kind: FolderKind = FolderKind.BOOKMARK

    @abstractmethod
    async def list_folders(self, owner_id: str) -> list[Folder]:
        ...

    @abstractmethod
    async def create_folder(self, parent_id: str | None, name: str) -> Folder:
        ...

    @abstractmethod
    async def rename_folder(self, folder_id: str, name: str) -> None:
        ...

    @abstractmethod
    async def move_folder(self, folder_id: str, new_parent_id: str | None) -> None:
        ...

    @abstractmethod
    async def delete_folder(
        self, folder_id: str, policy: DeletePolicy = DeletePolicy.CASCADE
    ) -> None:
        ...
