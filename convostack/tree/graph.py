from __future__ import annotations

import locale
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable


@dataclass(frozen=True)
class Folder:
    id: str
    name: str
    parent_id: str | None = None
    item_count: int = 0
    created_at: datetime | None = None
    pending: bool = False

    def as_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "item_count": self.item_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "pending": self.pending,
        }


def folder_sort_key(folder: Folder) -> tuple[str, str]:
    """Case-insensitive order under the process LC_COLLATE locale.

    ``create_app`` sets that locale from ``FOLDER_COLLATION_LOCALE``; under
    the default C locale this is plain code-point order.
    """
    name = (folder.name or "").casefold()
    try:
        collated = locale.strxfrm(name)
    except ValueError:
        collated = name
    return collated, folder.id


class FolderGraph:
    """Canonical id -> Folder mapping for one owner.

    Only the mutation coordinator (and a wholesale ``load`` after a fetch)
    writes to the graph. The parent -> children index is rebuilt lazily
    after any write.
    """

    def __init__(self, folders: Iterable[Folder] = ()):
        self._by_id: dict[str, Folder] = {}
        self._children: dict[str | None, list[Folder]] | None = None
        self.load(folders)

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, folder_id) -> bool:
        return folder_id in self._by_id

    def __iter__(self):
        return iter(self.all())

    def get(self, folder_id: str | None) -> Folder | None:
        if folder_id is None:
            return None
        return self._by_id.get(folder_id)

    def all(self) -> list[Folder]:
        return sorted(self._by_id.values(), key=folder_sort_key)

    def ids(self) -> set[str]:
        return set(self._by_id)

    def children(self, parent_id: str | None) -> list[Folder]:
        return list(self._index().get(parent_id, []))

    def roots(self) -> list[Folder]:
        """Root-level folders plus folders whose parent no longer exists."""
        rows = [
            folder
            for folder in self._by_id.values()
            if folder.parent_id is None or folder.parent_id not in self._by_id
        ]
        rows.sort(key=folder_sort_key)
        return rows

    def snapshot(self) -> dict[str, Folder]:
        return dict(self._by_id)

    def _index(self) -> dict[str | None, list[Folder]]:
        if self._children is None:
            children_by_parent: dict[str | None, list[Folder]] = {}
            for folder in self._by_id.values():
                children_by_parent.setdefault(folder.parent_id, []).append(folder)
            for rows in children_by_parent.values():
                rows.sort(key=folder_sort_key)
            self._children = children_by_parent
        return self._children

    def _invalidate(self) -> None:
        self._children = None

    # Writes below are reserved for MutationCoordinator and FolderTree.refresh.

    def load(self, folders: Iterable[Folder]) -> None:
        by_id: dict[str, Folder] = {}
        for folder in folders:
            if folder.id in by_id:
                raise ValueError(f"duplicate folder id {folder.id!r}")
            by_id[folder.id] = folder
        self._by_id = by_id
        self._invalidate()

    def insert(self, folder: Folder) -> None:
        if folder.id in self._by_id:
            raise ValueError(f"duplicate folder id {folder.id!r}")
        self._by_id[folder.id] = folder
        self._invalidate()

    def update(self, folder_id: str, **changes) -> Folder:
        updated = replace(self._by_id[folder_id], **changes)
        self._by_id[folder_id] = updated
        self._invalidate()
        return updated

    def remove(self, folder_id: str) -> Folder:
        folder = self._by_id.pop(folder_id)
        self._invalidate()
        return folder

    def restore(self, folders: Iterable[Folder]) -> None:
        for folder in folders:
            self._by_id[folder.id] = folder
        self._invalidate()

    def replace_id(self, old_id: str, folder: Folder) -> None:
        """Swap a provisional record for the server's, re-pointing its children."""
        self._by_id.pop(old_id, None)
        self._by_id[folder.id] = folder
        for child_id, child in list(self._by_id.items()):
            if child.parent_id == old_id:
                self._by_id[child_id] = replace(child, parent_id=folder.id)
        self._invalidate()
