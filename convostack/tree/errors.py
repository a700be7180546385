from __future__ import annotations


class FolderTreeError(Exception):
    """Base class for every error raised by the folder tree engine."""


class ValidationError(FolderTreeError):
    pass


class FolderNotFound(FolderTreeError):
    def __init__(self, folder_id: str | None):
        super().__init__(f"folder {folder_id!r} not found")
        self.folder_id = folder_id


class MoveError(FolderTreeError):
    def __init__(self, message: str, folder_id: str, target_parent_id: str | None):
        super().__init__(message)
        self.folder_id = folder_id
        self.target_parent_id = target_parent_id


class MissingTargetError(MoveError):
    pass


class CyclicMoveError(MoveError):
    pass


class SelfParentError(CyclicMoveError):
    pass


class RemoteFailure(FolderTreeError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class FolderLimitError(RemoteFailure):
    pass


class TreeIntegrityError(FolderTreeError):
    """Parent references form a cycle or point at a missing folder."""

    def __init__(self, message: str, folder_id: str | None = None):
        super().__init__(message)
        self.folder_id = folder_id
