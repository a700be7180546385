from convostack.tree.ancestry import AncestryResolver
from convostack.tree.drag import DragSession, DragState, DropIntent
from convostack.tree.errors import (
    CyclicMoveError,
    FolderLimitError,
    FolderNotFound,
    FolderTreeError,
    MissingTargetError,
    MoveError,
    RemoteFailure,
    SelfParentError,
    TreeIntegrityError,
    ValidationError,
)
from convostack.tree.expansion import ExpansionState
from convostack.tree.graph import Folder, FolderGraph
from convostack.tree.moves import MoveValidator
from convostack.tree.mutations import Mutation, MutationCoordinator, MutationState
from convostack.tree.notifications import Notification, Notifier
from convostack.tree.remote import DeletePolicy, FolderKind, FolderStore
from convostack.tree.store import FolderTree
from convostack.tree.views import Projection, TreeNode, TreeRow, ViewProjector

__all__ = [
    "AncestryResolver",
    "CyclicMoveError",
    "DeletePolicy",
    "DragSession",
    "DragState",
    "DropIntent",
    "ExpansionState",
    "Folder",
    "FolderGraph",
    "FolderKind",
    "FolderLimitError",
    "FolderNotFound",
    "FolderStore",
    "FolderTree",
    "FolderTreeError",
    "MissingTargetError",
    "MoveError",
    "MoveValidator",
    "Mutation",
    "MutationCoordinator",
    "MutationState",
    "Notification",
    "Notifier",
    "Projection",
    "RemoteFailure",
    "SelfParentError",
    "TreeIntegrityError",
    "TreeNode",
    "TreeRow",
    "ValidationError",
    "ViewProjector",
]
