from __future__ import annotations

from convostack.tree.ancestry import AncestryResolver
from convostack.tree.errors import (
    CyclicMoveError,
    MissingTargetError,
    MoveError,
    SelfParentError,
)

SELF_PARENT_MESSAGE = "A folder cannot be its own parent"
CYCLIC_MOVE_MESSAGE = "Cannot move a folder into its own subfolder"
MISSING_TARGET_MESSAGE = "Target folder was not found"


class MoveValidator:
    """Decides whether reparenting a folder keeps the tree acyclic.

    Pure: it only reads the graph, so the UI can call it on every drag-over.
    """

    def __init__(self, resolver: AncestryResolver):
        self.resolver = resolver

    @property
    def graph(self):
        return self.resolver.graph

    def can_move(self, folder_id: str, target_parent_id: str | None) -> MoveError | None:
        if target_parent_id is not None and target_parent_id not in self.graph:
            return MissingTargetError(
                MISSING_TARGET_MESSAGE, folder_id, target_parent_id
            )
        if target_parent_id == folder_id:
            return SelfParentError(SELF_PARENT_MESSAGE, folder_id, target_parent_id)
        if self.resolver.is_self_or_descendant(folder_id, target_parent_id):
            return CyclicMoveError(CYCLIC_MOVE_MESSAGE, folder_id, target_parent_id)
        return None

    def ensure_can_move(self, folder_id: str, target_parent_id: str | None) -> None:
        error = self.can_move(folder_id, target_parent_id)
        if error is not None:
            raise error

    def disabled_targets(self, folder_id: str) -> set[str]:
        return {folder_id} | self.resolver.descendants(folder_id)
