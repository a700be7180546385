from __future__ import annotations

import enum
from dataclasses import dataclass

from convostack.tree.moves import MoveValidator


class DragState(str, enum.Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    HOVERING = "hovering"
    DROPPED = "dropped"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class DropIntent:
    folder_id: str
    target_parent_id: str | None


class DragSession:
    """Client-side drag and drop of one folder.

    idle -> dragging -> hovering -> dropped | cancelled. Nothing here talks to
    the store; a successful ``drop`` hands back the move for the caller to
    submit.
    """

    def __init__(self, validator: MoveValidator):
        self.validator = validator
        self.state = DragState.IDLE
        self.folder_id: str | None = None
        self.target_id: str | None = None
        self._disabled: frozenset[str] = frozenset()

    @property
    def active(self) -> bool:
        return self.state in {DragState.DRAGGING, DragState.HOVERING}

    @property
    def disabled_targets(self) -> frozenset[str]:
        return self._disabled

    def start(self, folder_id: str) -> None:
        if folder_id not in self.validator.graph:
            raise KeyError(folder_id)
        self.folder_id = folder_id
        self.target_id = None
        self._disabled = frozenset(self.validator.disabled_targets(folder_id))
        self.state = DragState.DRAGGING

    def hover(self, target_id: str | None) -> bool:
        """Track the drop target under the pointer; False when it is not a legal drop."""
        if not self.active:
            return False
        if self.validator.can_move(self.folder_id, target_id) is not None:
            self.target_id = None
            self.state = DragState.DRAGGING
            return False
        self.target_id = target_id
        self.state = DragState.HOVERING
        return True

    def leave(self) -> None:
        if self.state == DragState.HOVERING:
            self.target_id = None
            self.state = DragState.DRAGGING

    def drop(self) -> DropIntent | None:
        if self.state != DragState.HOVERING:
            self.cancel()
            return None
        intent = DropIntent(folder_id=self.folder_id, target_parent_id=self.target_id)
        self.state = DragState.DROPPED
        self._clear()
        return intent

    def cancel(self) -> None:
        if self.state != DragState.IDLE:
            self.state = DragState.CANCELLED
        self._clear()

    def _clear(self) -> None:
        self.folder_id = None
        self.target_id = None
        self._disabled = frozenset()
