from __future__ import annotations

from convostack.tree.ancestry import AncestryResolver
from convostack.tree.graph import FolderGraph


class ExpansionState:
    """Which folders show their children in the current view.

    Client-local state keyed by folder id; it is never sent to the store.
    """

    def __init__(self, resolver: AncestryResolver, selected_id: str | None = None):
        self.resolver = resolver
        self._expanded: set[str] = set()
        self.reset(selected_id)

    @property
    def expanded(self) -> frozenset[str]:
        return frozenset(self._expanded)

    def is_expanded(self, folder_id: str) -> bool:
        return folder_id in self._expanded

    def toggle(self, folder_id: str) -> bool:
        if folder_id in self._expanded:
            self._expanded.discard(folder_id)
            return False
        self._expanded.add(folder_id)
        return True

    def expand(self, folder_id: str) -> None:
        self._expanded.add(folder_id)

    def collapse(self, folder_id: str) -> None:
        self._expanded.discard(folder_id)

    def expand_path(self, folder_id: str) -> None:
        """Expand the folder and every ancestor so it is on screen."""
        self._expanded.update(self.resolver.ancestor_chain(folder_id))
        self._expanded.add(folder_id)

    def reset(self, selected_id: str | None = None) -> None:
        self._expanded = set()
        if selected_id is not None and selected_id in self.resolver.graph:
            self.expand_path(selected_id)

    def prune(self, graph: FolderGraph | None = None) -> None:
        graph = graph or self.resolver.graph
        self._expanded = {folder_id for folder_id in self._expanded if folder_id in graph}
