from __future__ import annotations

import logging

from convostack.tree.errors import TreeIntegrityError
from convostack.tree.graph import FolderGraph

logger = logging.getLogger(__name__)


class AncestryResolver:
    """Cycle-safe walks over a FolderGraph.

    Every projection, the move validator and the expansion state go through
    these walks, so a corrupted parent chain is detected in one place.
    """

    def __init__(self, graph: FolderGraph):
        self.graph = graph

    def ancestor_chain(self, folder_id: str, strict: bool = False) -> list[str]:
        """Ids of the folder's ancestors, nearest first.

        A cycle raises TreeIntegrityError. A parent id that does not resolve
        ends the chain (logged), or raises when ``strict`` is set.
        """
        folder = self.graph.get(folder_id)
        if folder is None:
            return []

        chain: list[str] = []
        seen = {folder_id}
        limit = len(self.graph)
        parent_id = folder.parent_id
        while parent_id is not None:
            if parent_id in seen or len(chain) >= limit:
                raise TreeIntegrityError(
                    f"cycle in ancestry of folder {folder_id!r} at {parent_id!r}",
                    folder_id=folder_id,
                )
            parent = self.graph.get(parent_id)
            if parent is None:
                if strict:
                    raise TreeIntegrityError(
                        f"ancestry of folder {folder_id!r} references "
                        f"missing parent {parent_id!r}",
                        folder_id=folder_id,
                    )
                logger.warning(
                    "Dangling parent %s in ancestry of folder %s", parent_id, folder_id
                )
                break
            seen.add(parent_id)
            chain.append(parent_id)
            parent_id = parent.parent_id
        return chain

    def descendants(self, folder_id: str) -> set[str]:
        found: set[str] = set()
        stack = [folder_id]
        while stack:
            current = stack.pop()
            for child in self.graph.children(current):
                if child.id == folder_id or child.id in found:
                    raise TreeIntegrityError(
                        f"cycle below folder {folder_id!r} at {child.id!r}",
                        folder_id=folder_id,
                    )
                found.add(child.id)
                stack.append(child.id)
        return found

    def is_self_or_descendant(
        self, candidate_ancestor_id: str, subject_id: str | None
    ) -> bool:
        if subject_id is None:
            return False
        if subject_id == candidate_ancestor_id:
            return True
        return subject_id in self.descendants(candidate_ancestor_id)

    def siblings(self, folder_id: str) -> list[str]:
        folder = self.graph.get(folder_id)
        if folder is None:
            return []
        return [
            row.id for row in self.graph.children(folder.parent_id) if row.id != folder_id
        ]

    def path_names(self, folder_id: str) -> list[str]:
        """Breadcrumb labels from the root down to the folder itself."""
        folder = self.graph.get(folder_id)
        if folder is None:
            return []
        names = [(folder.name or "").strip() or "Untitled Folder"]
        for ancestor_id in self.ancestor_chain(folder_id):
            ancestor = self.graph.get(ancestor_id)
            names.append((ancestor.name or "").strip() or "Untitled Folder")
        names.reverse()
        return names

    def subtree_item_count(self, folder_id: str) -> int:
        folder = self.graph.get(folder_id)
        if folder is None:
            return 0
        total = folder.item_count
        for descendant_id in self.descendants(folder_id):
            total += self.graph.get(descendant_id).item_count
        return total
