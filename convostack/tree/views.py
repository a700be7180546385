from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator

from convostack.tree.ancestry import AncestryResolver
from convostack.tree.errors import TreeIntegrityError
from convostack.tree.graph import Folder

logger = logging.getLogger(__name__)

MODE_FULL = "full"
MODE_SEARCH = "search"
MODE_SCOPED = "scoped"

PROJECTION_MODES = {MODE_FULL, MODE_SEARCH, MODE_SCOPED}


@dataclass
class TreeNode:
    folder: Folder
    depth: int
    children: list[TreeNode] = field(default_factory=list)
    matched: bool = False

    def as_dict(self):
        payload = self.folder.as_dict()
        payload.update(
            {
                "depth": self.depth,
                "matched": self.matched,
                "children": [child.as_dict() for child in self.children],
            }
        )
        return payload


@dataclass
class TreeRow:
    folder: Folder
    depth: int
    has_children: bool
    expanded: bool
    matched: bool = False


@dataclass
class Projection:
    mode: str
    roots: list[TreeNode]
    visible_ids: frozenset[str]
    matched_ids: frozenset[str] = frozenset()
    query: str | None = None
    selected_id: str | None = None
    integrity_errors: list[str] = field(default_factory=list)

    def walk(self) -> Iterator[TreeNode]:
        stack = list(reversed(self.roots))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def as_dict(self):
        return {
            "mode": self.mode,
            "query": self.query,
            "selected_id": self.selected_id,
            "items": [node.as_dict() for node in self.roots],
            "matched_ids": sorted(self.matched_ids),
            "integrity_errors": list(self.integrity_errors),
        }


class ViewProjector:
    """Builds the part of the folder tree a given view should render."""

    def __init__(self, resolver: AncestryResolver):
        self.resolver = resolver

    @property
    def graph(self):
        return self.resolver.graph

    def project(
        self,
        mode: str = MODE_FULL,
        query: str | None = None,
        selected_id: str | None = None,
    ) -> Projection:
        if mode == MODE_SEARCH:
            return self.search(query or "")
        if mode == MODE_SCOPED:
            return self.scoped(selected_id)
        if mode == MODE_FULL:
            return self.full()
        raise ValueError(f"unknown projection mode {mode!r}")

    def full(self) -> Projection:
        errors: list[str] = []
        roots, visited = self._build(None, frozenset())
        unreachable = self.graph.ids() - visited
        if unreachable:
            message = f"folders unreachable from the root: {sorted(unreachable)}"
            logger.error("Folder graph integrity: %s", message)
            errors.append(message)
        return Projection(
            mode=MODE_FULL,
            roots=roots,
            visible_ids=frozenset(visited),
            integrity_errors=errors,
        )

    def search(self, query: str) -> Projection:
        needle = (query or "").strip().casefold()
        if not needle:
            return self.full()

        errors: list[str] = []
        matched = {
            folder.id
            for folder in self.graph.all()
            if needle in (folder.name or "").casefold()
        }
        include = set()
        for folder_id in matched:
            try:
                chain = self.resolver.ancestor_chain(folder_id)
            except TreeIntegrityError as exc:
                logger.error("Skipping search match %s: %s", folder_id, exc)
                errors.append(str(exc))
                continue
            include.add(folder_id)
            include.update(chain)

        matched_ids = frozenset(matched & include)
        roots, visited = self._build(include, matched_ids)
        return Projection(
            mode=MODE_SEARCH,
            roots=roots,
            visible_ids=frozenset(visited),
            matched_ids=matched_ids,
            query=query,
            integrity_errors=errors,
        )

    def scoped(self, selected_id: str | None) -> Projection:
        selected = self.graph.get(selected_id)
        if selected is None:
            if selected_id is not None:
                logger.warning(
                    "Selected folder %s is not in the graph, showing the full tree",
                    selected_id,
                )
            return self.full()

        try:
            include = {selected.id}
            include.update(self.resolver.ancestor_chain(selected.id))
            include.update(self.resolver.descendants(selected.id))
        except TreeIntegrityError as exc:
            logger.error("Cannot scope the tree to %s: %s", selected.id, exc)
            projection = self.full()
            projection.integrity_errors.append(str(exc))
            return projection
        include.update(self.resolver.siblings(selected.id))

        roots, visited = self._build(include, frozenset())
        return Projection(
            mode=MODE_SCOPED,
            roots=roots,
            visible_ids=frozenset(visited),
            selected_id=selected.id,
        )

    def _build(
        self, include: set[str] | None, matched: frozenset[str]
    ) -> tuple[list[TreeNode], set[str]]:
        visited: set[str] = set()

        def build(folder: Folder, depth: int) -> TreeNode:
            visited.add(folder.id)
            node = TreeNode(folder=folder, depth=depth, matched=folder.id in matched)
            for child in self.graph.children(folder.id):
                if child.id in visited:
                    continue
                if include is not None and child.id not in include:
                    continue
                node.children.append(build(child, depth + 1))
            return node

        roots = []
        for folder in self.graph.roots():
            if include is not None and folder.id not in include:
                continue
            roots.append(build(folder, 0))
        return roots, visited

    def visible_rows(
        self, projection: Projection, expanded: set[str] | frozenset[str]
    ) -> list[TreeRow]:
        """Rows a tree widget shows: a node's children only when it is expanded."""
        rows: list[TreeRow] = []

        def append(node: TreeNode) -> None:
            is_expanded = node.folder.id in expanded
            rows.append(
                TreeRow(
                    folder=node.folder,
                    depth=node.depth,
                    has_children=bool(node.children),
                    expanded=is_expanded,
                    matched=node.matched,
                )
            )
            if is_expanded:
                for child in node.children:
                    append(child)

        for root in projection.roots:
            append(root)
        return rows

    def folder_options(self) -> list[dict]:
        """Flat, indented labels for folder pickers."""
        options: list[dict] = []
        visited: set[str] = set()

        def walk(parent_id: str | None, ancestry_has_more: list[bool]) -> None:
            if parent_id is None:
                siblings = self.graph.roots()
            else:
                siblings = self.graph.children(parent_id)
            siblings = [row for row in siblings if row.id not in visited]
            for index, row in enumerate(siblings):
                is_last = index == (len(siblings) - 1)
                visited.add(row.id)
                if ancestry_has_more:
                    prefix = "".join(
                        "│   " if has_more else "    "
                        for has_more in ancestry_has_more[1:]
                    )
                    connector = "└── " if is_last else "├── "
                    label = f"{prefix}{connector}{row.name}"
                else:
                    label = row.name
                options.append(
                    {
                        "id": row.id,
                        "name": row.name,
                        "depth": len(ancestry_has_more),
                        "label": label,
                    }
                )
                walk(row.id, ancestry_has_more + [not is_last])

        walk(None, [])

        # Folders caught in a cycle are never reached from a root.
        for row in self.graph.all():
            if row.id not in visited:
                options.append(
                    {"id": row.id, "name": row.name, "depth": 0, "label": row.name}
                )
        return options
