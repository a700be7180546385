from __future__ import annotations

import logging
import time
from typing import Callable, Mapping

from convostack.tree.ancestry import AncestryResolver
from convostack.tree.drag import DragSession
from convostack.tree.expansion import ExpansionState
from convostack.tree.graph import Folder, FolderGraph
from convostack.tree.moves import MoveValidator
from convostack.tree.mutations import DEFAULT_MAX_NAME_LENGTH, MutationCoordinator
from convostack.tree.notifications import Notifier
from convostack.tree.remote import DeletePolicy, FolderStore
from convostack.tree.views import Projection, TreeRow, ViewProjector

logger = logging.getLogger(__name__)


class FolderTree:
    """The one folder tree every UI surface reads and writes through.

    Owns the FolderGraph and wires the resolver, validator, projector,
    expansion state and mutation coordinator around it.
    """

    def __init__(
        self,
        store: FolderStore,
        owner_id: str,
        max_name_length: int = DEFAULT_MAX_NAME_LENGTH,
        remote_timeout: float | None = None,
        fetch_throttle_seconds: float = 2.0,
        delete_policy: DeletePolicy | str = DeletePolicy.CASCADE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.owner_id = owner_id
        self.kind = store.kind
        self.graph = FolderGraph()
        self.resolver = AncestryResolver(self.graph)
        self.validator = MoveValidator(self.resolver)
        self.projector = ViewProjector(self.resolver)
        self.expansion = ExpansionState(self.resolver)
        self.notifier = Notifier()
        self.coordinator = MutationCoordinator(
            self.graph,
            store,
            validator=self.validator,
            notifier=self.notifier,
            max_name_length=max_name_length,
            remote_timeout=remote_timeout,
            delete_policy=delete_policy,
        )
        self.fetch_throttle_seconds = fetch_throttle_seconds
        self.selected_id: str | None = None
        self.loaded = False
        self.error: Exception | None = None
        self._clock = clock
        self._fetching = False
        self._last_fetch: float | None = None

    @classmethod
    def from_config(cls, config: Mapping, store: FolderStore, owner_id: str):
        return cls(
            store,
            owner_id,
            max_name_length=int(config.get("FOLDER_NAME_MAX_LENGTH", DEFAULT_MAX_NAME_LENGTH)),
            remote_timeout=float(config.get("FOLDER_REMOTE_TIMEOUT", 0)) or None,
            fetch_throttle_seconds=float(config.get("FOLDER_FETCH_THROTTLE_SECONDS", 2)),
            delete_policy=config.get("FOLDER_DELETE_POLICY", DeletePolicy.CASCADE),
        )

    async def refresh(self, force: bool = False) -> bool:
        """Re-populate the graph from the store. Returns False when skipped."""
        if self._fetching:
            return False
        now = self._clock()
        if (
            not force
            and self.loaded
            and self._last_fetch is not None
            and now - self._last_fetch < self.fetch_throttle_seconds
        ):
            return False
        if not force and self.coordinator.has_pending:
            logger.debug("Deferring folder refresh while mutations are in flight")
            return False

        self._fetching = True
        try:
            folders = await self.store.list_folders(self.owner_id)
        except Exception as exc:
            logger.error(
                "Error fetching %s folders for %s: %s", self.kind.value, self.owner_id, exc
            )
            self.error = exc
            if not self.loaded:
                self.notifier.error("Failed to load folders")
            return False
        finally:
            self._fetching = False

        self.graph.load(folders)
        self.expansion.prune()
        self.coordinator.needs_refresh = False
        self.error = None
        self.loaded = True
        self._last_fetch = self._clock()
        if self.selected_id is not None and self.selected_id not in self.graph:
            self.selected_id = None
        return True

    def select(self, folder_id: str | None) -> None:
        self.selected_id = folder_id if folder_id in self.graph else None
        self.expansion.reset(self.selected_id)

    def projection(self, query: str | None = None) -> Projection:
        if query and query.strip():
            return self.projector.search(query)
        if self.selected_id is not None:
            return self.projector.scoped(self.selected_id)
        return self.projector.full()

    def search(self, query: str) -> Projection:
        """Search and expand the path to every match so it shows up."""
        projection = self.projector.search(query)
        for folder_id in projection.matched_ids:
            parent = self.graph.get(folder_id).parent_id
            if parent is not None and parent in self.graph:
                self.expansion.expand_path(parent)
        return projection

    def rows(self, query: str | None = None) -> list[TreeRow]:
        return self.projector.visible_rows(
            self.projection(query), self.expansion.expanded
        )

    def breadcrumbs(self, folder_id: str) -> list[str]:
        return self.resolver.path_names(folder_id)

    async def create(self, name, parent_id: str | None = None) -> Folder:
        folder = await self.coordinator.create(name, parent_id)
        if folder.parent_id is not None and folder.parent_id in self.graph:
            self.expansion.expand_path(folder.parent_id)
        return folder

    async def rename(self, folder_id: str, name) -> Folder:
        return await self.coordinator.rename(folder_id, name)

    async def move(self, folder_id: str, new_parent_id: str | None) -> Folder:
        folder = await self.coordinator.move(folder_id, new_parent_id)
        if folder.parent_id is not None:
            self.expansion.expand_path(folder.parent_id)
        return folder

    async def delete(
        self, folder_id: str, policy: DeletePolicy | str | None = None
    ) -> list[Folder]:
        removed = await self.coordinator.delete(folder_id, policy)
        self.expansion.prune()
        if self.selected_id is not None and self.selected_id not in self.graph:
            self.select(None)
        return removed

    def start_drag(self, folder_id: str) -> DragSession:
        session = DragSession(self.validator)
        session.start(folder_id)
        return session

    async def drop(self, session: DragSession) -> Folder | None:
        intent = session.drop()
        if intent is None:
            return None
        return await self.move(intent.folder_id, intent.target_parent_id)
