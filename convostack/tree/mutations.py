from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable

from convostack.tree.ancestry import AncestryResolver
from convostack.tree.errors import (
    FolderLimitError,
    FolderNotFound,
    RemoteFailure,
    ValidationError,
)
from convostack.tree.graph import Folder, FolderGraph
from convostack.tree.moves import MoveValidator
from convostack.tree.notifications import Notifier
from convostack.tree.remote import DeletePolicy, FolderStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_NAME_LENGTH = 100
TEMP_ID_PREFIX = "temp-"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MutationState(str, enum.Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass
class Mutation:
    kind: str
    folder_id: str
    undo: Callable[[], None] = field(repr=False)
    state: MutationState = MutationState.PENDING
    result_id: str | None = None
    error: str | None = None
    started_at: datetime = field(default_factory=utcnow)


def validate_folder_name(name, max_length: int = DEFAULT_MAX_NAME_LENGTH) -> str:
    clean = (name or "").strip()
    if not clean:
        raise ValidationError("Folder name cannot be empty")
    if len(clean) > max_length:
        raise ValidationError(f"Folder name cannot exceed {max_length} characters")
    return clean


class MutationCoordinator:
    """Applies folder mutations optimistically and undoes them on failure.

    Each mutation snapshots what it is about to change, applies the change
    to the graph synchronously, then awaits the remote store. Mutations on
    the same folder id run one at a time.
    """

    def __init__(
        self,
        graph: FolderGraph,
        store: FolderStore,
        validator: MoveValidator | None = None,
        notifier: Notifier | None = None,
        max_name_length: int = DEFAULT_MAX_NAME_LENGTH,
        remote_timeout: float | None = None,
        delete_policy: DeletePolicy | str = DeletePolicy.CASCADE,
        history_size: int = 200,
    ):
        self.graph = graph
        self.store = store
        self.validator = validator or MoveValidator(AncestryResolver(graph))
        self.notifier = notifier or Notifier()
        self.max_name_length = max_name_length
        self.remote_timeout = remote_timeout
        self.delete_policy = DeletePolicy.parse(delete_policy)
        self.history: deque[Mutation] = deque(maxlen=history_size)
        self.needs_refresh = False
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._pending_creates: dict[str, asyncio.Future] = {}

    @property
    def resolver(self) -> AncestryResolver:
        return self.validator.resolver

    @property
    def pending(self) -> list[Mutation]:
        return [row for row in self.history if row.state == MutationState.PENDING]

    @property
    def has_pending(self) -> bool:
        return bool(self._pending_creates) or bool(self.pending)

    def validate_name(self, name) -> str:
        try:
            return validate_folder_name(name, self.max_name_length)
        except ValidationError as exc:
            self.notifier.error(str(exc))
            raise

    async def create(self, name, parent_id: str | None = None) -> Folder:
        clean = self.validate_name(name)
        try:
            parent_id = await self._resolve_id(parent_id)
            if parent_id is not None and parent_id not in self.graph:
                raise FolderNotFound(parent_id)
        except FolderNotFound:
            self.notifier.error("Parent folder was not found")
            raise

        temp_id = f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"
        provisional = Folder(
            id=temp_id,
            name=clean,
            parent_id=parent_id,
            item_count=0,
            created_at=utcnow(),
            pending=True,
        )
        mutation = self._begin("create", temp_id, lambda: self._undo_create(temp_id))
        resolved = asyncio.get_running_loop().create_future()
        self._pending_creates[temp_id] = resolved
        self.graph.insert(provisional)
        try:
            created = await self._dispatch(
                mutation, "create", self.store.create_folder(parent_id, clean)
            )
            committed = replace(created, pending=False)
            if temp_id in self.graph and (
                parent_id is None or parent_id in self.graph
            ):
                self.graph.replace_id(temp_id, committed)
            else:
                # A forced reload dropped the provisional record or its parent.
                logger.warning(
                    "Created folder %s lost its place in the tree", committed.id
                )
                self._undo_create(temp_id)
                self.needs_refresh = True
            mutation.result_id = committed.id
            self._commit(mutation)
            resolved.set_result(committed.id)
        finally:
            if not resolved.done():
                resolved.set_result(None)
            self._pending_creates.pop(temp_id, None)

        self.notifier.success("Folder created successfully")
        return committed

    async def rename(self, folder_id: str, name) -> Folder:
        clean = self.validate_name(name)
        folder_id = await self._require_id(folder_id)
        async with self._serialized(folder_id):
            current = self._require_folder(folder_id)
            if current.name == clean:
                return current

            previous_name = current.name
            mutation = self._begin(
                "rename",
                folder_id,
                lambda: self._restore_field(folder_id, name=previous_name),
            )
            self.graph.update(folder_id, name=clean)
            await self._dispatch(
                mutation, "rename", self.store.rename_folder(folder_id, clean)
            )
            self._commit(mutation)

        self.notifier.success("Folder renamed successfully")
        return self.graph.get(folder_id)

    async def move(self, folder_id: str, new_parent_id: str | None) -> Folder:
        folder_id = await self._require_id(folder_id)
        new_parent_id = await self._resolve_id(new_parent_id)
        async with self._serialized(folder_id):
            current = self._require_folder(folder_id)
            error = self.validator.can_move(folder_id, new_parent_id)
            if error is not None:
                self.notifier.error(str(error))
                raise error
            if current.parent_id == new_parent_id:
                return current

            previous_parent_id = current.parent_id
            mutation = self._begin(
                "move",
                folder_id,
                lambda: self._undo_move(folder_id, previous_parent_id),
            )
            self.graph.update(folder_id, parent_id=new_parent_id)
            await self._dispatch(
                mutation, "move", self.store.move_folder(folder_id, new_parent_id)
            )
            self._commit(mutation)

        self.notifier.success("Folder moved successfully")
        return self.graph.get(folder_id)

    async def delete(
        self, folder_id: str, policy: DeletePolicy | str | None = None
    ) -> list[Folder]:
        policy = DeletePolicy.parse(policy or self.delete_policy)
        folder_id = await self._require_id(folder_id)
        self._require_folder(folder_id)
        async with self._serialized_subtree(folder_id) as subtree:
            current = self._require_folder(folder_id)
            if policy == DeletePolicy.CASCADE:
                removed = [self.graph.get(row_id) for row_id in sorted(subtree)]
                reparented: list[Folder] = []
            else:
                removed = [current]
                reparented = self.graph.children(folder_id)

            mutation = self._begin(
                "delete",
                folder_id,
                lambda: self._undo_delete(removed, reparented),
            )
            for row in removed:
                self.graph.remove(row.id)
            for child in reparented:
                self.graph.update(child.id, parent_id=current.parent_id)
            await self._dispatch(
                mutation, "delete", self.store.delete_folder(folder_id, policy=policy)
            )
            self._commit(mutation)

        self.notifier.success("Folder deleted successfully")
        return removed

    def _begin(self, kind: str, folder_id: str, undo: Callable[[], None]) -> Mutation:
        mutation = Mutation(kind=kind, folder_id=folder_id, undo=undo)
        self.history.append(mutation)
        logger.debug("Applying %s of folder %s", kind, folder_id)
        return mutation

    def _commit(self, mutation: Mutation) -> None:
        mutation.state = MutationState.COMMITTED
        logger.debug("Committed %s of folder %s", mutation.kind, mutation.folder_id)

    def _rollback(self, mutation: Mutation, exc: Exception) -> None:
        mutation.undo()
        mutation.state = MutationState.ROLLED_BACK
        mutation.error = str(exc)
        logger.warning(
            "Rolled back %s of folder %s: %s", mutation.kind, mutation.folder_id, exc
        )

    async def _dispatch(self, mutation: Mutation, action: str, call):
        try:
            return await self._call_remote(call)
        except asyncio.CancelledError:
            self._rollback(mutation, RemoteFailure(f"{action} cancelled"))
            raise
        except RemoteFailure as exc:
            self._rollback(mutation, exc)
            self._notify_failure(action, exc)
            raise

    def _notify_failure(self, action: str, exc: RemoteFailure) -> None:
        if isinstance(exc, FolderLimitError):
            self.notifier.error(str(exc))
        else:
            self.notifier.error(f"Failed to {action} folder")

    def _undo_create(self, temp_id: str) -> None:
        if temp_id in self.graph:
            self.graph.remove(temp_id)

    def _restore_field(self, folder_id: str, **previous) -> None:
        # The folder may have gone with a cascade delete of an ancestor.
        if folder_id in self.graph:
            self.graph.update(folder_id, **previous)

    def _undo_move(self, folder_id: str, previous_parent_id: str | None) -> None:
        if folder_id not in self.graph:
            return
        if previous_parent_id is not None and (
            previous_parent_id not in self.graph
            or self.resolver.is_self_or_descendant(folder_id, previous_parent_id)
        ):
            logger.warning(
                "Cannot restore folder %s under %s, leaving it at the root",
                folder_id,
                previous_parent_id,
            )
            self.graph.update(folder_id, parent_id=None)
            self.needs_refresh = True
            return
        self.graph.update(folder_id, parent_id=previous_parent_id)

    def _undo_delete(self, removed: list[Folder], reparented: list[Folder]) -> None:
        self.graph.restore(row for row in removed if not self._is_stale_provisional(row))
        self.graph.restore(child for child in reparented if child.id in self.graph)

    def _is_stale_provisional(self, folder: Folder) -> bool:
        """A provisional record whose create has already settled."""
        return folder.id.startswith(TEMP_ID_PREFIX) and (
            folder.id not in self._pending_creates
        )

    async def _call_remote(self, call):
        try:
            if self.remote_timeout:
                return await asyncio.wait_for(call, self.remote_timeout)
            return await call
        except RemoteFailure:
            raise
        except asyncio.TimeoutError as exc:
            raise RemoteFailure(
                f"Operation timed out after {self.remote_timeout}s"
            ) from exc
        except Exception as exc:
            raise RemoteFailure(str(exc) or exc.__class__.__name__) from exc

    async def _resolve_id(self, folder_id: str | None) -> str | None:
        """Map a provisional id to the server id once its create settles."""
        if folder_id is None:
            return None
        resolved = self._pending_creates.get(folder_id)
        if resolved is None:
            return folder_id
        real_id = await asyncio.shield(resolved)
        if real_id is None:
            raise FolderNotFound(folder_id)
        return real_id

    async def _require_id(self, folder_id: str) -> str:
        try:
            return await self._resolve_id(folder_id)
        except FolderNotFound:
            self.notifier.error("Folder not found")
            raise

    def _require_folder(self, folder_id: str) -> Folder:
        folder = self.graph.get(folder_id)
        if folder is None:
            self.notifier.error("Folder not found")
            raise FolderNotFound(folder_id)
        return folder

    @contextlib.asynccontextmanager
    async def _serialized(self, folder_id: str):
        lock = self._locks.setdefault(folder_id, asyncio.Lock())
        self._lock_users[folder_id] = self._lock_users.get(folder_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[folder_id] -= 1
            if not self._lock_users[folder_id]:
                del self._lock_users[folder_id]
                self._locks.pop(folder_id, None)

    @contextlib.asynccontextmanager
    async def _serialized_subtree(self, folder_id: str):
        """Hold the lock of every folder below ``folder_id``, itself included.

        Creates still pending inside the subtree are waited out first, and the
        subtree is recomputed after every wait until it is fully locked.
        """
        async with contextlib.AsyncExitStack() as stack:
            held: set[str] = set()
            while True:
                if folder_id not in self.graph:
                    subtree = held
                    break
                subtree = {folder_id} | self.resolver.descendants(folder_id)
                waiting = [
                    self._pending_creates[row_id]
                    for row_id in sorted(subtree)
                    if row_id in self._pending_creates
                ]
                if waiting:
                    for resolved in waiting:
                        await asyncio.shield(resolved)
                    continue
                missing = sorted(subtree - held)
                if not missing:
                    break
                for row_id in missing:
                    await stack.enter_async_context(self._serialized(row_id))
                    held.add(row_id)
            yield frozenset(subtree)
