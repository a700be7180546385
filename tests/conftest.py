import asyncio

import pytest

from convostack import create_app
from convostack.config import TestConfig
from convostack.extensions import db
from convostack.tree.graph import Folder
from convostack.tree.remote import DeletePolicy, FolderStore


class FakeFolderStore(FolderStore):
    """In-memory store; calls can be made to fail or to wait on a gate."""

    def __init__(self, folders=()):
        self.folders = {folder.id: folder for folder in folders}
        self.calls = []
        self.failures = {}
        self.gates = {}
        self._next_id = 0

    def fail(self, method, exc=None):
        self.failures[method] = exc or RuntimeError(f"{method} rejected")

    def hold(self, method):
        gate = asyncio.Event()
        self.gates[method] = gate
        return gate

    async def _enter(self, method, *args):
        self.calls.append((method, *args))
        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()
        exc = self.failures.pop(method, None)
        if exc is not None:
            raise exc

    def call_names(self):
        return [call[0] for call in self.calls]

    async def list_folders(self, owner_id):
        await self._enter("list_folders", owner_id)
        return list(self.folders.values())

    async def create_folder(self, parent_id, name):
        await self._enter("create_folder", parent_id, name)
        self._next_id += 1
        folder = Folder(id=f"srv-{self._next_id}", name=name, parent_id=parent_id)
        self.folders[folder.id] = folder
        return folder

    async def rename_folder(self, folder_id, name):
        await self._enter("rename_folder", folder_id, name)

    async def move_folder(self, folder_id, new_parent_id):
        await self._enter("move_folder", folder_id, new_parent_id)

    async def delete_folder(self, folder_id, policy=DeletePolicy.CASCADE):
        await self._enter("delete_folder", folder_id, policy)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def fake_store():
    return FakeFolderStore()
