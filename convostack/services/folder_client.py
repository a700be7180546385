"""HTTP implementation of the remote folder store."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from dateutil import parser as dt_parser

from convostack.tree.errors import FolderLimitError, RemoteFailure
from convostack.tree.graph import Folder
from convostack.tree.remote import DeletePolicy, FolderKind, FolderStore
from convostack.tree.store import FolderTree

logger = logging.getLogger(__name__)


def folder_from_payload(payload: dict) -> Folder:
    created_raw = payload.get("created_at")
    parent_raw = payload.get("parent_id")
    return Folder(
        id=str(payload["id"]),
        name=payload.get("name") or "",
        parent_id=str(parent_raw) if parent_raw is not None else None,
        item_count=int(payload.get("item_count") or 0),
        created_at=dt_parser.isoparse(created_raw) if created_raw else None,
    )


class HttpFolderStore(FolderStore):
    """Talks to the ``/api/v1/folders`` endpoints for one owner and folder kind."""

    def __init__(
        self,
        base_url: str,
        owner_id: str,
        kind: FolderKind | str = FolderKind.BOOKMARK,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.owner_id = owner_id
        self.kind = FolderKind.parse(kind)
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config, owner_id: str, **kwargs):
        return cls(
            config["FOLDER_API_URL"],
            owner_id,
            timeout=float(config.get("FOLDER_REMOTE_TIMEOUT") or 10),
            **kwargs,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Accept": "application/json"},
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpFolderStore":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        if response.status_code >= 400:
            try:
                message = response.json().get("error") or "API request failed"
            except (ValueError, AttributeError):
                message = f"API error: {response.status_code}"
            if response.status_code == 403:
                raise FolderLimitError(message, status_code=response.status_code)
            raise RemoteFailure(message, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as err:
            raise RemoteFailure("Invalid response format from API") from err

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as err:
            logger.warning("%s %s timed out", method, path)
            raise RemoteFailure(f"{method} {path} timed out") from err
        except httpx.HTTPError as err:
            logger.warning("%s %s failed: %s", method, path, err)
            raise RemoteFailure(f"Network error: {err}") from err
        return await self._handle_response(response)

    def _scope(self, **fields) -> dict[str, Any]:
        return {"owner_id": self.owner_id, "kind": self.kind.value, **fields}

    async def list_folders(self, owner_id: str) -> list[Folder]:
        data = await self._request(
            "GET", "/folders", params={"owner_id": owner_id, "kind": self.kind.value}
        )
        return [folder_from_payload(row) for row in data.get("items", [])]

    async def create_folder(self, parent_id: str | None, name: str) -> Folder:
        data = await self._request(
            "POST", "/folders", json=self._scope(name=name, parent_id=parent_id)
        )
        return folder_from_payload(data)

    async def rename_folder(self, folder_id: str, name: str) -> None:
        await self._request(
            "PATCH", f"/folders/{folder_id}", json=self._scope(name=name)
        )

    async def move_folder(self, folder_id: str, new_parent_id: str | None) -> None:
        await self._request(
            "PATCH", f"/folders/{folder_id}", json=self._scope(parent_id=new_parent_id)
        )

    async def delete_folder(
        self, folder_id: str, policy: DeletePolicy = DeletePolicy.CASCADE
    ) -> None:
        await self._request(
            "DELETE",
            f"/folders/{folder_id}",
            params=self._scope(policy=DeletePolicy.parse(policy).value),
        )


def open_folder_trees(
    config, owner_id: str, **store_kwargs
) -> dict[FolderKind, FolderTree]:
    """One FolderTree per folder kind, each on its own HTTP store.

    Bookmark and prompt folders never share a graph; close each tree's
    ``store`` when done.
    """
    return {
        kind: FolderTree.from_config(
            config,
            HttpFolderStore.from_config(config, owner_id, kind=kind, **store_kwargs),
            owner_id,
        )
        for kind in FolderKind
    }
