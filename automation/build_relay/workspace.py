"""Workspace (Notion) boundary used by the resolver and the annotator."""

from __future__ import annotations

from typing import Any, Protocol
from urllib import parse

from automation.build_relay.config import RelayConfig
from automation.build_relay.http_client import request_json

CHILDREN_PAGE_SIZE = 100


class WorkspacePort(Protocol):
    def search_pages(self, query: str) -> list[dict[str, Any]]:
        ...

    def list_block_children(self, block_id: str) -> list[dict[str, Any]]:
        ...

    def append_block_children(self, block_id: str, children: list[dict[str, Any]]) -> None:
        ...


class NotionWorkspace:
    def __init__(self, token: str, api_url: str, version: str, timeout: float) -> None:
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._version = version
        self._timeout = timeout

    @classmethod
    def from_config(cls, config: RelayConfig) -> NotionWorkspace | None:
        if not config.notion_token:
            return None
        return cls(config.notion_token, config.notion_api_url, config.notion_version, config.http_timeout_sec)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Notion-Version": self._version,
            "Accept": "application/json",
        }

    def _call(self, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
        return request_json(
            method,
            f"{self._api_url}{path}",
            timeout=self._timeout,
            headers=self._headers(),
            payload=payload,
        )

    def search_pages(self, query: str) -> list[dict[str, Any]]:
        data = self._call("POST", "/search", {"query": query, "filter": {"value": "page", "property": "object"}})
        results = data.get("results") if isinstance(data, dict) else None
        return [r for r in results or [] if isinstance(r, dict)]

    def list_block_children(self, block_id: str) -> list[dict[str, Any]]:
        # Only the first page is read.
        path = f"/blocks/{parse.quote(block_id)}/children?page_size={CHILDREN_PAGE_SIZE}"
        data = self._call("GET", path)
        results = data.get("results") if isinstance(data, dict) else None
        return [r for r in results or [] if isinstance(r, dict)]

    def append_block_children(self, block_id: str, children: list[dict[str, Any]]) -> None:
        self._call("PATCH", f"/blocks/{parse.quote(block_id)}/children", {"children": children})
