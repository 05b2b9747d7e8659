from __future__ import annotations

import socketserver
import threading
from collections.abc import Iterator
from dataclasses import replace
from typing import Any

import pytest

from automation.build_relay.config import DispatchMode, RelayConfig
from automation.build_relay.errors import HttpCallError

PAGE_HEX = "0123456789abcdef0123456789abcdef"
PAGE_ID = "01234567-89ab-cdef-0123-456789abcdef"
OTHER_HEX = "fedcba9876543210fedcba9876543210"
OTHER_ID = "fedcba98-7654-3210-fedc-ba9876543210"


class FakeWorkspace:
    def __init__(self) -> None:
        self.search_results: dict[str, list[dict[str, Any]]] = {}
        self.children: dict[str, list[dict[str, Any]]] = {}
        self.failing: set[str] = set()
        self.search_error: HttpCallError | None = None
        self.searches: list[str] = []
        self.appended: list[tuple[str, list[dict[str, Any]]]] = []
        self._lock = threading.Lock()

    def search_pages(self, query: str) -> list[dict[str, Any]]:
        with self._lock:
            self.searches.append(query)
        if self.search_error is not None:
            raise self.search_error
        return list(self.search_results.get(query, []))

    def list_block_children(self, block_id: str) -> list[dict[str, Any]]:
        if block_id in self.failing:
            raise HttpCallError(f"GET children {block_id} failed with status 403", status=403)
        with self._lock:
            return list(self.children.get(block_id, []))

    def append_block_children(self, block_id: str, children: list[dict[str, Any]]) -> None:
        with self._lock:
            self.appended.append((block_id, children))
            self.children.setdefault(block_id, []).extend(children)

    @property
    def calls(self) -> int:
        return len(self.searches) + len(self.appended)


class FakeChat:
    def __init__(self) -> None:
        self.messages: list[str] = []
        self.error: Exception | None = None

    def send(self, text: str) -> None:
        if self.error is not None:
            raise self.error
        self.messages.append(text)


class FakeGitHub:
    def __init__(self) -> None:
        self.dispatches: list[tuple[str, str, dict[str, Any]]] = []
        self.comments: dict[tuple[str, int], list[dict[str, Any]]] = {}
        self.posted: list[tuple[str, int, str]] = []
        self.error: Exception | None = None

    def repository_dispatch(self, repo: str, event_type: str, client_payload: dict[str, Any]) -> None:
        if self.error is not None:
            raise self.error
        self.dispatches.append((repo, event_type, client_payload))

    def list_issue_comments(self, repo: str, number: int) -> list[dict[str, Any]]:
        return list(self.comments.get((repo, number), []))

    def create_issue_comment(self, repo: str, number: int, body: str) -> None:
        if self.error is not None:
            raise self.error
        self.posted.append((repo, number, body))
        self.comments.setdefault((repo, number), []).append({"body": body})


def page_result(page_id: str = PAGE_ID) -> dict[str, Any]:
    return {"object": "page", "id": page_id}


@pytest.fixture
def workspace() -> FakeWorkspace:
    return FakeWorkspace()


@pytest.fixture
def chat() -> FakeChat:
    return FakeChat()


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def make_config():
    base = RelayConfig(
        dispatch_mode=DispatchMode.SLACK,
        slack_webhook_url="https://hooks.slack.test/services/T/B/X",
        github_token="gh-token",
        github_repository="example/app",
        notion_token="notion-token",
    )

    def _make(**overrides: Any) -> RelayConfig:
        return replace(base, **overrides)

    return _make


class _GarbageStatusHandler(socketserver.StreamRequestHandler):
    def handle(self) -> None:
        length = 0
        for line in self.rfile:
            if line in (b"\r\n", b"\n"):
                break
            name, _, value = line.decode("latin-1").partition(":")
            if name.strip().lower() == "content-length":
                length = int(value.strip())
        self.rfile.read(length)
        self.wfile.write(b"GARBAGE\r\n\r\n")


@pytest.fixture
def garbage_url() -> Iterator[str]:
    """URL of a server that answers every request with an unparseable status line."""

    server = socketserver.ThreadingTCPServer(("127.0.0.1", 0), _GarbageStatusHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    try:
        yield f"http://{host}:{port}"
    finally:
        server.shutdown()
        server.server_close()
