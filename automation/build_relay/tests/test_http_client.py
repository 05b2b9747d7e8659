from __future__ import annotations

import json
import threading
from collections.abc import Iterator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

import pytest

from automation.build_relay.errors import HttpCallError
from automation.build_relay.http_client import request_json


class _StubHandler(BaseHTTPRequestHandler):
    requests: list[dict[str, Any]] = []

    def log_message(self, fmt: str, *args: Any) -> None:
        pass

    def _reply(self, code: int, body: bytes, content_type: str = "application/json") -> None:
        self.send_response(code)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:  # noqa: N802
        if self.path == "/text":
            self._reply(200, b"ok", "text/plain")
        elif self.path == "/empty":
            self._reply(200, b"")
        else:
            self._reply(200, json.dumps({"results": [{"id": "abc"}]}).encode())

    def do_POST(self) -> None:  # noqa: N802
        body = self.rfile.read(int(self.headers.get("Content-Length", "0")))
        _StubHandler.requests.append(
            {
                "path": self.path,
                "body": json.loads(body),
                "content_type": self.headers.get("Content-Type"),
                "auth": self.headers.get("Authorization"),
            }
        )
        if self.path == "/fail":
            self._reply(500, b'{"message":"boom"}')
        else:
            self._reply(201, b'{"created":true}')


@pytest.fixture
def stub_url() -> Iterator[str]:
    _StubHandler.requests = []
    server = ThreadingHTTPServer(("127.0.0.1", 0), _StubHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    try:
        yield f"http://{host}:{port}"
    finally:
        server.shutdown()
        server.server_close()


def test_get_decodes_json(stub_url: str) -> None:
    assert request_json("GET", f"{stub_url}/search", timeout=5) == {"results": [{"id": "abc"}]}


def test_non_json_and_empty_bodies_return_none(stub_url: str) -> None:
    assert request_json("GET", f"{stub_url}/text", timeout=5) is None
    assert request_json("GET", f"{stub_url}/empty", timeout=5) is None


def test_post_sends_json_and_headers(stub_url: str) -> None:
    result = request_json(
        "POST",
        f"{stub_url}/comments",
        timeout=5,
        headers={"Authorization": "Bearer tok"},
        payload={"body": "hello"},
    )
    assert result == {"created": True}
    [sent] = _StubHandler.requests
    assert sent["body"] == {"body": "hello"}
    assert sent["content_type"] == "application/json"
    assert sent["auth"] == "Bearer tok"


def test_error_status_raises_with_body(stub_url: str) -> None:
    with pytest.raises(HttpCallError) as ctx:
        request_json("POST", f"{stub_url}/fail", timeout=5, payload={})
    assert ctx.value.status == 500
    assert "boom" in ctx.value.body


def test_connection_failure_raises() -> None:
    server = ThreadingHTTPServer(("127.0.0.1", 0), _StubHandler)
    host, port = server.server_address[:2]
    server.server_close()
    with pytest.raises(HttpCallError) as ctx:
        request_json("GET", f"http://{host}:{port}/", timeout=2)
    assert ctx.value.status is None


def test_malformed_status_line_raises(garbage_url: str) -> None:
    with pytest.raises(HttpCallError) as ctx:
        request_json("POST", f"{garbage_url}/hook", timeout=5, payload={"text": "hi"})
    assert ctx.value.status is None
