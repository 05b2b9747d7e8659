#!/usr/bin/env python3
"""Build webhook -> Slack / GitHub relay with task linking.

Endpoints:
- POST / and /api/expo-webhook: relay one build event
- GET on those paths and /healthz: health check
"""

from __future__ import annotations

import argparse
import json
import logging
import os
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any

from automation.build_relay.config import load_config
from automation.build_relay.models import InboundEvent
from automation.build_relay.relay import Relay

HANDLED_PATHS = {"/", "/api/expo-webhook"}
HEALTH_PATH = "/healthz"
BODY_SAMPLE_CHARS = 1000

logger = logging.getLogger("build-relay")


def _setup_logging(log_file: Path | None = None, level: str = "INFO") -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=handlers,
    )


class RelayHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: tuple[str, int], relay: Relay) -> None:
        super().__init__(address, Handler)
        self.relay = relay


class Handler(BaseHTTPRequestHandler):
    server: RelayHTTPServer

    def log_message(self, fmt: str, *args: Any) -> None:
        logger.info("http %s - %s", self.address_string(), fmt % args)

    def _path(self) -> str:
        return self.path.split("?", 1)[0]

    def _respond(self, code: HTTPStatus, payload: dict[str, Any] | None) -> None:
        if payload is None:
            self.send_response(code)
            self.end_headers()
            return
        data = json.dumps(payload).encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def do_GET(self) -> None:  # noqa: N802
        path = self._path()
        if path in HANDLED_PATHS or path == HEALTH_PATH:
            self._respond(HTTPStatus.OK, {"ok": True, "route": path})
            return
        self._respond(HTTPStatus.NOT_FOUND, {"ok": False, "error": "Not Found", "path": path})

    def do_POST(self) -> None:  # noqa: N802
        path = self._path()
        if path not in HANDLED_PATHS:
            self._respond(HTTPStatus.NOT_FOUND, {"ok": False, "error": "Not Found", "path": path})
            return

        # The full raw body is needed before the signature can be checked.
        try:
            length = int(self.headers.get("Content-Length", "0") or 0)
        except ValueError:
            self._respond(HTTPStatus.BAD_REQUEST, {"ok": False, "error": "Invalid Content-Length"})
            return
        body = self.rfile.read(max(length, 0))
        logger.debug("webhook path=%s headers=%s", path, sorted(self.headers.keys()))
        logger.debug("webhook body sample=%s", body[:BODY_SAMPLE_CHARS].decode("utf-8", errors="replace"))

        event = InboundEvent(raw_body=body, headers=dict(self.headers.items()))
        try:
            result = self.server.relay.handle(event)
        except Exception as exc:
            logger.exception("webhook path=%s unhandled error", path)
            payload = {"ok": False, "error": "Dispatch failed", "detail": str(exc)}
            self._respond(HTTPStatus.INTERNAL_SERVER_ERROR, payload)
            return
        logger.info("webhook path=%s outcome=%s status=%s", path, result.outcome.value, int(result.status))
        self._respond(result.status, result.payload)

    def _method_not_allowed(self) -> None:
        path = self._path()
        if path not in HANDLED_PATHS and path != HEALTH_PATH:
            self._respond(HTTPStatus.NOT_FOUND, {"ok": False, "error": "Not Found", "path": path})
            return
        self._respond(HTTPStatus.METHOD_NOT_ALLOWED, {"ok": False, "error": "Method Not Allowed"})

    do_PUT = _method_not_allowed  # noqa: N815
    do_PATCH = _method_not_allowed  # noqa: N815
    do_DELETE = _method_not_allowed  # noqa: N815


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Relay build webhooks to Slack or GitHub.")
    parser.add_argument("--host", default=os.getenv("RELAY_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("RELAY_PORT", "8787")))
    args = parser.parse_args(argv)

    log_file = os.getenv("RELAY_LOG_FILE", "")
    log_dir = os.getenv("RELAY_LOG_DIR", "")
    if not log_file and log_dir:
        log_file = str(Path(log_dir) / "build-relay.log")
    _setup_logging(Path(log_file) if log_file else None, os.getenv("RELAY_LOG_LEVEL", "INFO"))

    config = load_config()
    relay = Relay.from_config(config)

    logger.info("Build relay listening on http://%s:%s%s", args.host, args.port, "/api/expo-webhook")
    logger.info("Health endpoint: http://%s:%s%s", args.host, args.port, HEALTH_PATH)
    logger.info("Dispatch mode: %s", config.dispatch_mode.value)
    if not config.webhook_secret:
        logger.warning("WEBHOOK_SECRET is empty; inbound requests are not authenticated.")
    if not config.notion_token:
        logger.warning("NOTION_TOKEN is empty; short codes will not be resolved or annotated.")
    if config.build_profile:
        logger.info("Build profile filter: %s", config.build_profile)

    server = RelayHTTPServer((args.host, args.port), relay)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Build relay stopping")
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
