"""Outbound JSON-over-HTTP calls.

Every call carries an explicit timeout. Non-2xx responses and transport
failures raise HttpCallError; callers decide whether that is fatal.
"""

from __future__ import annotations

import json
import logging
from http.client import HTTPException
from typing import Any
from urllib import error, request

from automation.build_relay.errors import HttpCallError

logger = logging.getLogger("build-relay")

BODY_SAMPLE_CHARS = 1000


def request_json(
    method: str,
    url: str,
    *,
    timeout: float,
    headers: dict[str, str] | None = None,
    payload: dict[str, Any] | None = None,
) -> Any:
    """Send one request and return the decoded JSON body (None when empty or not JSON)."""

    data = None
    req = request.Request(url, method=method)
    for name, value in (headers or {}).items():
        req.add_header(name, value)
    if payload is not None:
        data = json.dumps(payload).encode("utf-8")
        req.add_header("Content-Type", "application/json")

    try:
        with request.urlopen(req, data=data, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
            status = resp.status
    except error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="replace")
        logger.debug("http %s %s status=%s body=%s", method, url, exc.code, body[:BODY_SAMPLE_CHARS])
        raise HttpCallError(f"{method} {url} failed with status {exc.code}", status=exc.code, body=body) from exc
    except (error.URLError, TimeoutError, OSError, HTTPException) as exc:
        raise HttpCallError(f"{method} {url} failed: {exc}") from exc

    logger.debug("http %s %s status=%s body=%s", method, url, status, raw[:BODY_SAMPLE_CHARS])
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None
