#!/usr/bin/env python3
"""Send a signed sample build event to a running relay.

Signs the body the way the build service does (HMAC-SHA1, base64,
`sha1=` prefix) using WEBHOOK_SECRET unless --secret is given.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any
from urllib import error, request

from automation.build_relay.signature import sign

DEFAULT_URL = "http://127.0.0.1:8787/api/expo-webhook"


def sample_event(task_id: str, profile: str) -> dict[str, Any]:
    event: dict[str, Any] = {
        "status": "finished",
        "buildDetailsPageUrl": "https://expo.dev/accounts/example/projects/app/builds/123456",
        "gitRef": f"feature/{task_id}",
        "metadata": {"commitMessage": f"Preview build for {task_id}"},
    }
    if profile:
        event["metadata"]["buildProfile"] = profile
    return event


def post_event(url: str, body: bytes, header_name: str, header_value: str, timeout: float) -> tuple[int, str]:
    req = request.Request(url, data=body, method="POST")
    req.add_header("Content-Type", "application/json")
    if header_value:
        req.add_header(header_name, header_value)
    try:
        with request.urlopen(req, timeout=timeout) as resp:
            return resp.status, resp.read().decode("utf-8", errors="replace")
    except error.HTTPError as exc:
        return exc.code, exc.read().decode("utf-8", errors="replace")


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--url", default=DEFAULT_URL, help="Relay endpoint")
    parser.add_argument("--secret", default=os.getenv("WEBHOOK_SECRET", ""), help="Shared webhook secret")
    parser.add_argument("--header", default=os.getenv("SIGNATURE_HEADER", "expo-signature"))
    parser.add_argument("--task", default="TASK-3374", help="Task id placed in the git ref and commit message")
    parser.add_argument("--profile", default="preview", help="metadata.buildProfile value (empty to omit)")
    parser.add_argument("--body-file", help="Send this JSON file instead of the sample event")
    parser.add_argument("--timeout", type=float, default=15.0)
    args = parser.parse_args()

    if args.body_file:
        with open(args.body_file, "rb") as f:
            body = f.read()
    else:
        body = json.dumps(sample_event(args.task, args.profile)).encode("utf-8")

    header_value = sign(body, args.secret) if args.secret else ""
    if not header_value:
        print("warning: no secret given; sending unsigned", file=sys.stderr)
    print(f"Posting to {args.url}")

    try:
        status, text = post_event(args.url, body, args.header, header_value, args.timeout)
    except (error.URLError, OSError) as exc:
        print(f"error: request failed: {exc}", file=sys.stderr)
        return 2

    print(f"status={status}")
    if text:
        print(text)
    return 0 if 200 <= status < 300 else 1


if __name__ == "__main__":
    raise SystemExit(main())
