"""Relay configuration.

Settings come from the environment, optionally layered over a YAML file named
by RELAY_CONFIG_FILE. The file is validated against config.schema.json and
may not carry secrets; tokens and the webhook secret are environment-only.
The result is a frozen RelayConfig built once at startup and handed to the
relay, so no other module reads os.environ.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator

from automation.build_relay.errors import ConfigurationError

SCHEMA_PATH = Path(__file__).resolve().parent / "config.schema.json"

DEFAULT_SIGNATURE_HEADER = "expo-signature"
DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_DISPATCH_EVENT = "build-relay"
DEFAULT_NOTION_API_URL = "https://api.notion.com/v1"
DEFAULT_NOTION_VERSION = "2022-06-28"
DEFAULT_TASK_PREFIX = "TASK"
DEFAULT_WORKSPACE_DOMAIN = "notion.so"
DEFAULT_TIMEOUT_SEC = 15.0
DEFAULT_MAX_WORKERS = 4

TRUTHY = {"1", "true", "yes", "on"}


class DispatchMode(str, Enum):
    SLACK = "slack"
    GITHUB = "github"
    COMMENT = "comment"


@dataclass(frozen=True)
class RelayConfig:
    """Immutable settings for one relay process."""

    dispatch_mode: DispatchMode = DispatchMode.SLACK
    webhook_secret: str = ""
    signature_header: str = DEFAULT_SIGNATURE_HEADER
    slack_webhook_url: str = ""
    github_token: str = ""
    github_repository: str = ""
    github_api_url: str = DEFAULT_GITHUB_API_URL
    github_dispatch_event: str = DEFAULT_DISPATCH_EVENT
    notion_token: str = ""
    notion_api_url: str = DEFAULT_NOTION_API_URL
    notion_version: str = DEFAULT_NOTION_VERSION
    task_prefixes: tuple[str, ...] = (DEFAULT_TASK_PREFIX,)
    workspace_domain: str = DEFAULT_WORKSPACE_DOMAIN
    build_profile: str = ""
    http_timeout_sec: float = DEFAULT_TIMEOUT_SEC
    max_workers: int = DEFAULT_MAX_WORKERS

    @property
    def profile_filter_enabled(self) -> bool:
        return bool(self.build_profile)

    def require_destination(self) -> None:
        """Raise ConfigurationError when the chosen destination cannot be reached."""

        if self.dispatch_mode is DispatchMode.SLACK:
            if not self.slack_webhook_url:
                raise ConfigurationError("SLACK_WEBHOOK_URL missing")
            return

        if not self.github_token:
            raise ConfigurationError("GITHUB_TOKEN missing")
        if self.dispatch_mode is DispatchMode.GITHUB and not self.github_repository:
            raise ConfigurationError("GITHUB_REPOSITORY missing")


def _split_prefixes(raw: str | list[str]) -> tuple[str, ...]:
    items = raw.split(",") if isinstance(raw, str) else raw
    prefixes = tuple(p.strip().upper() for p in items if p and p.strip())
    return prefixes or (DEFAULT_TASK_PREFIX,)


def _load_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"config file missing: {path}")

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    with SCHEMA_PATH.open("r", encoding="utf-8") as f:
        schema = json.load(f)

    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    if errors:
        first = errors[0]
        where = "/".join(str(p) for p in first.absolute_path) or "<root>"
        raise ConfigurationError(f"config schema error at {where}: {first.message}")
    return data


def _resolve_mode(env: Mapping[str, str], file_value: str | None) -> DispatchMode:
    raw = env.get("DISPATCH_MODE", "").strip().lower()
    if not raw and env.get("DISPATCH_TO_GITHUB", "").strip().lower() in TRUTHY:
        raw = DispatchMode.GITHUB.value
    if not raw:
        raw = (file_value or DispatchMode.SLACK.value).lower()
    try:
        return DispatchMode(raw)
    except ValueError:
        allowed = ", ".join(m.value for m in DispatchMode)
        raise ConfigurationError(f"DISPATCH_MODE must be one of {allowed}, got {raw!r}") from None


def _resolve_repository(env: Mapping[str, str], file_value: str | None) -> str:
    repo = env.get("GITHUB_REPOSITORY", "").strip()
    if repo:
        return repo
    owner = env.get("GH_OWNER", "").strip()
    name = env.get("GH_REPO", "").strip()
    if owner and name:
        return f"{owner}/{name}"
    return file_value or ""


def _number(raw: Any, name: str, cast: type) -> Any:
    try:
        value = cast(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def load_config(environ: Mapping[str, str] | None = None) -> RelayConfig:
    """Build a RelayConfig from the environment (and RELAY_CONFIG_FILE when set)."""

    env = os.environ if environ is None else environ
    file_cfg: dict[str, Any] = {}
    config_file = env.get("RELAY_CONFIG_FILE", "").strip()
    if config_file:
        file_cfg = _load_file(Path(config_file))

    def pick(env_key: str, file_key: str, default: Any = "") -> Any:
        value = env.get(env_key, "").strip()
        if value:
            return value
        return file_cfg.get(file_key, default)

    prefixes_raw = pick("TASK_PREFIXES", "task_prefixes", DEFAULT_TASK_PREFIX)

    return RelayConfig(
        dispatch_mode=_resolve_mode(env, file_cfg.get("dispatch_mode")),
        webhook_secret=env.get("WEBHOOK_SECRET", "") or env.get("EXPO_WEBHOOK_SECRET", ""),
        signature_header=pick("SIGNATURE_HEADER", "signature_header", DEFAULT_SIGNATURE_HEADER),
        slack_webhook_url=pick("SLACK_WEBHOOK_URL", "slack_webhook_url"),
        github_token=env.get("GITHUB_TOKEN", "") or env.get("GH_REPO_DISPATCH_TOKEN", ""),
        github_repository=_resolve_repository(env, file_cfg.get("github_repository")),
        github_api_url=pick("GITHUB_API_URL", "github_api_url", DEFAULT_GITHUB_API_URL).rstrip("/"),
        github_dispatch_event=pick("GITHUB_DISPATCH_EVENT", "github_dispatch_event", DEFAULT_DISPATCH_EVENT),
        notion_token=env.get("NOTION_TOKEN", ""),
        notion_api_url=pick("NOTION_API_URL", "notion_api_url", DEFAULT_NOTION_API_URL).rstrip("/"),
        notion_version=pick("NOTION_VERSION", "notion_version", DEFAULT_NOTION_VERSION),
        task_prefixes=_split_prefixes(prefixes_raw),
        workspace_domain=pick("WORKSPACE_DOMAIN", "workspace_domain", DEFAULT_WORKSPACE_DOMAIN).lower(),
        build_profile=pick("BUILD_PROFILE", "build_profile").strip(),
        http_timeout_sec=_number(
            pick("HTTP_TIMEOUT_SEC", "http_timeout_sec", DEFAULT_TIMEOUT_SEC), "HTTP_TIMEOUT_SEC", float
        ),
        max_workers=_number(pick("MAX_WORKERS", "max_workers", DEFAULT_MAX_WORKERS), "MAX_WORKERS", int),
    )
