"""Outbound action for a relayed build: Slack message, GitHub repository_dispatch,
or a pull request comment listing linked tasks.

The mode is fixed per deployment. Unlike annotation, a failure here is the
request's failure and is raised as DispatchError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from automation.build_relay.config import DispatchMode, RelayConfig
from automation.build_relay.errors import DispatchError, HttpCallError
from automation.build_relay.http_client import request_json
from automation.build_relay.models import BuildNotification, ResolvedRecord

logger = logging.getLogger("build-relay")

UNKNOWN_STATUS = "unknown"
COMMENT_HEADER = "🔗 Linked tasks"
COMMENTS_PAGE_SIZE = 100


class ChatPort(Protocol):
    def send(self, text: str) -> None:
        ...


class GitHubPort(Protocol):
    def repository_dispatch(self, repo: str, event_type: str, client_payload: dict[str, Any]) -> None:
        ...

    def list_issue_comments(self, repo: str, number: int) -> list[dict[str, Any]]:
        ...

    def create_issue_comment(self, repo: str, number: int, body: str) -> None:
        ...


class SlackNotifier:
    def __init__(self, webhook_url: str, timeout: float) -> None:
        self._webhook_url = webhook_url
        self._timeout = timeout

    def send(self, text: str) -> None:
        request_json("POST", self._webhook_url, timeout=self._timeout, payload={"text": text})


class GitHubClient:
    def __init__(self, token: str, api_url: str, timeout: float) -> None:
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout

    def _call(self, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
        return request_json(
            method,
            f"{self._api_url}{path}",
            timeout=self._timeout,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {self._token}",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            payload=payload,
        )

    def repository_dispatch(self, repo: str, event_type: str, client_payload: dict[str, Any]) -> None:
        self._call("POST", f"/repos/{repo}/dispatches", {"event_type": event_type, "client_payload": client_payload})

    def list_issue_comments(self, repo: str, number: int) -> list[dict[str, Any]]:
        data = self._call("GET", f"/repos/{repo}/issues/{number}/comments?per_page={COMMENTS_PAGE_SIZE}")
        return [c for c in data if isinstance(c, dict)] if isinstance(data, list) else []

    def create_issue_comment(self, repo: str, number: int, body: str) -> None:
        self._call("POST", f"/repos/{repo}/issues/{number}/comments", {"body": body})


@dataclass(frozen=True)
class DispatchReceipt:
    mode: DispatchMode
    dispatched: bool
    reason: str = ""


def _commit_summary(commit_message: str) -> str:
    lines = commit_message.strip().splitlines()
    return lines[0].strip() if lines else ""


def compose_message(notification: BuildNotification, records: list[ResolvedRecord]) -> str:
    text = f"🚀 Build {notification.status or UNKNOWN_STATUS}"
    if notification.branch:
        text += f" on `{notification.branch}`"
    if notification.build_url:
        text += f"\n📱 {notification.build_url}"
    if records:
        text += f"\n🔗 Task: {', '.join(r.label() for r in records)}"
    summary = _commit_summary(notification.commit_message)
    if summary:
        text += f"\n📝 {summary}"
    if notification.profile:
        text += f"\n🧪 Profile: {notification.profile}"
    return text


def dispatch_payload(notification: BuildNotification, records: list[ResolvedRecord]) -> dict[str, Any]:
    first = records[0] if records else None
    task_ids = [code for r in records for code in r.short_codes]
    return {
        "status": notification.status or UNKNOWN_STATUS,
        "buildUrl": notification.build_url,
        "branch": notification.branch,
        "commitMessage": notification.commit_message,
        "profile": notification.profile,
        "taskIds": task_ids,
        "records": [{"id": r.id, "url": r.display_url} for r in records],
        "taskId": task_ids[0] if task_ids else "",
        "notionUrl": first.display_url if first else "",
    }


def compose_comment(records: list[ResolvedRecord]) -> str:
    lines = [f"{COMMENT_HEADER}:"]
    lines.extend(f"- {r.label()}" for r in records)
    return "\n".join(lines)


class Dispatcher:
    def __init__(
        self,
        config: RelayConfig,
        chat: ChatPort | None = None,
        github: GitHubPort | None = None,
    ) -> None:
        self._config = config
        self._chat = chat
        self._github = github

    @classmethod
    def from_config(cls, config: RelayConfig) -> Dispatcher:
        chat = None
        github = None
        if config.slack_webhook_url:
            chat = SlackNotifier(config.slack_webhook_url, config.http_timeout_sec)
        if config.github_token:
            github = GitHubClient(config.github_token, config.github_api_url, config.http_timeout_sec)
        return cls(config, chat=chat, github=github)

    @property
    def mode(self) -> DispatchMode:
        return self._config.dispatch_mode

    def dispatch(self, notification: BuildNotification, records: list[ResolvedRecord]) -> DispatchReceipt:
        try:
            if self.mode is DispatchMode.SLACK:
                return self._notify(notification, records)
            if self.mode is DispatchMode.GITHUB:
                return self._redispatch(notification, records)
            return self._comment(notification, records)
        except HttpCallError as exc:
            logger.error("dispatch failed mode=%s status=%s err=%s", self.mode.value, exc.status, exc)
            raise DispatchError(f"{self.mode.value} dispatch failed", status=exc.status, detail=exc.body) from exc

    def _notify(self, notification: BuildNotification, records: list[ResolvedRecord]) -> DispatchReceipt:
        if self._chat is None:
            raise DispatchError("chat destination not configured")
        self._chat.send(compose_message(notification, records))
        logger.info("slack notified records=%s", len(records))
        return DispatchReceipt(mode=self.mode, dispatched=True)

    def _redispatch(self, notification: BuildNotification, records: list[ResolvedRecord]) -> DispatchReceipt:
        if self._github is None:
            raise DispatchError("github destination not configured")
        repo = self._config.github_repository
        event_type = self._config.github_dispatch_event
        self._github.repository_dispatch(repo, event_type, dispatch_payload(notification, records))
        logger.info("github dispatch sent repo=%s event=%s records=%s", repo, event_type, len(records))
        return DispatchReceipt(mode=self.mode, dispatched=True)

    def _comment(self, notification: BuildNotification, records: list[ResolvedRecord]) -> DispatchReceipt:
        if self._github is None:
            raise DispatchError("github destination not configured")
        target = notification.change_request
        if target is None:
            raise DispatchError("event carries no pull request to comment on")
        if not records:
            logger.info("comment skipped repo=%s pr=%s reason=no-records", target.repo, target.number)
            return DispatchReceipt(mode=self.mode, dispatched=False, reason="no linked records")

        body = compose_comment(records)
        existing = self._github.list_issue_comments(target.repo, target.number)
        if any((c.get("body") or "").strip() == body for c in existing):
            logger.info("comment exists repo=%s pr=%s", target.repo, target.number)
            return DispatchReceipt(mode=self.mode, dispatched=False, reason="comment already present")

        self._github.create_issue_comment(target.repo, target.number, body)
        logger.info("comment posted repo=%s pr=%s records=%s", target.repo, target.number, len(records))
        return DispatchReceipt(mode=self.mode, dispatched=True)
