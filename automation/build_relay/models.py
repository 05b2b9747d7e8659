"""Request-scoped data passed between the relay stages.

decode_notification() is the single place inbound JSON is read. Every field is
optional there: anything missing or malformed decodes to an empty string so
later stages never touch the raw payload.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class InboundEvent:
    raw_body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        lowered = {str(k).lower(): str(v) for k, v in dict(self.headers).items()}
        object.__setattr__(self, "headers", lowered)

    def header(self, name: str) -> str:
        return self.headers.get(name.lower(), "")


@dataclass(frozen=True)
class ChangeRequest:
    """The pull request an event refers to, when the payload carries one."""

    repo: str
    number: int
    title: str = ""
    body: str = ""
    url: str = ""
    branch: str = ""


@dataclass(frozen=True)
class BuildNotification:
    status: str = ""
    build_url: str = ""
    git_ref: str = ""
    commit_message: str = ""
    profile: str = ""
    change_request: ChangeRequest | None = None

    @property
    def branch(self) -> str:
        if self.git_ref:
            return self.git_ref
        return self.change_request.branch if self.change_request else ""

    @property
    def back_reference_url(self) -> str:
        """URL written onto linked records: the change request, else the build page."""

        if self.change_request and self.change_request.url:
            return self.change_request.url
        return self.build_url


@dataclass(frozen=True)
class ShortCode:
    prefix: str
    number: str

    @property
    def key(self) -> str:
        return f"{self.prefix.upper()}-{self.number}"


@dataclass(frozen=True)
class DirectLink:
    url: str
    record_id: str

    @property
    def key(self) -> str:
        return self.record_id


WorkItemReference = Union[ShortCode, DirectLink]


@dataclass(frozen=True)
class ExtractedReferences:
    short_codes: tuple[str, ...] = ()
    direct_links: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.short_codes or self.direct_links)


@dataclass(frozen=True)
class ResolvedRecord:
    id: str
    display_url: str
    short_codes: tuple[str, ...] = ()

    def label(self) -> str:
        if self.short_codes:
            return f"{', '.join(self.short_codes)} • {self.display_url}"
        return self.display_url

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "url": self.display_url, "short_codes": list(self.short_codes)}


@dataclass(frozen=True)
class AnnotationResult:
    record: ResolvedRecord
    annotated: bool
    warning: str | None = None

    @property
    def ok(self) -> bool:
        return self.warning is None


@dataclass(frozen=True)
class LinkResult:
    record: ResolvedRecord
    annotated: bool
    notified: bool

    def to_dict(self) -> dict[str, Any]:
        return {**self.record.to_dict(), "annotated": self.annotated, "notified": self.notified}


def parse_body(raw_body: bytes) -> dict[str, Any]:
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


def _lookup(payload: Mapping[str, Any], path: str) -> Any:
    node: Any = payload
    for part in path.split("."):
        if not isinstance(node, Mapping):
            return None
        node = node.get(part)
    return node


def _text(value: Any) -> str:
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value
    return ""


def first_text(payload: Mapping[str, Any], *paths: str) -> str:
    for path in paths:
        value = _text(_lookup(payload, path)).strip()
        if value:
            return value
    return ""


def _decode_change_request(payload: Mapping[str, Any]) -> ChangeRequest | None:
    number_raw = _lookup(payload, "pull_request.number")
    if isinstance(number_raw, bool):
        return None
    try:
        number = int(number_raw)
    except (TypeError, ValueError):
        return None
    repo = first_text(payload, "repository.full_name")
    if not repo:
        return None
    return ChangeRequest(
        repo=repo,
        number=number,
        title=first_text(payload, "pull_request.title"),
        body=first_text(payload, "pull_request.body"),
        url=first_text(payload, "pull_request.html_url"),
        branch=first_text(payload, "pull_request.head.ref"),
    )


def decode_notification(payload: Mapping[str, Any]) -> BuildNotification:
    return BuildNotification(
        status=first_text(payload, "status", "event"),
        build_url=first_text(payload, "buildDetailsPageUrl", "build.detailsPageUrl"),
        git_ref=first_text(payload, "gitRef", "metadata.gitRef", "metadata.appVersion"),
        commit_message=first_text(payload, "metadata.commitMessage", "metadata.gitCommitMessage"),
        profile=first_text(
            payload, "metadata.buildProfile", "metadata.appBuildProfile", "metadata.profile"
        ),
        change_request=_decode_change_request(payload),
    )
