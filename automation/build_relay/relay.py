"""Build relay request handling.

Flow for one inbound event:
- verify the signature over the raw body (before any parsing)
- decode the payload leniently into a BuildNotification
- skip builds whose profile does not match the configured filter
- check the destination is configured
- extract task references, resolve them, merge by record id
- annotate linked records (best effort)
- dispatch the single configured outbound action

Only the dispatch step can fail the request once the signature checks out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from http import HTTPStatus
from typing import Any

from automation.build_relay import signature
from automation.build_relay.annotator import annotate_all
from automation.build_relay.config import RelayConfig
from automation.build_relay.dispatcher import Dispatcher
from automation.build_relay.errors import AuthenticationError, ConfigurationError, DispatchError
from automation.build_relay.identifiers import extract, to_references
from automation.build_relay.models import (
    BuildNotification,
    InboundEvent,
    LinkResult,
    decode_notification,
    parse_body,
)
from automation.build_relay.resolver import resolve_references
from automation.build_relay.workspace import NotionWorkspace, WorkspacePort

logger = logging.getLogger("build-relay")

GITHUB_SIGNATURE_HEADER = "X-Hub-Signature-256"


class Outcome(str, Enum):
    RESPONDED = "responded"
    REJECTED = "rejected"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class RelayOutcome:
    outcome: Outcome
    status: HTTPStatus
    payload: dict[str, Any] | None = None
    links: list[LinkResult] = field(default_factory=list)


class Relay:
    def __init__(
        self,
        config: RelayConfig,
        dispatcher: Dispatcher | None = None,
        workspace: WorkspacePort | None = None,
    ) -> None:
        self.config = config
        self.dispatcher = dispatcher or Dispatcher.from_config(config)
        self.workspace = workspace

    @classmethod
    def from_config(cls, config: RelayConfig) -> Relay:
        return cls(config, Dispatcher.from_config(config), NotionWorkspace.from_config(config))

    def signature_header_value(self, event: InboundEvent) -> str:
        return event.header(self.config.signature_header) or event.header(GITHUB_SIGNATURE_HEADER)

    def authenticate(self, event: InboundEvent) -> None:
        if not self.config.webhook_secret:
            logger.debug("signature check skipped reason=no-secret")
            return
        if not signature.verify(event.raw_body, self.config.webhook_secret, self.signature_header_value(event)):
            raise AuthenticationError("Invalid signature")

    def profile_matches(self, notification: BuildNotification) -> bool:
        if not self.config.profile_filter_enabled:
            return True
        return notification.profile.lower() == self.config.build_profile.lower()

    def handle(self, event: InboundEvent) -> RelayOutcome:
        try:
            self.authenticate(event)
        except AuthenticationError as exc:
            logger.warning("rejected signature header=%s", self.config.signature_header)
            return RelayOutcome(Outcome.REJECTED, HTTPStatus.UNAUTHORIZED, {"ok": False, "error": str(exc)})

        notification = decode_notification(parse_body(event.raw_body))
        logger.info(
            "payload status=%s profile=%s ref=%s",
            notification.status or "unknown",
            notification.profile or "-",
            notification.branch or "-",
        )

        if not self.profile_matches(notification):
            logger.info("skip profile=%s wanted=%s", notification.profile or "-", self.config.build_profile)
            return RelayOutcome(Outcome.SKIPPED, HTTPStatus.NO_CONTENT)

        try:
            self.config.require_destination()
        except ConfigurationError as exc:
            logger.error("configuration error: %s", exc)
            return RelayOutcome(Outcome.FAILED, HTTPStatus.INTERNAL_SERVER_ERROR, {"ok": False, "error": str(exc)})

        cr = notification.change_request
        extracted = extract(
            cr.title if cr else "",
            "\n".join(part for part in (notification.commit_message, cr.body if cr else "") if part),
            notification.branch,
            prefixes=self.config.task_prefixes,
            domain=self.config.workspace_domain,
        )
        if extracted:
            logger.info("references codes=%s links=%s", list(extracted.short_codes), len(extracted.direct_links))
        else:
            logger.info("references none branch=%s", notification.branch or "-")

        records = resolve_references(to_references(extracted), self.workspace, self.config.max_workers)
        annotations = annotate_all(
            records, notification.back_reference_url, self.workspace, self.config.max_workers
        )
        warnings = [f"{a.record.id}: {a.warning}" for a in annotations if not a.ok]

        try:
            receipt = self.dispatcher.dispatch(notification, records)
        except DispatchError as exc:
            links = [LinkResult(a.record, a.annotated, False) for a in annotations]
            return RelayOutcome(
                Outcome.FAILED,
                HTTPStatus.INTERNAL_SERVER_ERROR,
                {"ok": False, "error": str(exc), "detail": exc.detail[:1000], "warnings": warnings},
                links,
            )

        links = [LinkResult(a.record, a.annotated, receipt.dispatched) for a in annotations]
        payload: dict[str, Any] = {
            "ok": True,
            "mode": receipt.mode.value,
            "dispatched": receipt.dispatched,
            "records": [link.to_dict() for link in links],
            "warnings": warnings,
        }
        if receipt.reason:
            payload["reason"] = receipt.reason
        return RelayOutcome(Outcome.RESPONDED, HTTPStatus.OK, payload, links)
