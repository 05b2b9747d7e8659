from __future__ import annotations

import json

from automation.build_relay.models import (
    BuildNotification,
    ChangeRequest,
    InboundEvent,
    ResolvedRecord,
    decode_notification,
    parse_body,
)


def _decode(raw: bytes) -> BuildNotification:
    return decode_notification(parse_body(raw))


def test_empty_object_decodes_to_empty_fields() -> None:
    notification = _decode(b"{}")
    assert notification == BuildNotification()
    assert notification.status == ""
    assert notification.change_request is None


def test_malformed_or_non_object_json_is_treated_as_empty() -> None:
    assert parse_body(b"not json") == {}
    assert parse_body(b"[1, 2, 3]") == {}
    assert parse_body(b"\xff\xfe") == {}
    assert _decode(b'{"status": ') == BuildNotification()


def test_top_level_fields_win_over_fallbacks() -> None:
    body = {
        "status": "finished",
        "event": "build",
        "buildDetailsPageUrl": "https://expo.dev/builds/1",
        "build": {"detailsPageUrl": "https://expo.dev/builds/2"},
        "gitRef": "feature/TASK-1",
        "metadata": {"gitRef": "other", "commitMessage": "fix", "buildProfile": "preview"},
    }
    notification = _decode(json.dumps(body).encode())
    assert notification.status == "finished"
    assert notification.build_url == "https://expo.dev/builds/1"
    assert notification.git_ref == "feature/TASK-1"
    assert notification.commit_message == "fix"
    assert notification.profile == "preview"


def test_nested_fallbacks_are_used_when_top_level_missing() -> None:
    body = {
        "event": "build.completed",
        "build": {"detailsPageUrl": "https://expo.dev/builds/2"},
        "metadata": {
            "appVersion": "1.4.0",
            "gitCommitMessage": "chore: bump",
            "appBuildProfile": "production",
        },
    }
    notification = _decode(json.dumps(body).encode())
    assert notification.status == "build.completed"
    assert notification.build_url == "https://expo.dev/builds/2"
    assert notification.git_ref == "1.4.0"
    assert notification.commit_message == "chore: bump"
    assert notification.profile == "production"


def test_wrongly_typed_fields_count_as_missing() -> None:
    body = {"status": {"nested": True}, "metadata": "oops", "gitRef": 42, "build": ["x"]}
    notification = _decode(json.dumps(body).encode())
    assert notification.status == ""
    assert notification.git_ref == "42"
    assert notification.build_url == ""
    assert notification.profile == ""


def test_change_request_block_is_decoded() -> None:
    body = {
        "pull_request": {
            "number": 12,
            "title": "TASK-9 login",
            "body": "details",
            "html_url": "https://github.com/example/app/pull/12",
            "head": {"ref": "feature/TASK-9"},
        },
        "repository": {"full_name": "example/app"},
    }
    notification = _decode(json.dumps(body).encode())
    assert notification.change_request == ChangeRequest(
        repo="example/app",
        number=12,
        title="TASK-9 login",
        body="details",
        url="https://github.com/example/app/pull/12",
        branch="feature/TASK-9",
    )
    assert notification.branch == "feature/TASK-9"
    assert notification.back_reference_url == "https://github.com/example/app/pull/12"


def test_change_request_needs_repository_and_number() -> None:
    assert _decode(b'{"pull_request": {"number": 3}}').change_request is None
    assert _decode(b'{"pull_request": {}, "repository": {"full_name": "a/b"}}').change_request is None


def test_back_reference_falls_back_to_build_url() -> None:
    notification = BuildNotification(build_url="https://expo.dev/builds/1")
    assert notification.back_reference_url == "https://expo.dev/builds/1"


def test_inbound_event_headers_are_case_insensitive() -> None:
    event = InboundEvent(raw_body=b"{}", headers={"Expo-Signature": "sha1=abc"})
    assert event.header("expo-signature") == "sha1=abc"
    assert event.header("EXPO-SIGNATURE") == "sha1=abc"
    assert event.header("missing") == ""


def test_resolved_record_label() -> None:
    record = ResolvedRecord(id="x", display_url="https://www.notion.so/x", short_codes=("TASK-1",))
    assert record.label() == "TASK-1 • https://www.notion.so/x"
    assert ResolvedRecord(id="x", display_url="u").label() == "u"
