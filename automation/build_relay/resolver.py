"""Resolve work-item references to canonical workspace records.

Short codes go through a workspace text search and take the first page hit
exactly as the workspace ranks it; there is no relevance threshold, so an
ambiguous title can link the wrong page. Direct links are decoded locally.
Results are merged by canonical id so a task mentioned both ways is linked
once.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from automation.build_relay.errors import HttpCallError
from automation.build_relay.identifiers import canonical_record_id, record_url
from automation.build_relay.models import DirectLink, ResolvedRecord, ShortCode, WorkItemReference
from automation.build_relay.workspace import WorkspacePort

logger = logging.getLogger("build-relay")


def resolve_short_code(code: ShortCode, workspace: WorkspacePort | None) -> ResolvedRecord | None:
    if workspace is None:
        logger.info("workspace lookup skipped code=%s reason=no-token", code.key)
        return None
    try:
        results = workspace.search_pages(code.key)
    except HttpCallError as exc:
        logger.warning("workspace search failed code=%s err=%s", code.key, exc)
        return None

    for result in results:
        if result.get("object", "page") != "page":
            continue
        record_id = canonical_record_id(str(result.get("id", "")))
        if record_id is None:
            continue
        logger.info("workspace resolved code=%s record=%s", code.key, record_id)
        return ResolvedRecord(id=record_id, display_url=record_url(record_id), short_codes=(code.key,))

    logger.info("workspace no results code=%s", code.key)
    return None


def resolve_reference(ref: WorkItemReference, workspace: WorkspacePort | None) -> ResolvedRecord | None:
    if isinstance(ref, DirectLink):
        return ResolvedRecord(id=ref.record_id, display_url=ref.url)
    return resolve_short_code(ref, workspace)


def merge_records(resolved: list[tuple[WorkItemReference, ResolvedRecord | None]]) -> list[ResolvedRecord]:
    """Collapse resolutions sharing a canonical id, keeping first-seen order.

    A direct-link URL replaces a synthesized one; short codes accumulate.
    """

    merged: dict[str, ResolvedRecord] = {}
    from_link: set[str] = set()
    for ref, record in resolved:
        if record is None:
            continue
        existing = merged.get(record.id)
        if existing is None:
            merged[record.id] = record
        else:
            codes = tuple(sorted(set(existing.short_codes) | set(record.short_codes)))
            display_url = existing.display_url
            if isinstance(ref, DirectLink) and record.id not in from_link:
                display_url = record.display_url
            merged[record.id] = ResolvedRecord(id=record.id, display_url=display_url, short_codes=codes)
        if isinstance(ref, DirectLink):
            from_link.add(record.id)
    return list(merged.values())


def resolve_references(
    refs: list[WorkItemReference],
    workspace: WorkspacePort | None,
    max_workers: int = 4,
) -> list[ResolvedRecord]:
    if not refs:
        return []
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(refs)))) as pool:
        records = list(pool.map(lambda ref: resolve_reference(ref, workspace), refs))
    return merge_records(list(zip(refs, records)))
