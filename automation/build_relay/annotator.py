"""Write a back-reference onto linked workspace records, once.

Only the first page of a record's children is scanned for an existing
reference, so a record with more than a page of content can collect a
duplicate annotation.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from automation.build_relay.models import AnnotationResult, ResolvedRecord
from automation.build_relay.workspace import WorkspacePort

logger = logging.getLogger("build-relay")

ANNOTATION_LABEL = "🔗 Linked: "


def _fragment_texts(fragment: dict[str, Any]) -> list[str]:
    texts = [fragment.get("plain_text"), fragment.get("href")]
    text = fragment.get("text")
    if isinstance(text, dict):
        texts.append(text.get("content"))
        link = text.get("link")
        if isinstance(link, dict):
            texts.append(link.get("url"))
    return [t for t in texts if isinstance(t, str) and t]


def block_texts(block: dict[str, Any]) -> list[str]:
    content = block.get(block.get("type", ""))
    if not isinstance(content, dict):
        return []
    texts: list[str] = []
    for fragment in content.get("rich_text", []) or []:
        if isinstance(fragment, dict):
            texts.extend(_fragment_texts(fragment))
    return texts


def has_reference(blocks: list[dict[str, Any]], back_reference_url: str) -> bool:
    return any(back_reference_url in text for block in blocks for text in block_texts(block))


def reference_block(back_reference_url: str) -> dict[str, Any]:
    return {
        "object": "block",
        "type": "paragraph",
        "paragraph": {
            "rich_text": [
                {"type": "text", "text": {"content": ANNOTATION_LABEL}},
                {
                    "type": "text",
                    "text": {"content": back_reference_url, "link": {"url": back_reference_url}},
                },
            ]
        },
    }


def annotate(record: ResolvedRecord, back_reference_url: str, workspace: WorkspacePort) -> bool:
    """Append a back-reference block to the record unless one is already there.

    Returns True only when a new block was written.
    """

    blocks = workspace.list_block_children(record.id)
    if has_reference(blocks, back_reference_url):
        logger.info("annotation exists record=%s ref=%s", record.id, back_reference_url)
        return False
    workspace.append_block_children(record.id, [reference_block(back_reference_url)])
    logger.info("annotation written record=%s ref=%s", record.id, back_reference_url)
    return True


def _annotate_safely(record: ResolvedRecord, back_reference_url: str, workspace: WorkspacePort) -> AnnotationResult:
    try:
        return AnnotationResult(record=record, annotated=annotate(record, back_reference_url, workspace))
    except Exception as exc:
        logger.warning("annotation failed record=%s err=%s", record.id, exc)
        return AnnotationResult(record=record, annotated=False, warning=str(exc) or exc.__class__.__name__)


def annotate_all(
    records: list[ResolvedRecord],
    back_reference_url: str,
    workspace: WorkspacePort | None,
    max_workers: int = 4,
) -> list[AnnotationResult]:
    if not records:
        return []
    if workspace is None or not back_reference_url:
        reason = "no-token" if workspace is None else "no-back-reference"
        logger.info("annotation skipped records=%s reason=%s", len(records), reason)
        return [AnnotationResult(record=r, annotated=False) for r in records]

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(records)))) as pool:
        return list(pool.map(lambda r: _annotate_safely(r, back_reference_url, workspace), records))
