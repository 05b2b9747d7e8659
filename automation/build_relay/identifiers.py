"""Work-item references in free text and canonical workspace record ids."""

from __future__ import annotations

import re
from collections.abc import Iterable

from automation.build_relay.models import DirectLink, ExtractedReferences, ShortCode, WorkItemReference

RECORD_URL_BASE = "https://www.notion.so"

_RECORD_ID_RE = re.compile(
    r"(?<![0-9a-f])"
    r"([0-9a-f]{8})-?([0-9a-f]{4})-?([0-9a-f]{4})-?([0-9a-f]{4})-?([0-9a-f]{12})"
    r"(?=[?#/]|$)",
    re.IGNORECASE,
)
_TRAILING_PUNCTUATION = ".,;:!'\""


def short_code_pattern(prefixes: Iterable[str]) -> re.Pattern[str]:
    alternation = "|".join(re.escape(p) for p in prefixes)
    return re.compile(rf"\b(?:{alternation})-\d+\b", re.IGNORECASE)


def direct_link_pattern(domain: str) -> re.Pattern[str]:
    return re.compile(
        rf"https?://(?:[\w-]+\.)*{re.escape(domain)}(?::\d+)?(?:[/?#][^\s)\]>]*)?(?=[\s)\]>]|$)",
        re.IGNORECASE,
    )


def extract(
    title: str,
    body: str,
    branch: str,
    prefixes: Iterable[str] = ("TASK",),
    domain: str = "notion.so",
) -> ExtractedReferences:
    """Find short codes and workspace links in the given text fields.

    Both result tuples are sorted and free of duplicates. Finding nothing is
    not an error.
    """

    text = "\n".join(part or "" for part in (title, body, branch))

    codes = {m.group(0).upper() for m in short_code_pattern(prefixes).finditer(text)}
    links = set()
    for m in direct_link_pattern(domain).finditer(text):
        link = m.group(0).rstrip(_TRAILING_PUNCTUATION)
        if link:
            links.add(link)

    return ExtractedReferences(short_codes=tuple(sorted(codes)), direct_links=tuple(sorted(links)))


def canonical_record_id(raw_id: str) -> str | None:
    """Normalize a 32-hex record id (hyphens optional) to 8-4-4-4-12 lower case."""

    compact = raw_id.replace("-", "").strip().lower()
    if len(compact) != 32 or not re.fullmatch(r"[0-9a-f]{32}", compact):
        return None
    return f"{compact[:8]}-{compact[8:12]}-{compact[12:16]}-{compact[16:20]}-{compact[20:]}"


def record_id_from_url(url: str) -> str | None:
    match = _RECORD_ID_RE.search(url)
    if not match:
        return None
    return canonical_record_id("".join(match.groups()))


def record_url(record_id: str) -> str:
    return f"{RECORD_URL_BASE}/{record_id.replace('-', '')}"


def to_references(extracted: ExtractedReferences) -> list[WorkItemReference]:
    """Turn extracted strings into typed references, one per normalized key.

    Links without a 32-hex record id are dropped here.
    """

    refs: list[WorkItemReference] = []
    seen: set[str] = set()
    for code in extracted.short_codes:
        prefix, _, number = code.rpartition("-")
        ref = ShortCode(prefix=prefix, number=number)
        if ref.key not in seen:
            seen.add(ref.key)
            refs.append(ref)
    for url in extracted.direct_links:
        record_id = record_id_from_url(url)
        if record_id is None or record_id in seen:
            continue
        seen.add(record_id)
        refs.append(DirectLink(url=url, record_id=record_id))
    return refs
