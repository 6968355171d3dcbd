"""
Adapters between stored brief records and pipeline values.

The memory store itself lives outside this package. These helpers only
translate: pick which stored brief counts as "the previous one", rebuild a
GenerationAttempt from its payload so the novelty gate can read its titles,
and shape a PipelineResult into a payload the caller can persist.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

from delta_brief.config import DocumentPatterns
from delta_brief.extractor import GenerationAttempt, RankedItem, extract


logger = logging.getLogger("brief-records")

MODE_PERSONALIZED = "personalized"
MODE_GENERIC = "generic"


@runtime_checkable
class MemoryStore(Protocol):
    def add(self, record: Mapping[str, Any]) -> str: ...

    def search(self, query: str, filters: Mapping[str, Sequence[str]] | None = None, limit: int = 5) -> List[Dict[str, Any]]: ...


def _created_at(record: Mapping[str, Any]) -> datetime:
    raw = record.get("created_at") or ""
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return datetime.min


def select_prior_brief(records: Sequence[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    """Latest personalized brief if there is one, otherwise the latest brief of any mode."""
    if not records:
        return None

    def _sort_key(record):
        created = _created_at(record)
        # Aware values are compared in UTC; naive values are taken as UTC already.
        return created.astimezone(timezone.utc).replace(tzinfo=None) if created.tzinfo else created

    ordered = sorted(records, key=_sort_key, reverse=True)
    for record in ordered:
        payload = record.get("payload") or {}
        if payload.get("mode") == MODE_PERSONALIZED:
            return record
    return ordered[0]


def prior_attempt_from_payload(
    payload: Mapping[str, Any] | None,
    patterns: DocumentPatterns | None = None,
) -> Optional[GenerationAttempt]:
    """
    Rebuild the previous brief's fields from a stored payload.

    Stored markdown is re-extracted with the current patterns. Older records
    that only kept a list of titles ("moves") become items with no category.
    """
    if not payload:
        return None
    markdown = payload.get("markdown")
    if isinstance(markdown, str) and markdown.strip():
        attempt = extract(markdown, 0, None, patterns)
        if attempt.items:
            return attempt

    titles = [str(t).strip() for t in (payload.get("moves") or []) if str(t).strip()]
    if not titles:
        logger.info("records.prior_brief_without_items")
        return None
    return GenerationAttempt(
        raw_text=markdown if isinstance(markdown, str) else "",
        items=tuple(RankedItem(title=t, category=None, raw_block=t) for t in titles),
    )


def result_payload(result, mode: str = MODE_PERSONALIZED) -> Dict[str, Any]:
    """
    Payload for persisting a PipelineResult as a brief record.

    structuredData keeps the camelCase keys existing brief readers expect.
    """
    resolver = None
    if result.resolution is not None:
        resolver = {
            "previously": result.resolution.previous_state,
            "now": result.resolution.current_state,
            "update": result.resolution.updated_plan,
        }
    return {
        "markdown": result.final_text,
        "highlights": list(result.highlights),
        "moves": [item.title for item in result.items],
        "structuredData": {
            "resolver": resolver,
            "frameworkByMove": [item.category for item in result.items],
        },
        "validation": {
            "retry_count": result.retry_count,
            "errors": [error.describe() for error in result.errors],
            "max_similarity": None if result.similarity_report is None else result.similarity_report.max_score,
        },
        "mode": mode,
    }
