"""
Validation gates for one generation attempt.

Every gate runs on every attempt (no short-circuit) so the feedback sent back
to the model lists all problems at once instead of one per retry.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from delta_brief.config import DocumentPatterns, NoveltyThresholds
from delta_brief.extractor import GenerationAttempt, count_heading, count_resolution_markers, match_categories
from delta_brief.metrics import record_gate_failure
from delta_brief.similarity import compare_all


logger = logging.getLogger("brief-gates")

WRONG_ITEM_COUNT = "WRONG_ITEM_COUNT"
INVALID_CATEGORY = "INVALID_CATEGORY"
DUPLICATE_RESOLUTION_MARKER = "DUPLICATE_RESOLUTION_MARKER"
MISSING_REQUIRED_RESOLUTION = "MISSING_REQUIRED_RESOLUTION"
DUPLICATE_SECTION = "DUPLICATE_SECTION"
NOVELTY_VIOLATION = "NOVELTY_VIOLATION"


@dataclass(frozen=True)
class ValidationError:
    """A tagged gate failure. This is a value, not an exception."""

    code: str
    message: str
    value: Optional[str] = None
    score: Optional[float] = None
    reason: Optional[str] = None

    def describe(self) -> str:
        if self.code == NOVELTY_VIOLATION and self.score is not None:
            return f"{self.code}: {self.message} (score={self.score:.2f}, reason={self.reason})"
        return f"{self.code}: {self.message}"


def check_item_count(attempt: GenerationAttempt, expected_item_count: int) -> List[ValidationError]:
    found = len(attempt.items)
    if found == expected_item_count:
        return []
    return [
        ValidationError(
            code=WRONG_ITEM_COUNT,
            message=f"expected exactly {expected_item_count} ranked entries, found {found}",
            value=str(found),
        )
    ]


def check_categories(
    attempt: GenerationAttempt,
    allowed_categories: Sequence[str] | None,
    patterns: DocumentPatterns,
) -> List[ValidationError]:
    # None means the caller has no allow-list; an explicit empty list rejects every tag.
    if allowed_categories is None:
        return []
    allowed = set(allowed_categories)
    # Scan the raw text again instead of trusting attempt.categories so the
    # gate does not depend on how extraction associated tags with items.
    categories = match_categories(attempt.raw_text, patterns)
    return [
        ValidationError(
            code=INVALID_CATEGORY,
            message=f"category '{category}' is not one of the allowed categories",
            value=category,
        )
        for category in categories
        if category not in allowed
    ]


def check_resolution_marker(
    attempt: GenerationAttempt,
    prior_document: GenerationAttempt | None,
    patterns: DocumentPatterns,
    require_resolution_with_prior: bool = False,
) -> List[ValidationError]:
    marker = patterns.resolution_marker
    count = count_resolution_markers(attempt.raw_text, patterns)
    if count > 1:
        return [
            ValidationError(
                code=DUPLICATE_RESOLUTION_MARKER,
                message=f"'{marker}:' appears {count} times; use it exactly once",
                value=str(count),
            )
        ]
    if count == 0 and prior_document is not None and require_resolution_with_prior:
        return [
            ValidationError(
                code=MISSING_REQUIRED_RESOLUTION,
                message=f"a previous brief exists but no '{marker}: Previously: ... -> Now: ... -> Update: ...' line was found",
            )
        ]
    return []


def check_duplicate_sections(attempt: GenerationAttempt, patterns: DocumentPatterns) -> List[ValidationError]:
    errors = []
    for heading in patterns.single_occurrence_headings:
        count = count_heading(attempt.raw_text, heading)
        if count > 1:
            errors.append(
                ValidationError(
                    code=DUPLICATE_SECTION,
                    message=f"section '{heading}' appears {count} times; it must appear once",
                    value=heading,
                )
            )
    return errors


def check_novelty(
    attempt: GenerationAttempt,
    prior_document: GenerationAttempt | None,
    novelty_check_enabled: bool,
    thresholds: NoveltyThresholds,
) -> List[ValidationError]:
    if not novelty_check_enabled or prior_document is None:
        return []
    report = compare_all(attempt.titles, prior_document.titles, thresholds)
    if report.passed:
        return []
    return [
        ValidationError(
            code=NOVELTY_VIOLATION,
            message=f"'{pair.candidate}' repeats previous entry '{pair.reference}'",
            value=pair.candidate,
            score=pair.score,
            reason=pair.reason,
        )
        for pair in report.pairs
    ]


def run_gates(
    attempt: GenerationAttempt,
    expected_item_count: int,
    allowed_categories: Sequence[str] | None,
    prior_document: GenerationAttempt | None,
    novelty_check_enabled: bool,
    *,
    require_resolution_with_prior: bool = False,
    patterns: DocumentPatterns | None = None,
    thresholds: NoveltyThresholds | None = None,
) -> List[ValidationError]:
    """Evaluate every gate and return the flat list of failures (empty = accepted)."""
    active_patterns = patterns or DocumentPatterns()
    active_thresholds = thresholds or NoveltyThresholds()

    errors: List[ValidationError] = []
    errors.extend(check_item_count(attempt, expected_item_count))
    errors.extend(check_categories(attempt, allowed_categories, active_patterns))
    errors.extend(
        check_resolution_marker(
            attempt,
            prior_document,
            active_patterns,
            require_resolution_with_prior=require_resolution_with_prior,
        )
    )
    errors.extend(check_duplicate_sections(attempt, active_patterns))
    errors.extend(check_novelty(attempt, prior_document, novelty_check_enabled, active_thresholds))

    for error in errors:
        record_gate_failure(error.code)
    if errors:
        logger.info("gates.failed codes=%s", ",".join(e.code for e in errors))
    return errors
