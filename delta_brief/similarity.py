import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Set, Tuple

from delta_brief.config import NoveltyThresholds
from delta_brief.normalizer import bigrams, normalize


logger = logging.getLogger("brief-similarity")

REASON_EXACT = "exact"
REASON_HIGH_SIMILARITY = "high_similarity"


@dataclass(frozen=True)
class SimilarityScore:
    score: float
    reason: Optional[str]


@dataclass(frozen=True)
class SimilarityPair:
    candidate: str
    reference: str
    score: float
    reason: str


@dataclass(frozen=True)
class SimilarityReport:
    passed: bool
    max_score: float
    pairs: Tuple[SimilarityPair, ...]


def _jaccard(a: Set[str], b: Set[str]) -> float:
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    intersection = len(a & b)
    return intersection / (len(a) + len(b) - intersection)


def _score_tokens(
    candidate_tokens: Sequence[str],
    reference_tokens: Sequence[str],
    thresholds: NoveltyThresholds,
) -> SimilarityScore:
    # Exact canonical match wins even when both sides normalize to nothing.
    if " ".join(candidate_tokens) == " ".join(reference_tokens):
        return SimilarityScore(score=1.0, reason=REASON_EXACT)

    value = _jaccard(bigrams(candidate_tokens), bigrams(reference_tokens))
    threshold = thresholds.threshold_for(len(candidate_tokens), len(reference_tokens))
    if value >= threshold:
        return SimilarityScore(score=value, reason=REASON_HIGH_SIMILARITY)
    return SimilarityScore(score=value, reason=None)


def score(
    candidate_text: str,
    reference_text: str,
    thresholds: NoveltyThresholds | None = None,
) -> SimilarityScore:
    """
    Lexical novelty score between two short phrases.

    Returns score=1.0/"exact" for identical canonical strings, otherwise the
    bigram Jaccard similarity with reason "high_similarity" when it reaches
    the length-dependent threshold, or reason None when it does not.
    """
    return _score_tokens(normalize(candidate_text), normalize(reference_text), thresholds or NoveltyThresholds())


def compare_all(
    candidates: Sequence[str],
    references: Sequence[str],
    thresholds: NoveltyThresholds | None = None,
) -> SimilarityReport:
    """
    Score every (candidate, reference) pair, candidates outer and references inner.

    max_score tracks the highest score seen even when it did not trigger a
    reason; pairs holds only the collisions.
    """
    limits = thresholds or NoveltyThresholds()
    reference_tokens = [(ref, normalize(ref)) for ref in references]

    max_score = 0.0
    pairs = []
    for candidate in candidates:
        candidate_tokens = normalize(candidate)
        for reference, ref_tokens in reference_tokens:
            result = _score_tokens(candidate_tokens, ref_tokens, limits)
            if result.score > max_score:
                max_score = result.score
            if result.reason:
                pairs.append(
                    SimilarityPair(
                        candidate=candidate,
                        reference=reference,
                        score=result.score,
                        reason=result.reason,
                    )
                )

    if pairs:
        logger.info(
            "novelty.collisions count=%s max_score=%.3f candidates=%s references=%s",
            len(pairs),
            max_score,
            len(candidates),
            len(references),
        )
    return SimilarityReport(passed=not pairs, max_score=max_score, pairs=tuple(pairs))
