"""
Brief Pipeline Configuration Constants

Every tunable number or phrase used by the generation pipeline lives here so
it has a name, a comment, and a single place to change it.

How to use these constants:
----------------------------
    from delta_brief.config import PIPELINE_MAX_RETRIES

Components never read these module globals at call time. They receive an
immutable PipelineConfig snapshot (see PipelineConfig.from_env) so concurrent
pipeline runs, and tests that reload this module, never share mutable state.
"""

import os
from dataclasses import dataclass, field


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


def _env_list(name: str, default: str) -> tuple:
    raw = os.getenv(name, default)
    return tuple(part.strip() for part in raw.split("|") if part.strip())


# =============================================================================
# NOVELTY / SIMILARITY CONFIGURATION
# =============================================================================
# These control when a new ranked-entry title counts as a restatement of a
# title from the previous brief.

# Bigram Jaccard threshold for short phrases (either side has <= SHORT_PHRASE_TOKENS tokens).
# Short phrases share bigrams by chance more easily, so the bar is lower.
NOVELTY_SHORT_THRESHOLD = float(os.getenv("NOVELTY_SHORT_THRESHOLD", "0.50"))

# Bigram Jaccard threshold for longer phrases.
NOVELTY_LONG_THRESHOLD = float(os.getenv("NOVELTY_LONG_THRESHOLD", "0.60"))

# Token count at or below which a phrase uses the short threshold.
NOVELTY_SHORT_PHRASE_TOKENS = int(os.getenv("NOVELTY_SHORT_PHRASE_TOKENS", "6"))


# =============================================================================
# RETRY LOOP CONFIGURATION
# =============================================================================

# Additional generation calls allowed after the first one.
# 2 means at most 3 calls per brief.
PIPELINE_MAX_RETRIES = int(os.getenv("PIPELINE_MAX_RETRIES", "2"))

# Number of ranked entries ("moves") every brief must contain.
PIPELINE_EXPECTED_ITEM_COUNT = int(os.getenv("PIPELINE_EXPECTED_ITEM_COUNT", "3"))

# Sampling temperature for the first attempt.
PIPELINE_BASE_TEMPERATURE = float(os.getenv("PIPELINE_BASE_TEMPERATURE", "0.7"))

# Added to the temperature on every retry so the model explores new wording.
PIPELINE_RETRY_TEMPERATURE_STEP = float(os.getenv("PIPELINE_RETRY_TEMPERATURE_STEP", "0.1"))

# Upper bound for the retry temperature schedule.
PIPELINE_MAX_TEMPERATURE = float(os.getenv("PIPELINE_MAX_TEMPERATURE", "1.0"))

# Wall-clock budget for a whole pipeline run, checked before each retry.
# 0 disables the deadline (the HTTP timeout below still bounds each call).
PIPELINE_DEADLINE_SECONDS = float(os.getenv("PIPELINE_DEADLINE_SECONDS", "0"))

# When a previous brief exists, require exactly one resolution line.
# Off by default: absence of a resolution line is legal unless a caller opts in.
PIPELINE_REQUIRE_RESOLUTION_WITH_PRIOR = _env_flag("PIPELINE_REQUIRE_RESOLUTION_WITH_PRIOR")


# =============================================================================
# DOCUMENT PATTERN CONFIGURATION
# =============================================================================
# Phrases the extractor looks for in generated markdown. They must match the
# wording used by the prompt template the caller sends.

# Label used on ranked-entry lines: "1) Move: <title> (Framework: <name>)"
BRIEF_ITEM_LABEL = os.getenv("BRIEF_ITEM_LABEL", "Move")

# Label inside the parenthetical category tag.
BRIEF_CATEGORY_LABEL = os.getenv("BRIEF_CATEGORY_LABEL", "Framework")

# Marker that opens the single "Previously -> Now -> Update" line.
BRIEF_RESOLUTION_MARKER = os.getenv("BRIEF_RESOLUTION_MARKER", "Thread resolved")

# Heading of the trailing highlights section.
BRIEF_HIGHLIGHTS_HEADING = os.getenv("BRIEF_HIGHLIGHTS_HEADING", "Memory highlights used")

# Headings that may appear at most once per brief ("|" separated when overridden).
BRIEF_SINGLE_OCCURRENCE_HEADINGS = _env_list(
    "BRIEF_SINGLE_OCCURRENCE_HEADINGS",
    "This week's lens|moves that matter|risks / failure modes|next action|"
    "Class discussion ammo|Memory highlights used",
)


# =============================================================================
# GENERATION SERVICE (HTTP) CONFIGURATION
# =============================================================================
# OpenAI-compatible chat completions endpoint.

LLM_HTTP_BASE_URL = os.getenv("LLM_HTTP_BASE_URL", "https://api.openai.com/v1").rstrip("/")
LLM_HTTP_MODEL = os.getenv("LLM_HTTP_MODEL", "gpt-4o-mini")
LLM_HTTP_API_KEY = os.getenv("LLM_HTTP_API_KEY", os.getenv("OPENAI_API_KEY", ""))

# Per-request timeout. The generation call is the only blocking step in the
# pipeline, so it must never wait forever.
LLM_HTTP_TIMEOUT_SECONDS = int(os.getenv("LLM_HTTP_TIMEOUT_SECONDS", "60"))

# Transport-level retries inside the HTTP client (timeouts / connection errors).
# The pipeline itself never retries service failures; this stays 0 unless an
# operator opts in.
LLM_HTTP_MAX_RETRIES = int(os.getenv("LLM_HTTP_MAX_RETRIES", "0"))

# Response length cap sent with every request.
LLM_HTTP_MAX_TOKENS = int(os.getenv("LLM_HTTP_MAX_TOKENS", "900"))


class PipelineConfigError(ValueError):
    """Raised when a request or configuration value cannot be used."""


@dataclass(frozen=True)
class NoveltyThresholds:
    short_threshold: float = NOVELTY_SHORT_THRESHOLD
    long_threshold: float = NOVELTY_LONG_THRESHOLD
    short_phrase_tokens: int = NOVELTY_SHORT_PHRASE_TOKENS

    def threshold_for(self, candidate_len: int, reference_len: int) -> float:
        if candidate_len <= self.short_phrase_tokens or reference_len <= self.short_phrase_tokens:
            return self.short_threshold
        return self.long_threshold


@dataclass(frozen=True)
class DocumentPatterns:
    item_label: str = BRIEF_ITEM_LABEL
    category_label: str = BRIEF_CATEGORY_LABEL
    resolution_marker: str = BRIEF_RESOLUTION_MARKER
    highlights_heading: str = BRIEF_HIGHLIGHTS_HEADING
    single_occurrence_headings: tuple = BRIEF_SINGLE_OCCURRENCE_HEADINGS


@dataclass(frozen=True)
class PipelineConfig:
    """
    Immutable snapshot of everything the retry loop needs.

    Built once per caller (usually via from_env) and passed explicitly into
    BriefPipeline, so two briefs generated side by side can use different
    settings without touching module globals.
    """

    max_retries: int = PIPELINE_MAX_RETRIES
    base_temperature: float = PIPELINE_BASE_TEMPERATURE
    retry_temperature_step: float = PIPELINE_RETRY_TEMPERATURE_STEP
    max_temperature: float = PIPELINE_MAX_TEMPERATURE
    deadline_seconds: float = PIPELINE_DEADLINE_SECONDS
    require_resolution_with_prior: bool = PIPELINE_REQUIRE_RESOLUTION_WITH_PRIOR
    thresholds: NoveltyThresholds = field(default_factory=NoveltyThresholds)
    patterns: DocumentPatterns = field(default_factory=DocumentPatterns)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        # Read the environment directly (not the import-time globals) so a
        # monkeypatched env is honored without reloading this module.
        return cls(
            max_retries=int(os.getenv("PIPELINE_MAX_RETRIES", str(PIPELINE_MAX_RETRIES))),
            base_temperature=float(os.getenv("PIPELINE_BASE_TEMPERATURE", str(PIPELINE_BASE_TEMPERATURE))),
            retry_temperature_step=float(
                os.getenv("PIPELINE_RETRY_TEMPERATURE_STEP", str(PIPELINE_RETRY_TEMPERATURE_STEP))
            ),
            max_temperature=float(os.getenv("PIPELINE_MAX_TEMPERATURE", str(PIPELINE_MAX_TEMPERATURE))),
            deadline_seconds=float(os.getenv("PIPELINE_DEADLINE_SECONDS", str(PIPELINE_DEADLINE_SECONDS))),
            require_resolution_with_prior=_env_flag(
                "PIPELINE_REQUIRE_RESOLUTION_WITH_PRIOR",
                "true" if PIPELINE_REQUIRE_RESOLUTION_WITH_PRIOR else "false",
            ),
            thresholds=NoveltyThresholds(
                short_threshold=float(os.getenv("NOVELTY_SHORT_THRESHOLD", str(NOVELTY_SHORT_THRESHOLD))),
                long_threshold=float(os.getenv("NOVELTY_LONG_THRESHOLD", str(NOVELTY_LONG_THRESHOLD))),
                short_phrase_tokens=int(
                    os.getenv("NOVELTY_SHORT_PHRASE_TOKENS", str(NOVELTY_SHORT_PHRASE_TOKENS))
                ),
            ),
            patterns=DocumentPatterns(
                item_label=os.getenv("BRIEF_ITEM_LABEL", BRIEF_ITEM_LABEL),
                category_label=os.getenv("BRIEF_CATEGORY_LABEL", BRIEF_CATEGORY_LABEL),
                resolution_marker=os.getenv("BRIEF_RESOLUTION_MARKER", BRIEF_RESOLUTION_MARKER),
                highlights_heading=os.getenv("BRIEF_HIGHLIGHTS_HEADING", BRIEF_HIGHLIGHTS_HEADING),
                single_occurrence_headings=_env_list(
                    "BRIEF_SINGLE_OCCURRENCE_HEADINGS", "|".join(BRIEF_SINGLE_OCCURRENCE_HEADINGS)
                ),
            ),
        )

    def validate(self) -> None:
        if self.max_retries < 0:
            raise PipelineConfigError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.deadline_seconds < 0:
            raise PipelineConfigError(f"deadline_seconds must be >= 0, got {self.deadline_seconds}")

    def temperature_for_attempt(self, retry_count: int) -> float:
        raised = self.base_temperature + (self.retry_temperature_step * max(0, retry_count))
        return min(self.max_temperature, raised)
