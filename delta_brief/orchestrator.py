"""
Validation-gated retry loop around the generation service.

One pipeline run is strictly sequential:

    Idle -> Generating -> Extracting -> Validating -> Accepted
                 ^                           |
                 +-------- Retrying <--------+-> Exhausted

Gate failures are recoverable: the previous answer and a feedback message
listing every failure are appended to the conversation and the service is
called again, until the gates pass or the retry budget runs out. When the
budget runs out the last attempt is still returned (best effort) together
with its errors; nothing is silently dropped.

Generation-service failures (ProviderError and anything else the service
raises) are not retried here. They propagate to the caller, which decides
whether to rerun the whole brief.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional, Tuple

from delta_brief.config import (
    PIPELINE_EXPECTED_ITEM_COUNT,
    PipelineConfig,
    PipelineConfigError,
)
from delta_brief.extractor import GenerationAttempt, RankedItem, ResolutionStatement, extract
from delta_brief.gates import ValidationError, run_gates
from delta_brief.llm_provider import GenerationService
from delta_brief.metrics import record_attempt, record_pipeline_run
from delta_brief.prompts import build_conversation, format_feedback
from delta_brief.similarity import SimilarityReport, compare_all


logger = logging.getLogger("brief-pipeline")


class PipelineState(enum.Enum):
    IDLE = "idle"
    GENERATING = "generating"
    EXTRACTING = "extracting"
    VALIDATING = "validating"
    RETRYING = "retrying"
    ACCEPTED = "accepted"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class BriefRequest:
    topic: str
    context: Mapping[str, str] = field(default_factory=dict)
    expected_item_count: int = PIPELINE_EXPECTED_ITEM_COUNT
    allowed_categories: Optional[Tuple[str, ...]] = None
    prior_document: Optional[GenerationAttempt] = None
    novelty_check_enabled: bool = True
    # None falls back to the PipelineConfig values.
    max_retries: Optional[int] = None
    require_resolution_with_prior: Optional[bool] = None
    system_prompt: Optional[str] = None
    user_prompt_template: Optional[str] = None


@dataclass(frozen=True)
class PipelineResult:
    final_text: str
    items: Tuple[RankedItem, ...]
    similarity_report: Optional[SimilarityReport]
    retry_count: int
    errors: Tuple[ValidationError, ...] = ()
    highlights: Tuple[str, ...] = ()
    resolution: Optional[ResolutionStatement] = None
    deadline_exceeded: bool = False
    attempts: int = 1

    @property
    def accepted(self) -> bool:
        return not self.errors

    @property
    def titles(self) -> List[str]:
        return [item.title for item in self.items]


class BriefPipeline:
    """
    Runs one brief request through the generate / extract / validate loop.

    The service is always called as complete(conversation, temperature=...),
    so it must accept the temperature keyword (see GenerationService).
    """

    def __init__(self, service: GenerationService, config: PipelineConfig | None = None):
        self.service = service
        self.config = config or PipelineConfig.from_env()
        self.config.validate()

    def _transition(self, state: PipelineState, new_state: PipelineState, attempt_no: int) -> PipelineState:
        logger.debug("pipeline.state from=%s to=%s attempt=%s", state.value, new_state.value, attempt_no)
        return new_state

    def _resolve_budget(self, request: BriefRequest) -> int:
        max_retries = self.config.max_retries if request.max_retries is None else request.max_retries
        if max_retries < 0:
            raise PipelineConfigError(f"max_retries must be >= 0, got {max_retries}")
        if request.expected_item_count < 0:
            raise PipelineConfigError(f"expected_item_count must be >= 0, got {request.expected_item_count}")
        return max_retries

    def _deadline_passed(self, started: float) -> bool:
        if self.config.deadline_seconds <= 0:
            return False
        return (time.monotonic() - started) >= self.config.deadline_seconds

    def _similarity_report(self, attempt: GenerationAttempt, request: BriefRequest) -> Optional[SimilarityReport]:
        if not request.novelty_check_enabled or request.prior_document is None:
            return None
        return compare_all(attempt.titles, request.prior_document.titles, self.config.thresholds)

    def run(self, request: BriefRequest) -> PipelineResult:
        max_retries = self._resolve_budget(request)
        require_resolution = (
            self.config.require_resolution_with_prior
            if request.require_resolution_with_prior is None
            else request.require_resolution_with_prior
        )
        patterns = self.config.patterns
        prior_titles = request.prior_document.titles if request.prior_document is not None else []

        conversation: List[Dict[str, str]] = build_conversation(
            request.topic,
            request.context,
            request.expected_item_count,
            request.allowed_categories,
            patterns,
            system_prompt=request.system_prompt,
            user_prompt_template=request.user_prompt_template,
        )

        started = time.monotonic()
        state = PipelineState.IDLE
        retry_count = 0
        deadline_exceeded = False

        while True:
            attempt_no = retry_count + 1
            state = self._transition(state, PipelineState.GENERATING, attempt_no)
            temperature = self.config.temperature_for_attempt(retry_count)
            try:
                raw_text = self.service.complete(list(conversation), temperature=temperature)
            except Exception as exc:
                logger.error(
                    "pipeline.generation_failed attempt=%s error=%s: %s",
                    attempt_no,
                    exc.__class__.__name__,
                    exc,
                )
                record_pipeline_run("error")
                raise

            state = self._transition(state, PipelineState.EXTRACTING, attempt_no)
            attempt = extract(raw_text or "", request.expected_item_count, request.allowed_categories, patterns)

            state = self._transition(state, PipelineState.VALIDATING, attempt_no)
            errors = run_gates(
                attempt,
                request.expected_item_count,
                request.allowed_categories,
                request.prior_document,
                request.novelty_check_enabled,
                require_resolution_with_prior=require_resolution,
                patterns=patterns,
                thresholds=self.config.thresholds,
            )
            attempt = replace(attempt, errors=tuple(errors))
            logger.info(
                "pipeline.attempt attempt=%s temperature=%.2f items=%s errors=%s",
                attempt_no,
                temperature,
                len(attempt.items),
                ",".join(e.code for e in errors) or "none",
            )

            if not errors:
                record_attempt("accepted")
                state = self._transition(state, PipelineState.ACCEPTED, attempt_no)
                break

            record_attempt("rejected")
            if retry_count >= max_retries:
                state = self._transition(state, PipelineState.EXHAUSTED, attempt_no)
                break
            if self._deadline_passed(started):
                deadline_exceeded = True
                logger.warning(
                    "pipeline.deadline_exceeded attempt=%s deadline_seconds=%s",
                    attempt_no,
                    self.config.deadline_seconds,
                )
                state = self._transition(state, PipelineState.EXHAUSTED, attempt_no)
                break

            state = self._transition(state, PipelineState.RETRYING, attempt_no)
            conversation.append({"role": "assistant", "content": attempt.raw_text})
            conversation.append({"role": "user", "content": format_feedback(errors, prior_titles)})
            retry_count += 1

        if state is PipelineState.ACCEPTED:
            record_pipeline_run("accepted", retry_count)
        else:
            record_pipeline_run("deadline" if deadline_exceeded else "exhausted", retry_count)
            logger.warning(
                "pipeline.exhausted retries=%s errors=%s",
                retry_count,
                ",".join(e.code for e in attempt.errors),
            )

        return PipelineResult(
            final_text=attempt.raw_text,
            items=attempt.items,
            similarity_report=self._similarity_report(attempt, request),
            retry_count=retry_count,
            errors=attempt.errors,
            highlights=attempt.highlights,
            resolution=attempt.resolution,
            deadline_exceeded=deadline_exceeded,
            attempts=retry_count + 1,
        )


def run_pipeline(
    request: BriefRequest,
    service: GenerationService,
    config: PipelineConfig | None = None,
) -> PipelineResult:
    """
    Generate one brief, retrying on gate failures. See BriefPipeline.run.

    service.complete must accept a temperature keyword argument.
    """
    return BriefPipeline(service, config).run(request)
