"""Single-section processing: generate, parse, score, decide.

``process_section`` never raises for generation problems. Every
descriptor ends in exactly one terminal state (completed, skipped or
failed) so the scheduler can keep going.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace

from sectionforge.constants import ERROR_TRUNCATION_CHARS, SectionStatus
from sectionforge.generation.adapter import ContentGenerator
from sectionforge.generation.parsing import (
    build_fallback_module,
    parse_generated_content,
    to_module_data,
)
from sectionforge.generation.scorer import (
    HeuristicQualityScorer,
    QualityScorer,
)
from sectionforge.logger import PipelineLogger
from sectionforge.processing.schemas import (
    GenerationContext,
    ModuleData,
    ProcessedSection,
    ProcessingOptions,
    SectionDescriptor,
)
from sectionforge.resilience.errors import classify_error, is_retryable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Attempt:
    """One successfully parsed and scored generation."""

    module: ModuleData
    score: float
    used_fallback: bool


def decide_status(
    score: float, options: ProcessingOptions
) -> SectionStatus:
    """Map a quality score onto a terminal status."""
    if score >= options.quality_threshold:
        return SectionStatus.COMPLETED
    if options.skip_failed_sections:
        return SectionStatus.SKIPPED
    return SectionStatus.FAILED


class SectionProcessor:
    """Turns one descriptor into one ProcessedSection."""

    def __init__(
        self,
        generator: ContentGenerator,
        scorer: QualityScorer | None = None,
        pipeline_logger: PipelineLogger | None = None,
    ) -> None:
        self._generator = generator
        self._scorer = scorer or HeuristicQualityScorer()
        self._plog = pipeline_logger

    async def process_section(
        self,
        descriptor: SectionDescriptor,
        options: ProcessingOptions,
        context: GenerationContext | None = None,
        *,
        run_id: str = "",
    ) -> ProcessedSection:
        context = context or GenerationContext(position=1, total=1)
        start = time.perf_counter()
        self._log(run_id, descriptor.id, "start", SectionStatus.PROCESSING)

        best: _Attempt | None = None
        last_error: BaseException | None = None
        attempts = 0
        max_attempts = options.max_retries + 1

        while attempts < max_attempts:
            attempts += 1
            ctx = replace(context, attempt=attempts)
            if best is not None:
                ctx = replace(ctx, previous_html=best.module.html)
            try:
                payload = await asyncio.wait_for(
                    self._generator.generate(descriptor, ctx),
                    timeout=options.timeout_per_section,
                )
            except TimeoutError:
                last_error = TimeoutError(
                    f"Section {descriptor.id} timed out after "
                    f"{options.timeout_per_section}s"
                )
            except Exception as exc:
                last_error = exc
            else:
                last_error = None
                current = self._evaluate(payload, descriptor)
                if best is None or current.score > best.score:
                    best = current
                if (
                    best.score >= options.quality_threshold
                    or not options.enable_refinement
                ):
                    break
                logger.info(
                    "event=section_refine section=%s attempt=%d score=%.1f",
                    descriptor.id,
                    attempts,
                    current.score,
                )
                continue

            logger.warning(
                "event=generation_failed section=%s attempt=%d "
                "error_class=%s error=%s",
                descriptor.id,
                attempts,
                classify_error(last_error).value,
                str(last_error)[:ERROR_TRUNCATION_CHARS],
            )
            if best is not None or not is_retryable(last_error):
                break

        elapsed_ms = (time.perf_counter() - start) * 1000
        iterations = attempts - 1

        if best is None:
            error = str(last_error) if last_error else "generation failed"
            self._log(
                run_id,
                descriptor.id,
                "finish",
                SectionStatus.FAILED,
                score=0.0,
                duration_ms=elapsed_ms,
                error=error,
            )
            return ProcessedSection(
                descriptor=descriptor,
                module_data=ModuleData.empty(),
                quality_score=0.0,
                status=SectionStatus.FAILED,
                processing_time_ms=elapsed_ms,
                refinement_iterations=iterations,
                error=error,
            )

        status = decide_status(best.score, options)
        error = None
        if status != SectionStatus.COMPLETED:
            error = (
                f"Quality score {best.score:.1f} below threshold "
                f"{options.quality_threshold:.1f}"
            )
        self._log(
            run_id,
            descriptor.id,
            "finish",
            status,
            score=best.score,
            duration_ms=elapsed_ms,
            error=error,
        )
        return ProcessedSection(
            descriptor=descriptor,
            module_data=best.module,
            quality_score=best.score,
            status=status,
            processing_time_ms=elapsed_ms,
            refinement_iterations=iterations,
            error=error,
            used_fallback=best.used_fallback,
        )

    def _evaluate(
        self, payload: object, descriptor: SectionDescriptor
    ) -> _Attempt:
        outcome = parse_generated_content(payload)
        if outcome.content is None:
            logger.info(
                "event=fallback_module section=%s reason=%s",
                descriptor.id,
                outcome.error,
            )
            module = build_fallback_module(descriptor)
            return _Attempt(
                module=module,
                score=self._score(module, descriptor),
                used_fallback=True,
            )

        module = to_module_data(outcome.content, descriptor)
        reported = outcome.content.quality_score
        score = (
            float(reported)
            if reported is not None
            else self._score(module, descriptor)
        )
        return _Attempt(module=module, score=score, used_fallback=False)

    def _score(
        self, module: ModuleData, descriptor: SectionDescriptor
    ) -> float:
        return max(0.0, min(100.0, self._scorer.score(module, descriptor)))

    def _log(
        self,
        run_id: str,
        section_id: str,
        phase: str,
        status: SectionStatus,
        *,
        score: float | None = None,
        duration_ms: float = 0.0,
        error: str | None = None,
    ) -> None:
        if self._plog is not None:
            self._plog.log_section(
                run_id,
                section_id,
                phase,
                status,
                score=score,
                duration_ms=duration_ms,
                error=error,
            )
