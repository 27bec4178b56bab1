"""Sequential batch scheduling of section processing.

Descriptors are split into contiguous batches of at most
``batch_size``. Batches run one after another and sections within a
batch run one after another: there is never more than one generation
call in flight for a single run.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import UTC, datetime
from typing import TypeAlias

from sectionforge.config import Settings
from sectionforge.constants import (
    ID_HEX_LENGTH,
    BatchStatus,
    SectionStatus,
    StageProgress,
)
from sectionforge.logger import PipelineLogger
from sectionforge.processing.combiner import (
    NoEligibleContentError,
    combine,
)
from sectionforge.processing.processor import SectionProcessor
from sectionforge.processing.schemas import (
    CombinedModule,
    GenerationContext,
    ModuleData,
    ProcessedSection,
    ProcessingBatch,
    ProcessingOptions,
    ProcessingResult,
    SectionDescriptor,
    SplittingResult,
    ensure_unique_ids,
)
from sectionforge.services.events import ProgressCallback, StageEvent

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"

ContinuePredicate: TypeAlias = Callable[[ProcessingResult], bool]


def create_batches(
    sections: Sequence[SectionDescriptor], batch_size: int
) -> list[ProcessingBatch]:
    """Partition descriptors into contiguous ``batch_<n>`` batches."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    return [
        ProcessingBatch(
            id=f"batch_{n}",
            sections=tuple(sections[start : start + batch_size]),
        )
        for n, start in enumerate(
            range(0, len(sections), batch_size), start=1
        )
    ]


def _mean_completed(sections: Sequence[ProcessedSection]) -> float:
    scores = [
        s.quality_score
        for s in sections
        if s.status == SectionStatus.COMPLETED
    ]
    if not scores:
        return 0.0
    return float(round(sum(scores) / len(scores)))


def build_result(
    batches: Sequence[ProcessingBatch],
    total_sections: int,
    *,
    combined_module: CombinedModule | None = None,
    combine_error: str | None = None,
) -> ProcessingResult:
    """Aggregate finished batches into a ProcessingResult."""
    sections = [s for b in batches for s in b.processed_sections]
    return ProcessingResult(
        batches=tuple(batches),
        total_sections=total_sections,
        processed_sections=sum(
            1 for s in sections if s.status == SectionStatus.COMPLETED
        ),
        failed_sections=sum(
            1 for s in sections if s.status == SectionStatus.FAILED
        ),
        skipped_sections=sum(
            1 for s in sections if s.status == SectionStatus.SKIPPED
        ),
        overall_quality_score=_mean_completed(sections),
        total_processing_time_ms=sum(
            b.total_processing_time_ms for b in batches
        ),
        combined_module=combined_module,
        combine_error=combine_error,
    )


def _cancelled(descriptor: SectionDescriptor) -> ProcessedSection:
    return ProcessedSection(
        descriptor=descriptor,
        module_data=ModuleData.empty(),
        quality_score=0.0,
        status=SectionStatus.SKIPPED,
        error=CANCELLED,
    )


class BatchScheduler:
    """Drives a SectionProcessor over batches of descriptors."""

    def __init__(
        self,
        processor: SectionProcessor,
        settings: Settings | None = None,
        pipeline_logger: PipelineLogger | None = None,
    ) -> None:
        self._processor = processor
        self._settings = settings or Settings()
        self._plog = pipeline_logger

    def resolve_batch_size(
        self,
        source: SplittingResult | Sequence[SectionDescriptor],
        options: ProcessingOptions,
    ) -> int:
        if options.batch_size is not None:
            return options.batch_size
        if isinstance(source, SplittingResult):
            return source.recommended_batch_size
        return self._settings.default_batch_size

    async def process(
        self,
        source: SplittingResult | Sequence[SectionDescriptor],
        options: ProcessingOptions | None = None,
        *,
        on_progress: ProgressCallback | None = None,
        should_continue: ContinuePredicate | None = None,
        run_id: str | None = None,
    ) -> ProcessingResult:
        """Process every descriptor and optionally combine the results.

        Section-level problems never propagate. Only invalid input
        (duplicate ids, batch size < 1) raises, before any work starts.
        """
        options = options or ProcessingOptions.from_settings(
            self._settings
        )
        if isinstance(source, SplittingResult):
            descriptors = list(source.sections)
        else:
            descriptors = list(source)
            ensure_unique_ids(descriptors)
        batch_size = self.resolve_batch_size(source, options)
        pending = create_batches(descriptors, batch_size)
        run_id = run_id or uuid.uuid4().hex[:ID_HEX_LENGTH]
        total = len(descriptors)

        logger.info(
            "event=processing_start run=%s sections=%d batches=%d "
            "batch_size=%d",
            run_id,
            total,
            len(pending),
            batch_size,
        )

        finished: list[ProcessingBatch] = []
        previous_html = ""
        position = 0
        done = 0

        for index, batch in enumerate(pending):
            started_at = datetime.now(UTC)
            t0 = time.perf_counter()
            _report(
                on_progress,
                StageEvent.batch(
                    batch.id, StageProgress.RUNNING, done, total
                ),
            )

            processed: list[ProcessedSection] = []
            for descriptor in batch.sections:
                position += 1
                context = GenerationContext(
                    position=position,
                    total=total,
                    previous_html=previous_html,
                )
                section = await self._run_section(
                    descriptor, options, context, run_id
                )
                processed.append(section)
                if section.status == SectionStatus.COMPLETED:
                    previous_html = section.module_data.html

            elapsed_ms = (time.perf_counter() - t0) * 1000
            finalized = replace(
                batch,
                status=(
                    BatchStatus.FAILED
                    if any(
                        s.status == SectionStatus.FAILED
                        for s in processed
                    )
                    else BatchStatus.COMPLETED
                ),
                start_time=started_at,
                end_time=datetime.now(UTC),
                processed_sections=tuple(processed),
                total_processing_time_ms=elapsed_ms,
                average_quality_score=_mean_completed(processed),
            )
            finished.append(finalized)
            done += len(processed)
            self._log_batch(run_id, finalized)
            _report(
                on_progress,
                StageEvent.batch(
                    finalized.id,
                    StageProgress.DONE,
                    done,
                    total,
                    duration_ms=elapsed_ms,
                ),
            )

            remaining = pending[index + 1 :]
            if (
                remaining
                and should_continue is not None
                and not should_continue(build_result(finished, total))
            ):
                logger.info(
                    "event=processing_cancelled run=%s after=%s "
                    "remaining_batches=%d",
                    run_id,
                    finalized.id,
                    len(remaining),
                )
                finished.extend(
                    replace(
                        b,
                        processed_sections=tuple(
                            _cancelled(d) for d in b.sections
                        ),
                    )
                    for b in remaining
                )
                break

        combined: CombinedModule | None = None
        combine_error: str | None = None
        if options.combine_results:
            combined, combine_error = _combine(finished, on_progress)

        result = build_result(
            finished,
            total,
            combined_module=combined,
            combine_error=combine_error,
        )
        logger.info(
            "event=processing_done run=%s completed=%d failed=%d "
            "skipped=%d score=%.0f duration_ms=%.0f",
            run_id,
            result.processed_sections,
            result.failed_sections,
            result.skipped_sections,
            result.overall_quality_score,
            result.total_processing_time_ms,
        )
        return result

    async def _run_section(
        self,
        descriptor: SectionDescriptor,
        options: ProcessingOptions,
        context: GenerationContext,
        run_id: str,
    ) -> ProcessedSection:
        try:
            return await self._processor.process_section(
                descriptor, options, context, run_id=run_id
            )
        except Exception as exc:
            logger.exception(
                "event=section_crashed run=%s section=%s",
                run_id,
                descriptor.id,
            )
            if self._plog is not None:
                self._plog.log_error(run_id, "processor", str(exc))
            return ProcessedSection(
                descriptor=descriptor,
                module_data=ModuleData.empty(),
                quality_score=0.0,
                status=SectionStatus.FAILED,
                error=str(exc),
            )

    def _log_batch(self, run_id: str, batch: ProcessingBatch) -> None:
        logger.info(
            "event=batch_done run=%s batch=%s status=%s completed=%d "
            "failed=%d skipped=%d avg_score=%.0f",
            run_id,
            batch.id,
            batch.status,
            batch.count(SectionStatus.COMPLETED),
            batch.count(SectionStatus.FAILED),
            batch.count(SectionStatus.SKIPPED),
            batch.average_quality_score,
        )
        if self._plog is not None:
            self._plog.log_batch(
                run_id,
                batch.id,
                batch.status,
                batch.count(SectionStatus.COMPLETED),
                batch.count(SectionStatus.FAILED),
                batch.count(SectionStatus.SKIPPED),
                batch.average_quality_score,
                batch.total_processing_time_ms,
            )


def _combine(
    batches: Sequence[ProcessingBatch],
    on_progress: ProgressCallback | None,
) -> tuple[CombinedModule | None, str | None]:
    t0 = time.perf_counter()
    _report(on_progress, StageEvent(name="combine", status=StageProgress.RUNNING))
    try:
        module = combine(batches)
    except NoEligibleContentError as exc:
        logger.warning("event=combine_skipped reason=%s", exc)
        _report(
            on_progress,
            StageEvent(
                name="combine",
                status=StageProgress.ERROR,
                message=str(exc),
                duration_ms=(time.perf_counter() - t0) * 1000,
            ),
        )
        return None, str(exc)
    _report(
        on_progress,
        StageEvent(
            name="combine",
            status=StageProgress.DONE,
            duration_ms=(time.perf_counter() - t0) * 1000,
        ),
    )
    return module, None


def _report(callback: ProgressCallback | None, event: StageEvent) -> None:
    if callback is not None:
        callback(event)
