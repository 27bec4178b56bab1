"""Pipeline orchestration: process sections, then package the result.

The processing stage never fails for section-level problems; only
invalid input (duplicate ids, bad options) propagates. The packaging
stage is optional and its failure is recorded as a stage status, so a
caller always gets the processing outcome back.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from sectionforge.config import Settings
from sectionforge.constants import ID_HEX_LENGTH, StageProgress
from sectionforge.generation.adapter import (
    ContentGenerator,
    LLMContentGenerator,
)
from sectionforge.generation.scorer import QualityScorer
from sectionforge.logger import PipelineLogger
from sectionforge.packaging.builder import PackageBuilder
from sectionforge.packaging.schemas import (
    PackageMetadata,
    PackageOptions,
    PackageResult,
)
from sectionforge.processing.combiner import to_module_files
from sectionforge.processing.processor import SectionProcessor
from sectionforge.processing.scheduler import (
    BatchScheduler,
    ContinuePredicate,
)
from sectionforge.processing.schemas import (
    ProcessingOptions,
    ProcessingResult,
    SectionDescriptor,
    SplittingResult,
)
from sectionforge.services.events import ProgressCallback, StageEvent

logger = logging.getLogger(__name__)


@dataclass
class StageStatus:
    """Status of a pipeline stage."""

    name: str
    ok: bool
    duration_ms: float = 0.0
    error: str | None = None


@dataclass(frozen=True)
class PackageRequest:
    """Ask the pipeline to package the combined module."""

    options: PackageOptions = field(default_factory=PackageOptions)
    metadata: PackageMetadata = field(
        default_factory=lambda: PackageMetadata(name="combined-module")
    )


@dataclass
class PipelineRunResult:
    """Full result of a pipeline run."""

    run_id: str
    processing: ProcessingResult
    package: PackageResult | None = None
    stages: list[StageStatus] = field(
        default_factory=lambda: list[StageStatus]()
    )
    total_duration_ms: float = 0.0


async def process_sections(
    source: SplittingResult | Sequence[SectionDescriptor],
    options: ProcessingOptions | None = None,
    *,
    settings: Settings | None = None,
    generator: ContentGenerator | None = None,
    scorer: QualityScorer | None = None,
    pipeline_logger: PipelineLogger | None = None,
    on_progress: ProgressCallback | None = None,
    should_continue: ContinuePredicate | None = None,
    run_id: str | None = None,
) -> ProcessingResult:
    """Wire a processor and scheduler together and run them once."""
    cfg = settings or Settings()
    processor = SectionProcessor(
        generator or LLMContentGenerator(cfg),
        scorer,
        pipeline_logger,
    )
    scheduler = BatchScheduler(processor, cfg, pipeline_logger)
    return await scheduler.process(
        source,
        options or ProcessingOptions.from_settings(cfg),
        on_progress=on_progress,
        should_continue=should_continue,
        run_id=run_id,
    )


async def run_pipeline(
    source: SplittingResult | Sequence[SectionDescriptor],
    settings: Settings | None = None,
    *,
    options: ProcessingOptions | None = None,
    package: PackageRequest | None = None,
    generator: ContentGenerator | None = None,
    scorer: QualityScorer | None = None,
    builder: PackageBuilder | None = None,
    pipeline_logger: PipelineLogger | None = None,
    on_progress: ProgressCallback | None = None,
    should_continue: ContinuePredicate | None = None,
) -> PipelineRunResult:
    """Run processing and, when requested, packaging.

    Packaging runs only if ``package`` is given and a combined module
    exists; otherwise the stage is recorded as skipped.
    """
    cfg = settings or Settings()
    run_id = uuid.uuid4().hex[:ID_HEX_LENGTH]
    t_start = time.monotonic()
    _report(
        on_progress,
        StageEvent(
            name="section_processing",
            status=StageProgress.RUNNING,
            message=f"run {run_id}",
        ),
    )

    t0 = time.monotonic()
    processing = await process_sections(
        source,
        options,
        settings=cfg,
        generator=generator,
        scorer=scorer,
        pipeline_logger=pipeline_logger,
        on_progress=on_progress,
        should_continue=should_continue,
        run_id=run_id,
    )
    processing_status = StageStatus(
        name="section_processing",
        ok=not processing.nothing_usable,
        duration_ms=_elapsed(t0),
        error=(
            "no section reached the quality threshold"
            if processing.nothing_usable
            else None
        ),
    )
    result = PipelineRunResult(
        run_id=run_id,
        processing=processing,
        stages=[processing_status],
    )
    _report_done(on_progress, processing_status)

    if package is not None:
        module = processing.combined_module
        if module is None:
            skipped = StageStatus(
                name="packaging",
                ok=False,
                error=processing.combine_error
                or "no combined module to package",
            )
            result.stages.append(skipped)
            _report_done(on_progress, skipped)
        else:
            _report(
                on_progress,
                StageEvent(name="packaging", status=StageProgress.RUNNING),
            )
            pkg_builder = builder or PackageBuilder(
                cfg, pipeline_logger=pipeline_logger
            )
            packaged, status = await _run_stage(
                "packaging",
                lambda: asyncio.to_thread(
                    pkg_builder.package_module,
                    to_module_files(module),
                    package.options,
                    package.metadata,
                ),
            )
            result.package = packaged
            result.stages.append(status)
            _report_done(on_progress, status)

    result.total_duration_ms = _elapsed(t_start)
    logger.info(
        "event=pipeline_done run=%s completed=%d failed=%d skipped=%d "
        "package=%s duration_ms=%.0f",
        run_id,
        processing.processed_sections,
        processing.failed_sections,
        processing.skipped_sections,
        result.package.package_id if result.package else None,
        result.total_duration_ms,
    )
    return result


T = TypeVar("T")


async def _run_stage(
    name: str,
    fn: Callable[[], Awaitable[T]],
) -> tuple[T | None, StageStatus]:
    """Run an async stage with error capture."""
    t0 = time.monotonic()
    try:
        out = await fn()
        return out, StageStatus(
            name=name, ok=True, duration_ms=_elapsed(t0)
        )
    except Exception as exc:
        logger.exception("event=stage_failed stage=%s", name)
        return None, StageStatus(
            name=name,
            ok=False,
            duration_ms=_elapsed(t0),
            error=str(exc),
        )


def _report(callback: ProgressCallback | None, event: StageEvent) -> None:
    if callback is not None:
        callback(event)


def _report_done(
    callback: ProgressCallback | None, status: StageStatus
) -> None:
    _report(
        callback,
        StageEvent(
            name=status.name,
            status=StageProgress.DONE if status.ok else StageProgress.ERROR,
            duration_ms=status.duration_ms,
            message=status.error or "",
        ),
    )


def _elapsed(t0: float) -> float:
    return (time.monotonic() - t0) * 1000
