"""Section processing routes."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends

from sectionforge.api.dependencies import (
    get_builder,
    get_generator,
    get_pipeline_logger,
    get_scorer,
    get_settings,
)
from sectionforge.api.schemas import (
    APIResponse,
    ProcessRequest,
    package_result_to_dict,
    processing_result_to_dict,
)
from sectionforge.config import Settings
from sectionforge.generation.adapter import ContentGenerator
from sectionforge.generation.scorer import QualityScorer
from sectionforge.logger import PipelineLogger
from sectionforge.packaging.builder import PackageBuilder
from sectionforge.processing.schemas import ProcessingOptions
from sectionforge.services.pipeline_service import (
    PackageRequest,
    run_pipeline,
)

router = APIRouter(prefix="/api/sections", tags=["sections"])


@router.post("/process")
async def process_sections(
    body: ProcessRequest,
    settings: Settings = Depends(get_settings),
    generator: ContentGenerator = Depends(get_generator),
    scorer: QualityScorer | None = Depends(get_scorer),
    builder: PackageBuilder = Depends(get_builder),
    plog: PipelineLogger | None = Depends(get_pipeline_logger),
) -> APIResponse:
    """Process a splitting result; optionally package the combined module."""
    package = (
        PackageRequest(
            options=body.package.options,
            metadata=body.package.metadata,
        )
        if body.package is not None
        else None
    )
    run = await run_pipeline(
        body.splitting,
        settings,
        options=body.options or ProcessingOptions.from_settings(settings),
        package=package,
        generator=generator,
        scorer=scorer,
        builder=builder,
        pipeline_logger=plog,
    )
    return APIResponse(
        success=True,
        data={
            "run_id": run.run_id,
            "result": processing_result_to_dict(run.processing),
            "package": (
                package_result_to_dict(run.package) if run.package else None
            ),
        },
        metadata={
            "stages": [asdict(s) for s in run.stages],
            "duration_ms": round(run.total_duration_ms, 1),
        },
    )
