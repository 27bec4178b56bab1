"""Request/response schemas for the HTTP API."""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sectionforge.packaging.schemas import (
    ModuleFiles,
    PackageMetadata,
    PackageOptions,
    PackageResult,
)
from sectionforge.processing.schemas import (
    CombinedModule,
    ProcessedSection,
    ProcessingBatch,
    ProcessingOptions,
    ProcessingResult,
    SplittingResult,
)


class APIResponse(BaseModel):
    """Standard response envelope for all API endpoints."""

    success: bool
    data: Any | None = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class PackageBlock(BaseModel):
    """Optional packaging step attached to a process request."""

    options: PackageOptions = Field(default_factory=PackageOptions)
    metadata: PackageMetadata = Field(
        default_factory=lambda: PackageMetadata(name="combined-module")
    )


class ProcessRequest(BaseModel):
    """Request body for POST /api/sections/process."""

    splitting: SplittingResult
    options: ProcessingOptions | None = None
    package: PackageBlock | None = None


class ModuleFilesIn(BaseModel):
    """Module files as sent over the wire.

    Keys use the on-disk file names; assets are base64 encoded.
    """

    model_config = ConfigDict(populate_by_name=True)

    module_html: str | None = Field(default=None, alias="module.html")
    fields_json: str | None = Field(default=None, alias="fields.json")
    meta_json: str | None = Field(default=None, alias="meta.json")
    module_css: str | None = Field(default=None, alias="module.css")
    module_js: str | None = Field(default=None, alias="module.js")
    readme: str | None = Field(default=None, alias="README.md")
    assets: dict[str, str] = Field(default_factory=dict)

    @field_validator("fields_json", "meta_json", mode="before")
    @classmethod
    def _serialize_structured(cls, v: Any) -> Any:
        """Accept already-parsed JSON for fields.json / meta.json."""
        if isinstance(v, (list, dict)):
            return json.dumps(v, indent=2)
        return v

    @field_validator("assets")
    @classmethod
    def _check_base64(cls, v: dict[str, str]) -> dict[str, str]:
        for name, data in v.items():
            if "/" in name or "\\" in name or name.startswith("."):
                raise ValueError(f"Invalid asset name: {name}")
            try:
                base64.b64decode(data, validate=True)
            except binascii.Error as exc:
                raise ValueError(
                    f"Asset {name} is not valid base64"
                ) from exc
        return v

    def to_module_files(self) -> ModuleFiles:
        return ModuleFiles(
            module_html=self.module_html,
            fields_json=self.fields_json,
            meta_json=self.meta_json,
            module_css=self.module_css,
            module_js=self.module_js,
            readme=self.readme,
            assets={
                name: base64.b64decode(data)
                for name, data in self.assets.items()
            },
        )


class PackageCreateRequest(BaseModel):
    """Request body for POST /api/packages."""

    files: ModuleFilesIn
    options: PackageOptions = Field(default_factory=PackageOptions)
    metadata: PackageMetadata


# ── Response serialization ───────────────────────────────


def section_to_dict(section: ProcessedSection) -> dict[str, Any]:
    return {
        "section_id": section.descriptor.id,
        "kind": section.descriptor.kind,
        "status": section.status,
        "quality_score": section.quality_score,
        "processing_time_ms": round(section.processing_time_ms, 1),
        "refinement_iterations": section.refinement_iterations,
        "used_fallback": section.used_fallback,
        "error": section.error,
    }


def batch_to_dict(batch: ProcessingBatch) -> dict[str, Any]:
    return {
        "id": batch.id,
        "status": batch.status,
        "start_time": (
            batch.start_time.isoformat() if batch.start_time else None
        ),
        "end_time": batch.end_time.isoformat() if batch.end_time else None,
        "total_processing_time_ms": round(
            batch.total_processing_time_ms, 1
        ),
        "average_quality_score": batch.average_quality_score,
        "sections": [section_to_dict(s) for s in batch.processed_sections],
    }


def combined_to_dict(module: CombinedModule) -> dict[str, Any]:
    return {
        "fields": list(module.fields),
        "meta": module.meta,
        "html": module.html,
        "css": module.css,
    }


def processing_result_to_dict(result: ProcessingResult) -> dict[str, Any]:
    return {
        "total_sections": result.total_sections,
        "processed_sections": result.processed_sections,
        "failed_sections": result.failed_sections,
        "skipped_sections": result.skipped_sections,
        "overall_quality_score": result.overall_quality_score,
        "total_processing_time_ms": round(
            result.total_processing_time_ms, 1
        ),
        "batches": [batch_to_dict(b) for b in result.batches],
        "combined_module": (
            combined_to_dict(result.combined_module)
            if result.combined_module
            else None
        ),
        "combine_error": result.combine_error,
    }


def package_result_to_dict(result: PackageResult) -> dict[str, Any]:
    data = result.model_dump(mode="json")
    data["package_path"] = result.package_path.name
    return data
