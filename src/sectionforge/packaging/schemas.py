"""Pydantic models for module packaging and the package manifest."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field

from sectionforge.constants import (
    ASSETS_DIR,
    DEFAULT_MODULE_TYPE,
    FIELDS_JSON,
    META_JSON,
    MODULE_CSS,
    MODULE_HTML,
    MODULE_JS,
    README_MD,
    CompressionLevel,
    FileType,
    PackageFormat,
    Severity,
    ValidationStatus,
)


@dataclass
class ModuleFiles:
    """Text files and binary assets that make up one module.

    ``fields_json`` and ``meta_json`` hold the serialized JSON text
    exactly as it will be written into the archive.
    """

    module_html: str | None = None
    fields_json: str | None = None
    meta_json: str | None = None
    module_css: str | None = None
    module_js: str | None = None
    readme: str | None = None
    assets: dict[str, bytes] = field(
        default_factory=lambda: dict[str, bytes]()
    )

    def text_files(self) -> dict[str, str]:
        """Archive path -> content for every present text file."""
        candidates = {
            MODULE_HTML: self.module_html,
            FIELDS_JSON: self.fields_json,
            META_JSON: self.meta_json,
            MODULE_CSS: self.module_css,
            MODULE_JS: self.module_js,
            README_MD: self.readme,
        }
        return {k: v for k, v in candidates.items() if v is not None}

    def asset_files(self) -> dict[str, bytes]:
        return {
            f"{ASSETS_DIR}/{name}": data
            for name, data in sorted(self.assets.items())
        }


class PackageOptions(BaseModel):
    format: PackageFormat = PackageFormat.ZIP
    compression_level: CompressionLevel = CompressionLevel.BEST
    include_source_maps: bool = False
    minify_assets: bool = False
    include_documentation: bool = True


class PackageMetadata(BaseModel):
    """Caller-supplied descriptive metadata."""

    name: str = Field(min_length=1)
    version: str = "1.0.0"
    author: str = "sectionforge"
    description: str = ""
    module_type: str = DEFAULT_MODULE_TYPE
    tags: list[str] = Field(default_factory=lambda: list[str]())


class PackageDependency(BaseModel):
    name: str
    version: str
    required: bool = True


class ManifestFile(BaseModel):
    path: str
    size_bytes: int
    checksum: str
    type: FileType


class ManifestMetadata(BaseModel):
    total_size_bytes: int
    file_count: int
    compression_ratio: float = 0.0
    validation_status: ValidationStatus
    validation_errors: list[str] = Field(
        default_factory=lambda: list[str]()
    )


class PackageManifest(BaseModel):
    package_id: str
    module_name: str
    version: str
    created_at: datetime
    created_by: str
    description: str = ""
    module_type: str = DEFAULT_MODULE_TYPE
    dependencies: list[PackageDependency] = Field(
        default_factory=lambda: list[PackageDependency]()
    )
    files: list[ManifestFile] = Field(
        default_factory=lambda: list[ManifestFile]()
    )
    metadata: ManifestMetadata


class ValidationIssue(BaseModel):
    code: str
    message: str
    severity: Severity
    file: str | None = None


class ValidationReport(BaseModel):
    is_valid: bool
    errors: list[ValidationIssue] = Field(
        default_factory=lambda: list[ValidationIssue]()
    )
    warnings: list[ValidationIssue] = Field(
        default_factory=lambda: list[ValidationIssue]()
    )
    performance_score: int = 100

    @property
    def status(self) -> ValidationStatus:
        if not self.is_valid:
            return ValidationStatus.INVALID
        if self.warnings:
            return ValidationStatus.WARNING
        return ValidationStatus.VALID


class PackageResult(BaseModel):
    package_id: str
    package_path: Path
    manifest: PackageManifest
    download_url: str
    expires_at: datetime
    validation_report: ValidationReport


class PackageFilters(BaseModel):
    created_after: datetime | None = None
    created_by: str | None = None
    module_type: str | None = None
