"""Manifest construction: per-file sizes, SHA-256 checksums and types."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime
from pathlib import PurePosixPath

from sectionforge.constants import (
    ASSETS_DIR,
    CMS_VERSION,
    EXTENSION_FILE_TYPES,
    FileType,
)
from sectionforge.packaging.schemas import (
    ManifestFile,
    ManifestMetadata,
    ModuleFiles,
    PackageDependency,
    PackageManifest,
    PackageMetadata,
    ValidationReport,
)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def file_type_for(path: str) -> FileType:
    """Categorize an archive path by location and extension."""
    p = PurePosixPath(path)
    if p.parts and p.parts[0] == ASSETS_DIR:
        return FileType.ASSET
    return EXTENSION_FILE_TYPES.get(p.suffix.lower(), FileType.ASSET)


def collect_entries(files: ModuleFiles) -> dict[str, bytes]:
    """Archive path -> exact bytes, text files first then assets."""
    entries = {
        path: content.encode("utf-8")
        for path, content in files.text_files().items()
    }
    entries.update(files.asset_files())
    return entries


def build_manifest(
    package_id: str,
    entries: dict[str, bytes],
    metadata: PackageMetadata,
    report: ValidationReport,
    created_at: datetime,
) -> PackageManifest:
    """Describe every entry; compression ratio is filled in later."""
    manifest_files = [
        ManifestFile(
            path=path,
            size_bytes=len(data),
            checksum=sha256_hex(data),
            type=file_type_for(path),
        )
        for path, data in entries.items()
    ]
    return PackageManifest(
        package_id=package_id,
        module_name=metadata.name,
        version=metadata.version,
        created_at=created_at,
        created_by=metadata.author,
        description=metadata.description,
        module_type=metadata.module_type,
        dependencies=[
            PackageDependency(name="cms", version=CMS_VERSION)
        ],
        files=manifest_files,
        metadata=ManifestMetadata(
            total_size_bytes=sum(f.size_bytes for f in manifest_files),
            file_count=len(manifest_files),
            validation_status=report.status,
            validation_errors=[e.message for e in report.errors],
        ),
    )


def manifest_json(manifest: PackageManifest) -> str:
    """Canonical JSON form: sorted keys, two-space indent."""
    return json.dumps(
        manifest.model_dump(mode="json"), sort_keys=True, indent=2
    )
