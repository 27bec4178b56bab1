"""Package builder: validate, transform, checksum, archive, record.

``package_module`` either produces a complete package (archive plus
manifest sidecar) or raises PackagingError and leaves nothing behind.
"""

from __future__ import annotations

import logging
import tarfile
import zipfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

from sectionforge.config import Settings
from sectionforge.constants import MANIFEST_JSON
from sectionforge.logger import PipelineLogger
from sectionforge.packaging.archive import (
    archive_suffix,
    compression_ratio,
    write_archive,
)
from sectionforge.packaging.manifest import (
    build_manifest,
    collect_entries,
    manifest_json,
)
from sectionforge.packaging.schemas import (
    ModuleFiles,
    PackageFilters,
    PackageManifest,
    PackageMetadata,
    PackageOptions,
    PackageResult,
    ValidationIssue,
)
from sectionforge.packaging.store import (
    FilePackageStore,
    PackageStore,
    is_valid_package_id,
    new_package_id,
)
from sectionforge.packaging.transforms import apply_transforms
from sectionforge.packaging.validation import (
    ValidationLimits,
    validate_module_files,
)

logger = logging.getLogger(__name__)


class PackagingError(Exception):
    """Packaging refused (blocking validation issues) or I/O failed."""

    def __init__(
        self,
        message: str,
        errors: list[ValidationIssue] | None = None,
    ) -> None:
        super().__init__(message)
        self.errors = errors or []


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


class PackageBuilder:
    """Builds and manages module packages in a PackageStore."""

    def __init__(
        self,
        settings: Settings | None = None,
        store: PackageStore | None = None,
        pipeline_logger: PipelineLogger | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._store = store or FilePackageStore(self._settings.packages_dir)
        self._plog = pipeline_logger
        self._limits = ValidationLimits.from_settings(self._settings)
        self._ttl = timedelta(hours=self._settings.package_ttl_hours)

    def expires_at(self, manifest: PackageManifest) -> datetime:
        return _aware(manifest.created_at) + self._ttl

    def download_url(self, package_id: str) -> str:
        base = self._settings.download_base_url.rstrip("/")
        return f"{base}/{package_id}/download"

    def package_module(
        self,
        files: ModuleFiles,
        options: PackageOptions | None = None,
        metadata: PackageMetadata | None = None,
    ) -> PackageResult:
        options = options or PackageOptions()
        metadata = metadata or PackageMetadata(name="module")

        report = validate_module_files(files, self._limits)
        if not report.is_valid:
            detail = ", ".join(e.message for e in report.errors)
            logger.warning(
                "event=package_refused module=%s errors=%d",
                metadata.name,
                len(report.errors),
            )
            raise PackagingError(
                f"Module validation failed: {detail}", report.errors
            )

        transformed = apply_transforms(files, options)
        package_id = new_package_id()
        created_at = datetime.now(UTC)
        entries = collect_entries(transformed)
        manifest = build_manifest(
            package_id, entries, metadata, report, created_at
        )

        # The embedded copy carries ratio 0; the sidecar gets the real one
        embedded = manifest_json(manifest).encode("utf-8")
        created = False
        try:
            self._store.create_dir(package_id)
            created = True
            archive_path = self._store.archive_path(
                package_id,
                archive_suffix(options.format, options.compression_level),
            )
            archive_size = write_archive(
                archive_path,
                {**entries, MANIFEST_JSON: embedded},
                options.format,
                options.compression_level,
            )
            ratio = compression_ratio(
                manifest.metadata.total_size_bytes + len(embedded),
                archive_size,
            )
            manifest = manifest.model_copy(
                update={
                    "metadata": manifest.metadata.model_copy(
                        update={"compression_ratio": ratio}
                    )
                }
            )
            self._store.write_manifest(manifest)
        except (OSError, zipfile.BadZipFile, tarfile.TarError) as exc:
            if created:
                self._store.remove(package_id)
            if self._plog is not None:
                self._plog.log_package(package_id, "failed")
            raise PackagingError(f"Package write failed: {exc}") from exc

        logger.info(
            "event=package_created package=%s format=%s files=%d "
            "size_bytes=%d ratio=%.3f score=%d",
            package_id,
            options.format,
            manifest.metadata.file_count,
            archive_size,
            ratio,
            report.performance_score,
        )
        if self._plog is not None:
            self._plog.log_package(
                package_id,
                "created",
                size_bytes=archive_size,
                file_count=manifest.metadata.file_count,
            )

        return PackageResult(
            package_id=package_id,
            package_path=archive_path,
            manifest=manifest,
            download_url=self.download_url(package_id),
            expires_at=created_at + self._ttl,
            validation_report=report,
        )

    def get_package_info(self, package_id: str) -> PackageManifest | None:
        return self._store.read_manifest(package_id)

    def list_packages(
        self, filters: PackageFilters | None = None
    ) -> list[PackageManifest]:
        """Stored manifests matching ``filters``, newest first."""
        filters = filters or PackageFilters()
        after = _aware(filters.created_after) if filters.created_after else None
        matches: list[PackageManifest] = []
        for manifest in self._store.iter_manifests():
            if after is not None and _aware(manifest.created_at) < after:
                continue
            if filters.created_by and manifest.created_by != filters.created_by:
                continue
            if (
                filters.module_type
                and manifest.module_type != filters.module_type
            ):
                continue
            matches.append(manifest)
        return sorted(
            matches, key=lambda m: _aware(m.created_at), reverse=True
        )

    def delete_package(self, package_id: str) -> bool:
        """Remove a package. Idempotent: unknown ids still return True."""
        if is_valid_package_id(package_id):
            self._store.remove(package_id)
            logger.info("event=package_deleted package=%s", package_id)
        return True

    def get_package_archive(
        self, package_id: str, now: datetime | None = None
    ) -> Path | None:
        """Archive path for download; None when missing or expired."""
        manifest = self._store.read_manifest(package_id)
        if manifest is None:
            return None
        if self.expires_at(manifest) <= (now or datetime.now(UTC)):
            return None
        return self._store.find_archive(package_id)

    def purge_expired(self, now: datetime | None = None) -> list[str]:
        """Delete every expired package and return the removed ids."""
        now = now or datetime.now(UTC)
        expired = [
            m.package_id
            for m in self._store.iter_manifests()
            if self.expires_at(m) <= now
        ]
        for package_id in expired:
            self._store.remove(package_id)
        if expired:
            logger.info("event=packages_purged count=%d", len(expired))
        return expired
