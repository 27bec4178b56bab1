"""Tests for PackageBuilder: packaging, lookup, listing and expiry."""

from __future__ import annotations

import json
import zipfile
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import patch

import pytest

from sectionforge.config import Settings
from sectionforge.constants import (
    CompressionLevel,
    FileType,
    PackageFormat,
    ValidationStatus,
)
from sectionforge.packaging.archive import (
    compression_ratio,
    read_archive_names,
)
from sectionforge.packaging.builder import PackageBuilder, PackagingError
from sectionforge.packaging.schemas import (
    PackageFilters,
    PackageMetadata,
    PackageOptions,
)
from tests.conftest import make_module_files


def _package_dirs(settings: Settings) -> list[Path]:
    root = settings.packages_dir
    return sorted(root.iterdir()) if root.is_dir() else []


class TestPackageModule:
    def test_creates_archive_and_sidecar(
        self, builder: PackageBuilder, settings: Settings
    ) -> None:
        result = builder.package_module(
            make_module_files(),
            PackageOptions(),
            PackageMetadata(name="hero", author="alice"),
        )
        assert result.package_path.is_file()
        assert result.package_path.suffix == ".zip"
        assert result.package_path.parent.name == result.package_id
        sidecar = (
            settings.packages_dir
            / result.package_id
            / f"{result.package_id}_manifest.json"
        )
        assert sidecar.is_file()
        assert result.download_url == (
            f"/api/packages/{result.package_id}/download"
        )
        assert result.manifest.created_by == "alice"
        assert result.validation_report.is_valid

    def test_archive_contents(self, builder: PackageBuilder) -> None:
        result = builder.package_module(
            make_module_files(assets={"logo.png": b"\x89PNG"}),
        )
        names = read_archive_names(result.package_path)
        assert "module.html" in names
        assert "README.md" in names
        assert "assets/logo.png" in names
        assert "manifest.json" in names
        with zipfile.ZipFile(result.package_path) as zf:
            embedded = json.loads(zf.read("manifest.json"))
        assert embedded["package_id"] == result.package_id
        paths = {f.path: f.type for f in result.manifest.files}
        assert paths["assets/logo.png"] == FileType.ASSET
        assert "manifest.json" not in paths

    def test_checksums_are_deterministic(
        self, builder: PackageBuilder
    ) -> None:
        first = builder.package_module(make_module_files())
        second = builder.package_module(make_module_files())
        changed = builder.package_module(
            make_module_files(module_css=".hero h1 { font-size: 3rem; }")
        )

        def sums(result) -> dict[str, str]:
            return {f.path: f.checksum for f in result.manifest.files}

        assert first.package_id != second.package_id
        assert sums(first) == sums(second)
        assert sums(first)["module.css"] != sums(changed)["module.css"]
        assert sums(first)["module.html"] == sums(changed)["module.html"]

    def test_identical_assets_share_checksum(
        self, builder: PackageBuilder
    ) -> None:
        result = builder.package_module(
            make_module_files(
                assets={"a.svg": b"<svg/>", "b.svg": b"<svg/>"}
            ),
        )
        by_path = {f.path: f for f in result.manifest.files}
        a, b = by_path["assets/a.svg"], by_path["assets/b.svg"]
        assert a.checksum == b.checksum
        assert a.size_bytes == b.size_bytes == 6

    def test_sizes_and_counts(self, builder: PackageBuilder) -> None:
        result = builder.package_module(make_module_files())
        meta = result.manifest.metadata
        assert meta.file_count == len(result.manifest.files)
        assert meta.total_size_bytes == sum(
            f.size_bytes for f in result.manifest.files
        )

    def test_ratio_recorded_in_sidecar(
        self, builder: PackageBuilder
    ) -> None:
        result = builder.package_module(
            make_module_files(module_css=".a { color: red; }\n" * 200),
        )
        assert result.manifest.metadata.compression_ratio > 0
        stored = builder.get_package_info(result.package_id)
        assert stored is not None
        assert stored.metadata.compression_ratio == (
            result.manifest.metadata.compression_ratio
        )

    def test_ratio_counts_embedded_manifest(
        self, builder: PackageBuilder
    ) -> None:
        result = builder.package_module(make_module_files())
        with zipfile.ZipFile(result.package_path) as zf:
            embedded = zf.read("manifest.json")
        uncompressed = result.manifest.metadata.total_size_bytes + len(
            embedded
        )
        assert result.manifest.metadata.compression_ratio == (
            compression_ratio(
                uncompressed, result.package_path.stat().st_size
            )
        )

    @pytest.mark.parametrize(
        ("fmt", "level", "suffix"),
        [
            (PackageFormat.ZIP, CompressionLevel.NONE, ".zip"),
            (PackageFormat.TAR, CompressionLevel.NONE, ".tar"),
            (PackageFormat.TAR, CompressionLevel.BEST, ".tar.gz"),
        ],
    )
    def test_formats(
        self,
        builder: PackageBuilder,
        fmt: PackageFormat,
        level: CompressionLevel,
        suffix: str,
    ) -> None:
        result = builder.package_module(
            make_module_files(),
            PackageOptions(format=fmt, compression_level=level),
        )
        assert result.package_path.name == f"{result.package_id}{suffix}"
        assert "manifest.json" in read_archive_names(result.package_path)

    def test_warnings_do_not_block(self, builder: PackageBuilder) -> None:
        result = builder.package_module(
            make_module_files(module_html='<img src="x.png">'),
        )
        assert result.validation_report.performance_score == 95
        assert (
            result.manifest.metadata.validation_status
            == ValidationStatus.WARNING
        )

    def test_expiry_follows_ttl(self, settings: Settings) -> None:
        builder = PackageBuilder(settings.model_copy(
            update={"package_ttl_hours": 2}
        ))
        result = builder.package_module(make_module_files())
        assert result.expires_at - result.manifest.created_at == timedelta(
            hours=2
        )


class TestPackagingRefusal:
    def test_missing_required_file(
        self, builder: PackageBuilder, settings: Settings
    ) -> None:
        with pytest.raises(PackagingError) as exc_info:
            builder.package_module(make_module_files(fields_json=None))
        assert [e.code for e in exc_info.value.errors] == ["missing_file"]
        assert _package_dirs(settings) == []

    def test_invalid_fields_json(
        self, builder: PackageBuilder, settings: Settings
    ) -> None:
        with pytest.raises(PackagingError, match="validation failed"):
            builder.package_module(make_module_files(fields_json="[{"))
        assert _package_dirs(settings) == []
        assert builder.list_packages() == []

    def test_archive_failure_cleans_up(
        self, builder: PackageBuilder, settings: Settings
    ) -> None:
        with patch(
            "sectionforge.packaging.builder.write_archive",
            side_effect=OSError("disk full"),
        ):
            with pytest.raises(PackagingError, match="disk full"):
                builder.package_module(make_module_files())
        assert _package_dirs(settings) == []

    def test_manifest_write_failure_cleans_up(
        self, builder: PackageBuilder, settings: Settings
    ) -> None:
        with patch(
            "sectionforge.packaging.store.FilePackageStore.write_manifest",
            side_effect=OSError("disk full"),
        ):
            with pytest.raises(PackagingError, match="disk full"):
                builder.package_module(make_module_files())
        assert _package_dirs(settings) == []
        assert builder.list_packages() == []

    def test_directory_failure_raises_packaging_error(
        self, builder: PackageBuilder
    ) -> None:
        with patch(
            "sectionforge.packaging.store.FilePackageStore.create_dir",
            side_effect=PermissionError("read-only"),
        ):
            with pytest.raises(PackagingError, match="read-only"):
                builder.package_module(make_module_files())


class TestPackageQueries:
    def test_get_package_info(self, builder: PackageBuilder) -> None:
        result = builder.package_module(make_module_files())
        info = builder.get_package_info(result.package_id)
        assert info == result.manifest
        assert builder.get_package_info("pkg_ffffffffffff") is None
        assert builder.get_package_info("../../etc/passwd") is None

    def test_list_newest_first_with_filters(
        self, builder: PackageBuilder
    ) -> None:
        alice = builder.package_module(
            make_module_files(),
            metadata=PackageMetadata(name="a", author="alice"),
        )
        bob = builder.package_module(
            make_module_files(),
            metadata=PackageMetadata(
                name="b", author="bob", module_type="hero"
            ),
        )
        listed = builder.list_packages()
        assert [m.package_id for m in listed] == [
            bob.package_id,
            alice.package_id,
        ]
        by_author = builder.list_packages(PackageFilters(created_by="alice"))
        assert [m.package_id for m in by_author] == [alice.package_id]
        by_type = builder.list_packages(PackageFilters(module_type="hero"))
        assert [m.package_id for m in by_type] == [bob.package_id]
        future = builder.list_packages(
            PackageFilters(
                created_after=datetime.now(UTC) + timedelta(hours=1)
            )
        )
        assert future == []

    def test_delete_is_idempotent(self, builder: PackageBuilder) -> None:
        result = builder.package_module(make_module_files())
        assert builder.delete_package(result.package_id) is True
        assert builder.get_package_info(result.package_id) is None
        assert not result.package_path.exists()
        assert builder.delete_package(result.package_id) is True
        assert builder.delete_package("not-an-id") is True

    def test_archive_lookup_respects_expiry(
        self, builder: PackageBuilder
    ) -> None:
        result = builder.package_module(make_module_files())
        assert builder.get_package_archive(result.package_id) == (
            result.package_path
        )
        later = result.expires_at + timedelta(seconds=1)
        assert builder.get_package_archive(result.package_id, later) is None
        assert builder.get_package_archive("pkg_ffffffffffff") is None

    def test_purge_expired(self, builder: PackageBuilder) -> None:
        result = builder.package_module(make_module_files())
        assert builder.purge_expired() == []
        later = result.expires_at + timedelta(seconds=1)
        assert builder.purge_expired(later) == [result.package_id]
        assert builder.list_packages() == []


class TestPipelineLogging:
    def test_package_event_logged(
        self, settings: Settings, pipeline_logger
    ) -> None:
        builder = PackageBuilder(settings, pipeline_logger=pipeline_logger)
        result = builder.package_module(make_module_files())
        log_file = settings.log_dir / "pipeline.log"
        records = [
            json.loads(line)
            for line in log_file.read_text(encoding="utf-8").splitlines()
        ]
        assert any(
            r.get("package_id") == result.package_id for r in records
        )
