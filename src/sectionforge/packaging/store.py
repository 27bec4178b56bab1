"""Filesystem package store.

Layout::

    <packages_dir>/<package_id>/<package_id>.zip | .tar | .tar.gz
    <packages_dir>/<package_id>/<package_id>_manifest.json

Each package owns a fresh directory keyed by a new id, so concurrent
pipeline runs never touch each other's files.
"""

from __future__ import annotations

import logging
import re
import shutil
import uuid
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from sectionforge.constants import (
    ARCHIVE_SUFFIXES,
    ID_HEX_LENGTH,
    MANIFEST_SUFFIX,
    PACKAGE_ID_PREFIX,
)
from sectionforge.packaging.manifest import manifest_json
from sectionforge.packaging.schemas import PackageManifest

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(rf"^{PACKAGE_ID_PREFIX}[0-9a-f]{{{ID_HEX_LENGTH}}}$")


def new_package_id() -> str:
    return f"{PACKAGE_ID_PREFIX}{uuid.uuid4().hex[:ID_HEX_LENGTH]}"


def is_valid_package_id(package_id: str) -> bool:
    """Reject anything that could escape the packages directory."""
    return bool(_ID_PATTERN.match(package_id))


class PackageStore(Protocol):
    def create_dir(self, package_id: str) -> Path: ...
    def archive_path(self, package_id: str, suffix: str) -> Path: ...
    def find_archive(self, package_id: str) -> Path | None: ...
    def write_manifest(self, manifest: PackageManifest) -> Path: ...
    def read_manifest(self, package_id: str) -> PackageManifest | None: ...
    def iter_manifests(self) -> Iterator[PackageManifest]: ...
    def remove(self, package_id: str) -> None: ...


class FilePackageStore:
    """Directory-per-package store rooted at ``root``."""

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def _dir(self, package_id: str) -> Path:
        if not is_valid_package_id(package_id):
            raise ValueError(f"Invalid package id: {package_id!r}")
        return self._root / package_id

    def create_dir(self, package_id: str) -> Path:
        path = self._dir(package_id)
        path.mkdir(parents=True, exist_ok=False)
        return path

    def archive_path(self, package_id: str, suffix: str) -> Path:
        return self._dir(package_id) / f"{package_id}{suffix}"

    def find_archive(self, package_id: str) -> Path | None:
        if not is_valid_package_id(package_id):
            return None
        for suffix in ARCHIVE_SUFFIXES:
            candidate = self.archive_path(package_id, suffix)
            if candidate.is_file():
                return candidate
        return None

    def manifest_path(self, package_id: str) -> Path:
        return self._dir(package_id) / f"{package_id}{MANIFEST_SUFFIX}"

    def write_manifest(self, manifest: PackageManifest) -> Path:
        path = self.manifest_path(manifest.package_id)
        path.write_text(manifest_json(manifest), encoding="utf-8")
        return path

    def read_manifest(self, package_id: str) -> PackageManifest | None:
        if not is_valid_package_id(package_id):
            return None
        path = self.manifest_path(package_id)
        if not path.is_file():
            return None
        try:
            return PackageManifest.model_validate_json(
                path.read_text(encoding="utf-8")
            )
        except ValidationError:
            logger.warning(
                "event=manifest_unreadable package=%s", package_id
            )
            return None

    def iter_manifests(self) -> Iterator[PackageManifest]:
        if not self._root.is_dir():
            return
        for entry in sorted(self._root.iterdir()):
            if entry.is_dir() and is_valid_package_id(entry.name):
                manifest = self.read_manifest(entry.name)
                if manifest is not None:
                    yield manifest

    def remove(self, package_id: str) -> None:
        """Delete the package directory; missing packages are fine."""
        path = self._dir(package_id)
        shutil.rmtree(path, ignore_errors=True)
