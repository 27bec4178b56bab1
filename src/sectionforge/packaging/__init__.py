"""Module packaging: validation, manifests, archives and the store."""

from sectionforge.packaging.builder import PackageBuilder, PackagingError
from sectionforge.packaging.schemas import (
    ModuleFiles,
    PackageFilters,
    PackageManifest,
    PackageMetadata,
    PackageOptions,
    PackageResult,
    ValidationReport,
)

__all__ = [
    "ModuleFiles",
    "PackageBuilder",
    "PackageFilters",
    "PackageManifest",
    "PackageMetadata",
    "PackageOptions",
    "PackageResult",
    "PackagingError",
    "ValidationReport",
]
