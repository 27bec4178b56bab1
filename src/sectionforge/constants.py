"""Shared constants: single source of truth for cross-module values.

All magic strings and numbers that appear in 2+ files belong here.
StrEnum members are str-compatible, so downstream code (JSON
manifests, API payloads, log lines) works unchanged.
"""

from __future__ import annotations

from enum import StrEnum

# ── String Enums ─────────────────────────────────────────


class SectionKind(StrEnum):
    """Layout role of a split design section."""

    HEADER = "header"
    HERO = "hero"
    CONTENT = "content"
    FOOTER = "footer"
    NAVIGATION = "navigation"
    SIDEBAR = "sidebar"
    FEATURE = "feature"
    TESTIMONIAL = "testimonial"
    CONTACT = "contact"
    GALLERY = "gallery"


class Complexity(StrEnum):
    """Ordinal complexity estimate from the splitting step."""

    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class SectionStatus(StrEnum):
    """Lifecycle of a single processed section.

    pending -> processing -> completed | failed | skipped
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class BatchStatus(StrEnum):
    """Lifecycle of a processing batch."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class StageProgress(StrEnum):
    """Progress status for pipeline stage events."""

    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class Severity(StrEnum):
    """Severity levels for package validation issues."""

    ERROR = "error"
    WARNING = "warning"


class ValidationStatus(StrEnum):
    """Overall manifest validation status."""

    VALID = "valid"
    WARNING = "warning"
    INVALID = "invalid"


class PackageFormat(StrEnum):
    """Supported archive formats."""

    ZIP = "zip"
    TAR = "tar"


class CompressionLevel(StrEnum):
    """Archive compression presets."""

    NONE = "none"
    FAST = "fast"
    BEST = "best"


class FileType(StrEnum):
    """Manifest file categories."""

    TEMPLATE = "template"
    STYLE = "style"
    SCRIPT = "script"
    CONFIG = "config"
    ASSET = "asset"
    DOCUMENTATION = "documentation"


# ── Processing Defaults ──────────────────────────────────

DEFAULT_BATCH_SIZE = 3
DEFAULT_MAX_RETRIES = 2
DEFAULT_QUALITY_THRESHOLD = 75.0
DEFAULT_TIMEOUT_PER_SECTION = 120.0

MIN_SCORE = 0.0
MAX_SCORE = 100.0

# Characters of previous-section HTML forwarded as generation context
CONTEXT_HTML_CHARS = 300

# ── Circuit Breaker Configuration ────────────────────────

CB_LLM_FAILURE_THRESHOLD = 5
CB_LLM_RECOVERY_TIMEOUT = 30

# ── Retry Strategy ───────────────────────────────────────

RETRY_MAX_ATTEMPTS = 3
RETRY_INITIAL_WAIT = 2
RETRY_MAX_WAIT = 30

# ── LLM Output ───────────────────────────────────────────

LLM_MAX_OUTPUT_TOKENS = 4096

# ── Module Files ─────────────────────────────────────────

MODULE_HTML = "module.html"
MODULE_CSS = "module.css"
MODULE_JS = "module.js"
FIELDS_JSON = "fields.json"
META_JSON = "meta.json"
README_MD = "README.md"
MANIFEST_JSON = "manifest.json"
ASSETS_DIR = "assets"

REQUIRED_MODULE_FILES = (MODULE_HTML, FIELDS_JSON, META_JSON)

# Content types a combined module can be placed on
DEFAULT_CONTENT_TYPES = ("page", "blog_post", "landing_page")

EXTENSION_FILE_TYPES: dict[str, FileType] = {
    ".html": FileType.TEMPLATE,
    ".htm": FileType.TEMPLATE,
    ".css": FileType.STYLE,
    ".js": FileType.SCRIPT,
    ".json": FileType.CONFIG,
    ".md": FileType.DOCUMENTATION,
}

# ── Package Validation Penalties ─────────────────────────

PENALTY_LARGE_HTML = 10
PENALTY_LARGE_CSS = 5
PENALTY_LARGE_JS = 5
PENALTY_INLINE_STYLES = 5
PENALTY_MISSING_ALT = 5
PENALTY_CONSOLE_LOG = 5
PENALTY_DUPLICATE_FIELDS = 5
MAX_META_LABEL_CHARS = 100

# ── Package Store ────────────────────────────────────────

PACKAGE_ID_PREFIX = "pkg_"
MANIFEST_SUFFIX = "_manifest.json"
ARCHIVE_SUFFIXES = (".zip", ".tar", ".tar.gz")
DEFAULT_MODULE_TYPE = "custom"
CMS_VERSION = "2024.1"

# ── Misc ─────────────────────────────────────────────────

ERROR_TRUNCATION_CHARS = 200
ID_HEX_LENGTH = 12

# ── Auth Exempt Paths ────────────────────────────────────

AUTH_EXEMPT_PATHS = frozenset({
    "/api/health",
    "/api/docs",
    "/api/redoc",
    "/api/openapi.json",
})

AUTH_EXEMPT_PREFIXES = ("/api/health",)

# Archive downloads may carry the key as a query parameter
DOWNLOAD_PATH_SUFFIX = "/download"

# ── Stage Labels (user-facing) ─────────────────────────

STAGE_LABELS: dict[str, str] = {
    "section_processing": "Generating sections",
    "batch": "Processing batch",
    "combine": "Combining sections",
    "packaging": "Packaging module",
}
