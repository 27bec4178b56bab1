"""Pre-packaging validation of module files.

Errors block packaging; warnings only lower the performance score.
"""

from __future__ import annotations

import json
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any

from sectionforge.config import Settings
from sectionforge.constants import (
    FIELDS_JSON,
    MAX_META_LABEL_CHARS,
    META_JSON,
    MODULE_CSS,
    MODULE_HTML,
    MODULE_JS,
    PENALTY_CONSOLE_LOG,
    PENALTY_DUPLICATE_FIELDS,
    PENALTY_INLINE_STYLES,
    PENALTY_LARGE_CSS,
    PENALTY_LARGE_HTML,
    PENALTY_LARGE_JS,
    PENALTY_MISSING_ALT,
    REQUIRED_MODULE_FILES,
    Severity,
)
from sectionforge.packaging.schemas import (
    ModuleFiles,
    ValidationIssue,
    ValidationReport,
)

_INLINE_STYLE = re.compile(r"\sstyle\s*=", re.IGNORECASE)
_CONSOLE_LOG = re.compile(r"\bconsole\.log\s*\(")
_IMG_TAG = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_ALT_ATTR = re.compile(r"\balt\s*=", re.IGNORECASE)


@dataclass(frozen=True)
class ValidationLimits:
    """Size and count thresholds for performance warnings."""

    max_html_chars: int = 10_000
    max_css_chars: int = 5_000
    max_js_chars: int = 20_000
    max_inline_styles: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> ValidationLimits:
        return cls(
            max_html_chars=settings.max_html_chars,
            max_css_chars=settings.max_css_chars,
            max_js_chars=settings.max_js_chars,
            max_inline_styles=settings.max_inline_styles,
        )


class _Collector:
    def __init__(self) -> None:
        self.errors: list[ValidationIssue] = []
        self.warnings: list[ValidationIssue] = []
        self.score = 100

    def error(self, code: str, message: str, file: str | None) -> None:
        self.errors.append(
            ValidationIssue(
                code=code, message=message,
                severity=Severity.ERROR, file=file,
            )
        )

    def warn(
        self, code: str, message: str, file: str | None, penalty: int = 0
    ) -> None:
        self.warnings.append(
            ValidationIssue(
                code=code, message=message,
                severity=Severity.WARNING, file=file,
            )
        )
        self.score -= penalty

    def report(self) -> ValidationReport:
        return ValidationReport(
            is_valid=not self.errors,
            errors=self.errors,
            warnings=self.warnings,
            performance_score=max(0, self.score),
        )


def _parse_json(
    text: str, file: str, out: _Collector
) -> Any | None:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        out.error("invalid_json", f"Invalid {file} format: {exc.msg}", file)
        return None


def _check_fields(fields: Any, out: _Collector) -> None:
    if not isinstance(fields, list):
        out.error(
            "invalid_fields", "fields.json must be a JSON array",
            FIELDS_JSON,
        )
        return
    if not fields:
        out.warn("empty_fields", "No editable fields defined", FIELDS_JSON)
        return
    names = Counter(
        f.get("name") for f in fields if isinstance(f, dict)
    )
    dupes = sorted(str(n) for n, c in names.items() if n and c > 1)
    if dupes:
        out.warn(
            "duplicate_fields",
            f"Duplicate field names: {', '.join(dupes)}",
            FIELDS_JSON,
            PENALTY_DUPLICATE_FIELDS,
        )


def _check_meta(meta: Any, out: _Collector) -> None:
    if not isinstance(meta, dict):
        out.error(
            "invalid_meta", "meta.json must be a JSON object", META_JSON
        )
        return
    if not meta.get("label") or not meta.get("content_types"):
        out.error(
            "invalid_meta",
            "meta.json missing required properties (label, content_types)",
            META_JSON,
        )
        return
    if len(str(meta["label"])) > MAX_META_LABEL_CHARS:
        out.warn(
            "long_label",
            f"Module label exceeds {MAX_META_LABEL_CHARS} characters",
            META_JSON,
        )


def validate_module_files(
    files: ModuleFiles, limits: ValidationLimits | None = None
) -> ValidationReport:
    """Check required files, JSON structure and performance limits."""
    limits = limits or ValidationLimits()
    out = _Collector()
    present = files.text_files()

    for name in REQUIRED_MODULE_FILES:
        if not (present.get(name) or "").strip():
            out.error("missing_file", f"Required file missing: {name}", name)

    if files.fields_json:
        fields = _parse_json(files.fields_json, FIELDS_JSON, out)
        if fields is not None:
            _check_fields(fields, out)
    if files.meta_json:
        meta = _parse_json(files.meta_json, META_JSON, out)
        if meta is not None:
            _check_meta(meta, out)

    html = files.module_html or ""
    if len(html) > limits.max_html_chars:
        out.warn(
            "large_html",
            "HTML template is quite large, consider optimization",
            MODULE_HTML,
            PENALTY_LARGE_HTML,
        )
    inline = len(_INLINE_STYLE.findall(html))
    if inline > limits.max_inline_styles:
        out.warn(
            "inline_styles",
            f"{inline} inline style attributes, move them to module.css",
            MODULE_HTML,
            PENALTY_INLINE_STYLES,
        )
    missing_alt = sum(
        1 for tag in _IMG_TAG.findall(html) if not _ALT_ATTR.search(tag)
    )
    if missing_alt:
        out.warn(
            "missing_alt",
            f"{missing_alt} image(s) without alt text",
            MODULE_HTML,
            PENALTY_MISSING_ALT,
        )

    if files.module_css and len(files.module_css) > limits.max_css_chars:
        out.warn(
            "large_css",
            "CSS file is large, consider minification",
            MODULE_CSS,
            PENALTY_LARGE_CSS,
        )

    js = files.module_js or ""
    if len(js) > limits.max_js_chars:
        out.warn(
            "large_js",
            "JavaScript file is large, consider minification",
            MODULE_JS,
            PENALTY_LARGE_JS,
        )
    if _CONSOLE_LOG.search(js):
        out.warn(
            "console_log",
            "console.log statements left in module.js",
            MODULE_JS,
            PENALTY_CONSOLE_LOG,
        )

    return out.report()
