"""Parse generator payloads into ModuleData, with a typed fallback path.

``parse_generated_content`` never raises: it returns a ParseOutcome
holding either the validated content or the reason it was rejected.
The processor builds a fallback module on the error branch so a flaky
generator can never abort a batch.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from sectionforge.constants import ERROR_TRUNCATION_CHARS, SectionKind
from sectionforge.processing.schemas import ModuleData, SectionDescriptor

_FENCE_RE = re.compile(
    r"^```(?:json)?\s*\n(.*?)```\s*$",
    re.DOTALL,
)


class GeneratedContent(BaseModel):
    """Shape a generator is expected to return."""

    model_config = ConfigDict(extra="allow")

    fields: list[dict[str, Any]] | None = None
    meta: dict[str, Any] | None = None
    html: str | None = None
    css: str | None = None
    quality_score: float | None = Field(default=None, ge=0, le=100)

    @field_validator("quality_score", mode="before")
    @classmethod
    def _clamp_score(cls, v: Any) -> float | None:
        """Reported scores are advisory: clamp them, drop non-numbers."""
        if v is None or isinstance(v, bool):
            return None
        try:
            score = float(v)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(score):
            return None
        return max(0.0, min(100.0, score))


@dataclass(frozen=True)
class ParseOutcome:
    """Either ``content`` or ``error`` is set, never both."""

    content: GeneratedContent | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.content is not None


def _strip_fences(text: str) -> str:
    """Remove wrapping ```json fences from LLM output."""
    m = _FENCE_RE.match(text.strip())
    return m.group(1).strip() if m else text.strip()


def _unwrap(raw: dict[str, Any]) -> dict[str, Any]:
    """Accept the nested ``{"html", "module": {...}}`` response form."""
    nested = raw.get("module") or raw.get("hubspot_module")
    if isinstance(nested, dict) and "fields" not in raw:
        merged = {**raw, **nested}
        merged.pop("module", None)
        merged.pop("hubspot_module", None)
        return merged
    return raw


def _extract_score(raw: dict[str, Any]) -> None:
    """Lift a nested ``validation.score`` to ``quality_score``."""
    validation = raw.get("validation")
    if "quality_score" not in raw and isinstance(validation, dict):
        score = validation.get("score")
        if isinstance(score, (int, float)):
            raw["quality_score"] = score


def parse_generated_content(payload: object) -> ParseOutcome:
    """Validate a raw generator payload (JSON text or dict)."""
    raw: Any = payload
    if isinstance(payload, (str, bytes)):
        text = (
            payload.decode("utf-8", errors="replace")
            if isinstance(payload, bytes)
            else payload
        )
        try:
            raw = json.loads(_strip_fences(text))
        except json.JSONDecodeError as exc:
            return ParseOutcome(error=f"invalid JSON: {exc.msg}")

    if not isinstance(raw, dict):
        return ParseOutcome(
            error=f"expected object, got {type(raw).__name__}"
        )

    raw = _unwrap(dict(raw))
    _extract_score(raw)
    try:
        content = GeneratedContent.model_validate(raw)
    except ValidationError as exc:
        return ParseOutcome(error=str(exc)[:ERROR_TRUNCATION_CHARS])

    if not any((content.fields, content.html, content.meta)):
        return ParseOutcome(error="payload has no fields, html or meta")
    return ParseOutcome(content=content)


# ── Fallback construction ────────────────────────────────


def _field(
    name: str,
    label: str,
    field_type: str,
    default: str,
    *,
    required: bool = False,
    selector: str = "",
) -> dict[str, Any]:
    return {
        "name": name,
        "label": label,
        "type": field_type,
        "required": required,
        "default": default,
        "selector": selector,
    }


def default_fields(descriptor: SectionDescriptor) -> list[dict[str, Any]]:
    """Minimal editable field set derived from the section kind."""
    kind = descriptor.kind
    label = kind.capitalize()
    fields: list[dict[str, Any]] = []

    if kind != SectionKind.NAVIGATION:
        fields.append(
            _field(
                f"{kind}_title",
                f"{label} Title",
                "text",
                descriptor.title or f"{label} Title",
                required=True,
                selector=f"h1, h2, h3, .{kind}-title",
            )
        )
    fields.append(
        _field(
            f"{kind}_content",
            f"{label} Content",
            "rich_text",
            descriptor.description or "Content goes here.",
            selector=f"p, .{kind}-content",
        )
    )

    if kind == SectionKind.HERO:
        fields.append(
            _field(
                "cta_text", "Call to Action Text", "text",
                "Get Started", selector=".cta-button",
            )
        )
        fields.append(
            _field(
                "cta_url", "Call to Action URL", "url", "#",
                selector=".cta-button",
            )
        )
    elif kind == SectionKind.HEADER:
        fields.append(
            _field(
                "logo_image", "Logo Image", "image", "",
                selector=".logo img",
            )
        )
    elif kind == SectionKind.FOOTER:
        fields.append(
            _field(
                "copyright_text", "Copyright Text", "text",
                "© Company Name. All rights reserved.",
                selector=".copyright",
            )
        )
    return fields


_KIND_CSS: dict[str, str] = {
    SectionKind.HERO: (
        ".hero-section { min-height: 60vh; display: flex;"
        " align-items: center; }\n"
        ".hero-section .cta-button { transition: all 0.3s ease; }"
    ),
    SectionKind.HEADER: (
        ".header-section { position: sticky; top: 0; z-index: 1000; }\n"
        ".header-section .logo { max-height: 60px; }"
    ),
    SectionKind.FOOTER: (
        ".footer-section { margin-top: auto; }\n"
        ".footer-section a { transition: color 0.3s ease; }"
    ),
    SectionKind.CONTENT: (
        ".content-section { line-height: 1.7; }\n"
        ".content-section img { max-width: 100%; height: auto; }"
    ),
}


def default_css(kind: SectionKind) -> str:
    """Baseline styles for a section kind."""
    base = (
        f".{kind}-section h1, .{kind}-section h2,"
        f" .{kind}-section h3 {{ margin-bottom: 1rem; }}\n"
        f".{kind}-section p {{ margin-bottom: 0.75rem; }}"
    )
    extra = _KIND_CSS.get(kind)
    return f"{base}\n{extra}" if extra else base


def default_html(descriptor: SectionDescriptor) -> str:
    """Raw seed markup, or a minimal placeholder section."""
    if descriptor.html.strip():
        return descriptor.html
    kind = descriptor.kind
    return (
        f'<section class="{kind}-section">\n'
        f'  <h2 class="{kind}-title">{descriptor.display_title}</h2>\n'
        f'  <p class="{kind}-content">'
        f"{descriptor.description or 'Content goes here.'}</p>\n"
        "</section>"
    )


def default_meta(descriptor: SectionDescriptor) -> dict[str, Any]:
    return {
        "label": f"{descriptor.kind.capitalize()} Module",
        "description": f"Generated from {descriptor.kind} section",
    }


def build_fallback_module(descriptor: SectionDescriptor) -> ModuleData:
    """Descriptor-driven module used when the payload is unusable."""
    return ModuleData(
        fields=tuple(default_fields(descriptor)),
        meta={
            **default_meta(descriptor),
            "description": f"Fallback module for {descriptor.kind} section",
        },
        html=default_html(descriptor),
        css=default_css(descriptor.kind),
    )


def to_module_data(
    content: GeneratedContent, descriptor: SectionDescriptor
) -> ModuleData:
    """Fill any missing parts of a partial payload with defaults."""
    return ModuleData(
        fields=tuple(content.fields or default_fields(descriptor)),
        meta=content.meta or default_meta(descriptor),
        html=content.html or default_html(descriptor),
        css=content.css or default_css(descriptor.kind),
    )
