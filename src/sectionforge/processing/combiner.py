"""Merge completed sections into one composite module.

Everything here is a pure function of its inputs: the same completed
sections in the same priority order always produce byte-identical
fields, HTML and CSS.
"""

from __future__ import annotations

import html
import json
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from sectionforge.constants import DEFAULT_CONTENT_TYPES, SectionStatus
from sectionforge.packaging.schemas import ModuleFiles
from sectionforge.processing.schemas import (
    CombinedModule,
    ProcessedSection,
    ProcessingBatch,
)

COMBINED_LABEL = "Combined Layout Module"
_DOUBLE_DASH = re.compile(r"-(?=-)")


class NoEligibleContentError(Exception):
    """Raised when no completed section exists to combine."""


@dataclass(frozen=True)
class SectionFragment:
    """One completed section's contribution to the combined module."""

    section: ProcessedSection
    markup: str
    styles: str


def eligible_sections(
    batches: Iterable[ProcessingBatch],
) -> list[ProcessedSection]:
    """Completed sections in processing order, then stable by priority."""
    completed = [
        s
        for b in batches
        for s in b.processed_sections
        if s.status == SectionStatus.COMPLETED
    ]
    return sorted(completed, key=lambda s: s.descriptor.priority)


def _comment_text(text: str) -> str:
    """Text safe inside ``<!-- -->`` and ``/* */`` comments."""
    return _DOUBLE_DASH.sub("- ", text).replace("*/", "* /")


def _css_string(value: str) -> str:
    """Value for a double-quoted CSS attribute selector."""
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\a ")
    )


def to_fragment(section: ProcessedSection) -> SectionFragment:
    d = section.descriptor
    title = _comment_text(d.display_title)
    markup = (
        f"<!-- {title} -->\n"
        f'<div class="section-{d.kind}"'
        f' data-section-id="{html.escape(d.id, quote=True)}"'
        f' data-section-kind="{d.kind}">\n'
        f"{section.module_data.html}\n"
        "</div>"
    )
    styles = ""
    css = (section.module_data.css or "").strip()
    if css:
        styles = (
            f"/* {title} */\n"
            f'.section-{d.kind}[data-section-id="{_css_string(d.id)}"] {{\n'
            f"{css}\n"
            "}"
        )
    return SectionFragment(section=section, markup=markup, styles=styles)


def merge_fields(
    sections: Sequence[ProcessedSection],
) -> tuple[dict[str, Any], ...]:
    """Prefix names and labels; suffix any name that still collides."""
    merged: list[dict[str, Any]] = []
    used: set[str] = set()
    for section in sections:
        d = section.descriptor
        for source in section.module_data.fields:
            name = f"{d.id}_{source.get('name', 'field')}"
            candidate, n = name, 1
            while candidate in used:
                n += 1
                candidate = f"{name}_{n}"
            used.add(candidate)
            merged.append({
                **source,
                "name": candidate,
                "label": (
                    f"{d.display_title} - "
                    f"{source.get('label', source.get('name', ''))}"
                ),
            })
    return tuple(merged)


def merge_markup(fragments: Sequence[SectionFragment]) -> str:
    return "\n\n".join(f.markup for f in fragments)


def merge_styles(fragments: Sequence[SectionFragment]) -> str:
    return "\n\n".join(f.styles for f in fragments if f.styles)


def combined_meta(sections: Sequence[ProcessedSection]) -> dict[str, Any]:
    return {
        "label": COMBINED_LABEL,
        "description": f"Combined module with {len(sections)} sections",
        "icon": "layout",
        "content_types": list(DEFAULT_CONTENT_TYPES),
        "categories": ["layout"],
        "is_available_for_new_content": True,
        "source_sections": [s.descriptor.id for s in sections],
    }


def combine(batches: Iterable[ProcessingBatch]) -> CombinedModule:
    """Merge every completed section into a single module.

    Raises NoEligibleContentError when no section completed.
    """
    sections = eligible_sections(batches)
    if not sections:
        raise NoEligibleContentError("No completed sections to combine")
    fragments = [to_fragment(s) for s in sections]
    return CombinedModule(
        fields=merge_fields(sections),
        meta=combined_meta(sections),
        html=merge_markup(fragments),
        css=merge_styles(fragments),
    )


def to_module_files(module: CombinedModule) -> ModuleFiles:
    """Serialize a combined module into packageable files."""
    return ModuleFiles(
        module_html=module.html,
        fields_json=json.dumps(list(module.fields), indent=2),
        meta_json=json.dumps(module.meta, indent=2),
        module_css=module.css or None,
    )
