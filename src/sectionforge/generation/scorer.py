"""Quality scoring for generated section modules.

Scores are on a 0-100 scale. ``HeuristicQualityScorer`` starts from
100 and deducts for structural gaps; any scorer implementing the
``QualityScorer`` protocol can be injected into the processor instead.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Protocol

from sectionforge.constants import MAX_SCORE, MIN_SCORE
from sectionforge.processing.schemas import ModuleData, SectionDescriptor

_PLACEHOLDER_PATTERN = re.compile(r"\[([A-Z][A-Z0-9_\s]{2,30})\]")

_PLACEHOLDER_KEYWORDS = (
    "TODO",
    "TBD",
    "INSERT",
    "YOUR",
    "EXAMPLE",
    "PLACEHOLDER",
    "LOREM",
)

_IMG_TAG = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_ALT_ATTR = re.compile(r"\balt\s*=", re.IGNORECASE)


def detect_placeholders(text: str) -> list[str]:
    """Find unfilled ``[PLACEHOLDER]``-style tokens in generated text."""
    found: list[str] = []
    for match in _PLACEHOLDER_PATTERN.findall(text):
        if any(kw in match for kw in _PLACEHOLDER_KEYWORDS):
            found.append(f"[{match}]")
    return found


def count_images_missing_alt(html: str) -> int:
    return sum(1 for tag in _IMG_TAG.findall(html) if not _ALT_ATTR.search(tag))


class QualityScorer(Protocol):
    def score(
        self, content: ModuleData, descriptor: SectionDescriptor
    ) -> float: ...


@dataclass(frozen=True)
class ScoringWeights:
    """Deductions applied by the heuristic scorer."""

    missing_html: float = 40.0
    no_fields: float = 30.0
    sparse_fields: float = 15.0
    per_placeholder: float = 5.0
    max_placeholder: float = 20.0
    per_missing_alt: float = 5.0
    max_missing_alt: float = 15.0
    missing_label: float = 10.0


class HeuristicQualityScorer:
    """Deterministic structural scorer."""

    def __init__(self, weights: ScoringWeights | None = None) -> None:
        self._weights = weights or ScoringWeights()

    def score(
        self, content: ModuleData, descriptor: SectionDescriptor
    ) -> float:
        w = self._weights
        total = MAX_SCORE

        if not content.html.strip():
            total -= w.missing_html

        n_fields = len(content.fields)
        if n_fields == 0:
            total -= w.no_fields
        elif descriptor.estimated_fields and (
            n_fields < descriptor.estimated_fields / 2
        ):
            total -= w.sparse_fields

        text = content.html + json.dumps(list(content.fields), default=str)
        placeholders = detect_placeholders(text)
        total -= min(
            len(placeholders) * w.per_placeholder, w.max_placeholder
        )

        missing_alt = count_images_missing_alt(content.html)
        total -= min(missing_alt * w.per_missing_alt, w.max_missing_alt)

        if not str(content.meta.get("label", "")).strip():
            total -= w.missing_label

        return max(MIN_SCORE, min(MAX_SCORE, total))
