"""Data model for batch section processing.

Inputs (descriptors, options) are pydantic models so they can be read
straight from the splitter's JSON. Everything produced during
processing is a frozen dataclass: each stage hands the next one an
immutable snapshot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from sectionforge.config import Settings
from sectionforge.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_QUALITY_THRESHOLD,
    DEFAULT_TIMEOUT_PER_SECTION,
    BatchStatus,
    Complexity,
    SectionKind,
    SectionStatus,
)

logger = logging.getLogger(__name__)


# ── Inputs ───────────────────────────────────────────────


class SectionDescriptor(BaseModel):
    """One section produced by the splitting step. Read-only."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    kind: SectionKind = Field(
        default=SectionKind.CONTENT,
        validation_alias=AliasChoices("kind", "type"),
    )
    complexity: Complexity = Complexity.MODERATE
    priority: int = 0
    estimated_fields: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices(
            "estimated_fields", "estimatedFields", "estimated_field_count"
        ),
    )
    title: str = ""
    description: str = ""
    html: str = ""

    @field_validator("kind", mode="before")
    @classmethod
    def _coerce_kind(cls, v: Any) -> Any:
        """Unknown layout roles are treated as generic content."""
        if isinstance(v, str) and not isinstance(v, SectionKind):
            normalized = v.strip().lower()
            if normalized not in SectionKind._value2member_map_:
                logger.warning(
                    "event=unknown_section_kind kind=%s fallback=%s",
                    v,
                    SectionKind.CONTENT,
                )
                return SectionKind.CONTENT
            return normalized
        return v

    @property
    def display_title(self) -> str:
        """Human-readable title, falling back to the kind."""
        return self.title or f"{self.kind.capitalize()} Section"


def ensure_unique_ids(sections: list[SectionDescriptor]) -> None:
    """Raise ValueError if two descriptors share an id."""
    seen: set[str] = set()
    dupes: list[str] = []
    for s in sections:
        if s.id in seen:
            dupes.append(s.id)
        seen.add(s.id)
    if dupes:
        msg = f"Duplicate section ids: {', '.join(sorted(set(dupes)))}"
        raise ValueError(msg)


class SplittingResult(BaseModel):
    """Output of the upstream splitting service."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sections: list[SectionDescriptor] = Field(
        default_factory=lambda: list[SectionDescriptor]()
    )
    recommended_batch_size: int = Field(
        default=1,
        ge=1,
        validation_alias=AliasChoices(
            "recommended_batch_size", "recommendedBatchSize"
        ),
    )

    @model_validator(mode="after")
    def _unique_ids(self) -> SplittingResult:
        ensure_unique_ids(self.sections)
        return self

    @property
    def total_sections(self) -> int:
        return len(self.sections)


class ProcessingOptions(BaseModel):
    """Caller-tunable knobs for one processing run.

    ``batch_size=None`` means "use the splitter's recommendation".
    """

    model_config = ConfigDict(frozen=True)

    batch_size: int | None = Field(default=None, ge=1)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    skip_failed_sections: bool = True
    combine_results: bool = True
    quality_threshold: float = Field(
        default=DEFAULT_QUALITY_THRESHOLD, ge=0, le=100
    )
    timeout_per_section: float = Field(
        default=DEFAULT_TIMEOUT_PER_SECTION, gt=0
    )
    enable_refinement: bool = False

    @classmethod
    def from_settings(
        cls, settings: Settings, **overrides: Any
    ) -> ProcessingOptions:
        """Build options from configured defaults plus overrides."""
        values: dict[str, Any] = {
            "max_retries": settings.max_retries,
            "quality_threshold": settings.quality_threshold,
            "timeout_per_section": settings.timeout_per_section,
        }
        values.update(
            {k: v for k, v in overrides.items() if v is not None}
        )
        return cls(**values)


@dataclass(frozen=True)
class GenerationContext:
    """Enrichment passed to the content generator with a descriptor."""

    position: int
    total: int
    previous_html: str = ""
    attempt: int = 1


# ── Processing outputs ───────────────────────────────────


@dataclass(frozen=True)
class ModuleData:
    """Structured content generated for one section."""

    fields: tuple[dict[str, Any], ...] = ()
    meta: dict[str, Any] = field(
        default_factory=lambda: dict[str, Any]()
    )
    html: str = ""
    css: str | None = None

    @classmethod
    def empty(cls) -> ModuleData:
        """Well-typed placeholder for hard failures."""
        return cls()


@dataclass(frozen=True)
class ProcessedSection:
    """Terminal outcome of processing one descriptor."""

    descriptor: SectionDescriptor
    module_data: ModuleData
    quality_score: float
    status: SectionStatus
    processing_time_ms: float = 0.0
    refinement_iterations: int = 0
    error: str | None = None
    used_fallback: bool = False


@dataclass(frozen=True)
class ProcessingBatch:
    """A contiguous, size-bounded slice of descriptors."""

    id: str
    sections: tuple[SectionDescriptor, ...]
    status: BatchStatus = BatchStatus.PENDING
    start_time: datetime | None = None
    end_time: datetime | None = None
    processed_sections: tuple[ProcessedSection, ...] = ()
    total_processing_time_ms: float = 0.0
    average_quality_score: float = 0.0

    def count(self, status: SectionStatus) -> int:
        return sum(
            1 for s in self.processed_sections if s.status == status
        )


@dataclass(frozen=True)
class CombinedModule:
    """All completed sections merged into one module."""

    fields: tuple[dict[str, Any], ...]
    meta: dict[str, Any]
    html: str
    css: str


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregate outcome of a processing run."""

    batches: tuple[ProcessingBatch, ...]
    total_sections: int
    processed_sections: int
    failed_sections: int
    skipped_sections: int
    overall_quality_score: float
    total_processing_time_ms: float
    combined_module: CombinedModule | None = None
    combine_error: str | None = None

    @property
    def sections(self) -> list[ProcessedSection]:
        """All processed sections in processing order."""
        return [
            s for b in self.batches for s in b.processed_sections
        ]

    @property
    def fully_succeeded(self) -> bool:
        return (
            self.total_sections > 0
            and self.processed_sections == self.total_sections
        )

    @property
    def nothing_usable(self) -> bool:
        return self.processed_sections == 0
