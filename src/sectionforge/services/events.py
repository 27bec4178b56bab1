"""Progress events emitted while a run moves through its stages.

Stage names are ``section_processing``, ``batch``, ``combine`` and
``packaging``. The scheduler and the pipeline service both emit these,
so the type lives here rather than in either of them.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeAlias

from sectionforge.constants import STAGE_LABELS, StageProgress


@dataclass(frozen=True)
class StageEvent:
    """One progress notification for a named stage."""

    name: str
    status: StageProgress
    message: str = ""
    duration_ms: float = 0.0
    # Section counts, set on batch events only
    completed: int | None = None
    total: int | None = None
    percent: float | None = None

    @property
    def label(self) -> str:
        """User-friendly display label from STAGE_LABELS."""
        return STAGE_LABELS[self.name]

    @classmethod
    def batch(
        cls,
        batch_id: str,
        status: StageProgress,
        completed: int,
        total: int,
        duration_ms: float = 0.0,
    ) -> StageEvent:
        """Batch event; ``percent`` is filled in once the batch is done."""
        percent: float | None = None
        if status != StageProgress.RUNNING:
            percent = round(completed / total * 100, 1) if total else 100.0
        return cls(
            name="batch",
            status=status,
            message=batch_id,
            duration_ms=duration_ms,
            completed=completed,
            total=total,
            percent=percent,
        )


ProgressCallback: TypeAlias = Callable[[StageEvent], None]
