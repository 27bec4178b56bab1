"""Structured JSON logger for section, batch and package events."""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from sectionforge.constants import ERROR_TRUNCATION_CHARS
from sectionforge.logging_config import LOG_DATEFMT, LOG_FORMAT

__all__ = ["PipelineLogger", "LOG_FORMAT", "LOG_DATEFMT"]


class PipelineLogger:
    """Structured JSON logger with run_id correlation.

    Writes one JSON object per line. When ``log_dir`` is None the
    records only go to the ``sectionforge.pipeline`` logger's
    existing handlers (useful in tests with ``caplog``).
    """

    def __init__(
        self, log_dir: Path | None = None, level: str = "INFO"
    ) -> None:
        self._logger = logging.getLogger("sectionforge.pipeline")
        self._logger.setLevel(getattr(logging, level.upper()))

        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            log_path = str((log_dir / "pipeline.log").resolve())
            already = any(
                isinstance(h, logging.FileHandler)
                and h.baseFilename == log_path
                for h in self._logger.handlers
            )
            if not already:
                handler = logging.FileHandler(log_path)
                handler.setFormatter(logging.Formatter("%(message)s"))
                self._logger.addHandler(handler)

    def _emit(self, level: int, record: dict[str, object]) -> None:
        record["timestamp"] = datetime.now(UTC).isoformat()
        self._logger.log(level, json.dumps(record, default=str))

    def log_section(
        self,
        run_id: str,
        section_id: str,
        phase: str,
        status: str,
        *,
        score: float | None = None,
        duration_ms: float = 0.0,
        error: str | None = None,
    ) -> None:
        self._emit(
            logging.INFO,
            {
                "type": "section",
                "run_id": run_id,
                "section_id": section_id,
                "phase": phase,
                "status": status,
                "score": score,
                "duration_ms": duration_ms,
                "error": error[:ERROR_TRUNCATION_CHARS] if error else None,
            },
        )

    def log_batch(
        self,
        run_id: str,
        batch_id: str,
        status: str,
        completed: int,
        failed: int,
        skipped: int,
        average_score: float,
        duration_ms: float,
    ) -> None:
        self._emit(
            logging.INFO,
            {
                "type": "batch",
                "run_id": run_id,
                "batch_id": batch_id,
                "status": status,
                "completed": completed,
                "failed": failed,
                "skipped": skipped,
                "average_score": average_score,
                "duration_ms": duration_ms,
            },
        )

    def log_package(
        self,
        package_id: str,
        status: str,
        size_bytes: int = 0,
        file_count: int = 0,
    ) -> None:
        self._emit(
            logging.INFO,
            {
                "type": "package",
                "package_id": package_id,
                "status": status,
                "size_bytes": size_bytes,
                "file_count": file_count,
            },
        )

    def log_error(
        self,
        run_id: str,
        component: str,
        error: str,
    ) -> None:
        self._emit(
            logging.ERROR,
            {
                "type": "error",
                "run_id": run_id,
                "component": component,
                "error": error[:ERROR_TRUNCATION_CHARS],
            },
        )
