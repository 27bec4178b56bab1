"""Error classification for content generation failures.

The section processor uses the category to decide whether another
generation attempt is worthwhile (transient, server and timeout
errors) and to tag log records.
"""

from __future__ import annotations

import asyncio
from enum import Enum


class GenerationError(Exception):
    """Raised by a content generator when no usable response exists."""

    def __init__(
        self, message: str, *, status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code


class ErrorClass(Enum):
    TRANSIENT = "transient"  # 429, dropped connections
    SERVER = "server"  # 5xx
    TIMEOUT = "timeout"  # per-section deadline or provider timeout
    QUOTA = "quota"  # billing / quota exhausted
    CLIENT = "client"  # 4xx other than 429
    UNKNOWN = "unknown"


_RETRYABLE = frozenset({
    ErrorClass.TRANSIENT,
    ErrorClass.SERVER,
    ErrorClass.TIMEOUT,
})


def classify_error(error: BaseException) -> ErrorClass:
    """Classify a generation error.

    Structured attributes (``status_code``) win over exception type,
    which wins over message matching.
    """
    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        if status_code == 429:
            return (
                ErrorClass.QUOTA
                if _mentions_quota(error)
                else ErrorClass.TRANSIENT
            )
        if status_code == 402:
            return ErrorClass.QUOTA
        if 400 <= status_code < 500:
            return ErrorClass.CLIENT
        if 500 <= status_code < 600:
            return ErrorClass.SERVER

    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return ErrorClass.TIMEOUT
    if isinstance(error, ConnectionError):
        return ErrorClass.TRANSIENT

    msg = str(error).lower()
    if _mentions_quota(error):
        return ErrorClass.QUOTA
    if "timeout" in msg or "timed out" in msg:
        return ErrorClass.TIMEOUT
    if "429" in msg or "rate limit" in msg or "rate_limit" in msg:
        return ErrorClass.TRANSIENT
    if any(code in msg for code in ("500", "502", "503", "504")):
        return ErrorClass.SERVER
    if "econnrefused" in msg or "connection" in msg:
        return ErrorClass.TRANSIENT
    if any(code in msg for code in ("400", "401", "403", "404")):
        return ErrorClass.CLIENT
    return ErrorClass.UNKNOWN


def is_retryable(error: BaseException) -> bool:
    """Return True if another generation attempt may succeed."""
    return classify_error(error) in _RETRYABLE


def _mentions_quota(error: BaseException) -> bool:
    msg = str(error).lower()
    return "quota" in msg or "insufficient_quota" in msg
