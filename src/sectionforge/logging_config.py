"""Process-wide logging setup, done in two phases around the litellm import.

``setup_logging()`` runs first, before anything imports litellm (which
reads ``LITELLM_LOG`` once, at import). ``cleanup_third_party_handlers()``
runs after every import is done and strips the handlers litellm
attached to its own loggers. Both are no-ops after the first call.
"""

import logging
import os

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

_LITELLM_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy")

# Held at WARNING regardless of the root level
_SUPPRESSED_LOGGERS = (
    *_LITELLM_LOGGERS,
    "openai._base_client",
    "httpx",
    "httpcore",
)

_phase1_done = False
_phase2_done = False


def setup_logging(level: str | None = None) -> None:
    """Phase 1: root logger, litellm env var, noisy loggers.

    ``level`` defaults to ``$LOG_LEVEL`` (INFO when unset); Settings
    is not consulted because this runs before configuration loads.
    """
    global _phase1_done  # noqa: PLW0603
    if _phase1_done:
        return
    _phase1_done = True

    os.environ.setdefault("LITELLM_LOG", "WARNING")

    resolved = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )

    for name in _SUPPRESSED_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def cleanup_third_party_handlers() -> None:
    """Phase 2: drop litellm's own StreamHandlers.

    Without this every litellm record is printed twice, once by its
    handler and once by root.
    """
    global _phase2_done  # noqa: PLW0603
    if _phase2_done:
        return
    _phase2_done = True

    for name in _LITELLM_LOGGERS:
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.propagate = True


def set_verbose(verbose: bool) -> None:
    """Toggle DEBUG output for sectionforge's own loggers (CLI ``-v``)."""
    logging.getLogger("sectionforge").setLevel(
        logging.DEBUG if verbose else logging.NOTSET
    )
