"""Environment-based configuration."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

from sectionforge.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_QUALITY_THRESHOLD,
    DEFAULT_TIMEOUT_PER_SECTION,
)

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Reads from .env file and environment variables."""

    # LLM Provider
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # Model chain (first = primary, rest = fallbacks tried in order)
    litellm_model_chain: Annotated[list[str], NoDecode] = [
        "openai/gpt-4.1-mini",
        "openai/gpt-4.0-mini",
    ]
    llm_timeout_seconds: int = 60

    # Section processing
    default_batch_size: int = DEFAULT_BATCH_SIZE
    quality_threshold: float = DEFAULT_QUALITY_THRESHOLD
    timeout_per_section: float = DEFAULT_TIMEOUT_PER_SECTION
    max_retries: int = DEFAULT_MAX_RETRIES

    # Directories
    packages_dir: Path = Path("data/packages")
    log_dir: Path = Path("logs")

    # Logging
    log_level: str = "INFO"

    # Packaging
    package_ttl_hours: int = 24
    download_base_url: str = "/api/packages"
    max_html_chars: int = 10_000
    max_css_chars: int = 5_000
    max_js_chars: int = 20_000
    max_inline_styles: int = 10

    # API
    api_key: str = ""
    cors_origins: str = "http://localhost:3000"

    @field_validator("litellm_model_chain", mode="before")
    @classmethod
    def _parse_chain(cls, v: Any) -> Any:
        """Accept comma-separated string or JSON array."""
        if isinstance(v, str) and v.strip().startswith("["):
            try:
                v = json.loads(v)
            except json.JSONDecodeError as exc:
                raise ValueError(
                    f"litellm_model_chain is not valid JSON: {exc.msg}"
                ) from exc
            return [str(s).strip() for s in v if str(s).strip()]
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("litellm_model_chain")
    @classmethod
    def _validate_chain(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError(
                "litellm_model_chain must contain at least one model"
            )
        seen: set[str] = set()
        dupes: list[str] = []
        for m in v:
            if m in seen:
                dupes.append(m)
            seen.add(m)
        if dupes:
            logger.warning(
                "Duplicate models in LITELLM_MODEL_CHAIN: %s",
                ", ".join(dupes),
            )
        return v

    @field_validator("default_batch_size")
    @classmethod
    def _validate_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("default_batch_size must be >= 1")
        return v

    @field_validator("quality_threshold")
    @classmethod
    def _validate_threshold(cls, v: float) -> float:
        if not 0 <= v <= 100:
            raise ValueError(
                "quality_threshold must be between 0 and 100"
            )
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "",
        "extra": "ignore",
    }
