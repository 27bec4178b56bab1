"""Content generation adapter.

The processor depends only on the ``ContentGenerator`` protocol; the
LLM-backed implementation below is what the CLI and API wire in.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from sectionforge.config import Settings
from sectionforge.generation._llm_call import complete_with_chain
from sectionforge.generation.prompts import (
    SYSTEM_PROMPT,
    build_section_prompt,
)
from sectionforge.processing.schemas import (
    GenerationContext,
    SectionDescriptor,
)

logger = logging.getLogger(__name__)


class ContentGenerator(Protocol):
    async def generate(
        self,
        descriptor: SectionDescriptor,
        context: GenerationContext,
    ) -> str | dict[str, Any]: ...


class LLMContentGenerator:
    """Generates a section module with the configured model chain.

    Returns the raw completion text; parsing and fallback happen in
    the processor so every generator gets the same treatment.
    Raises GenerationError when every model in the chain fails.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()

    async def generate(
        self,
        descriptor: SectionDescriptor,
        context: GenerationContext,
    ) -> str:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": build_section_prompt(descriptor, context),
            },
        ]
        result = await complete_with_chain(
            self._settings.litellm_model_chain,
            messages,
            self._settings.llm_timeout_seconds,
        )
        logger.info(
            "event=section_generated section=%s model=%s "
            "input_tokens=%d output_tokens=%d",
            descriptor.id,
            result.model,
            result.input_tokens,
            result.output_tokens,
        )
        return result.content
