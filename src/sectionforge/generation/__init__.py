"""Section content generation: adapter, parsing, fallback, scoring."""

from sectionforge.generation.adapter import (
    ContentGenerator,
    LLMContentGenerator,
)
from sectionforge.generation.parsing import (
    GeneratedContent,
    ParseOutcome,
    build_fallback_module,
    parse_generated_content,
)
from sectionforge.generation.scorer import (
    HeuristicQualityScorer,
    QualityScorer,
)

__all__ = [
    "ContentGenerator",
    "GeneratedContent",
    "HeuristicQualityScorer",
    "LLMContentGenerator",
    "ParseOutcome",
    "QualityScorer",
    "build_fallback_module",
    "parse_generated_content",
]
