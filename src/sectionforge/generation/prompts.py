"""Prompt construction for per-section module generation."""

from __future__ import annotations

from sectionforge.constants import CONTEXT_HTML_CHARS, SectionKind
from sectionforge.processing.schemas import (
    GenerationContext,
    SectionDescriptor,
)

SYSTEM_PROMPT = """\
You convert one section of a web page design into a reusable CMS module.
Respond with a single JSON object and nothing else:
{
  "html": "semantic HTML5 for this section only",
  "css": "optional section-specific CSS",
  "meta": {"label": "...", "description": "..."},
  "fields": [
    {"name": "snake_case_name", "label": "Field Label",
     "type": "text|rich_text|image|url|boolean|choice",
     "required": true, "default": "...", "help_text": "..."}
  ]
}
Every editable piece of content in the HTML must have a field.
Images need alt text. Do not leave [PLACEHOLDER] text behind."""

_SEMANTIC_ELEMENTS: dict[str, str] = {
    SectionKind.HEADER: "<header>, <nav>, <h1>-<h6>",
    SectionKind.HERO: "<section>, <div>, <h1>, <p>",
    SectionKind.CONTENT: "<main>, <section>, <article>, <p>, <div>",
    SectionKind.FOOTER: "<footer>, <nav>, <address>",
    SectionKind.SIDEBAR: "<aside>, <nav>, <section>",
    SectionKind.NAVIGATION: "<nav>, <ul>, <li>, <a>",
    SectionKind.FEATURE: "<section>, <div>, <h2>, <h3>",
    SectionKind.TESTIMONIAL: "<section>, <blockquote>, <cite>",
    SectionKind.CONTACT: "<section>, <form>, <fieldset>, <input>",
    SectionKind.GALLERY: "<section>, <figure>, <img>, <figcaption>",
}

_GUIDELINES: dict[str, tuple[str, ...]] = {
    SectionKind.HEADER: (
        "Include logo, navigation and branding elements",
        "Ensure a mobile menu is possible",
        "Keep a proper heading hierarchy",
    ),
    SectionKind.HERO: (
        "Large headline with a clear value proposition",
        "Call-to-action button with text and URL fields",
        "Background image or gradient support",
    ),
    SectionKind.CONTENT: (
        "Clear content hierarchy with headings",
        "Support rich text and media",
    ),
    SectionKind.FOOTER: (
        "Contact information and legal links",
        "Social links and copyright text",
    ),
    SectionKind.NAVIGATION: (
        "Accessible menu structure with active state",
        "Keyboard navigation support",
    ),
    SectionKind.SIDEBAR: (
        "Complementary widgets with clear separation",
        "Stack below main content on mobile",
    ),
    SectionKind.FEATURE: (
        "Grid or card layout with consistent spacing",
        "Icon or image per feature",
    ),
    SectionKind.TESTIMONIAL: (
        "Quotes with attribution and optional portrait",
    ),
    SectionKind.CONTACT: (
        "Labelled form fields and contact details",
    ),
    SectionKind.GALLERY: (
        "Responsive image grid with captions and alt text",
    ),
}


def section_guidelines(kind: SectionKind) -> str:
    """Bullet list of best practices for a section kind."""
    items = _GUIDELINES.get(
        kind, ("Follow general section best practices",)
    )
    return "\n".join(f"- {item}" for item in items)


def build_section_prompt(
    descriptor: SectionDescriptor,
    context: GenerationContext,
) -> str:
    """User prompt describing one section and its surroundings."""
    lines = [
        f"Section {context.position} of {context.total}",
        f"- Id: {descriptor.id}",
        f"- Kind: {descriptor.kind}",
        f"- Complexity: {descriptor.complexity}",
        f"- Estimated fields: {descriptor.estimated_fields}",
        f"- Title: {descriptor.display_title}",
        f"- Description: {descriptor.description or 'none'}",
        f"- Priority: {descriptor.priority}",
        "",
        "Use semantic elements: "
        + _SEMANTIC_ELEMENTS.get(descriptor.kind, "<section>, <div>"),
        "",
        f"{descriptor.kind.upper()} best practices:",
        section_guidelines(descriptor.kind),
    ]
    if descriptor.html:
        lines += ["", "Existing markup to improve:", descriptor.html]
    if context.previous_html:
        lines += [
            "",
            "Previous section (for visual continuity):",
            context.previous_html[:CONTEXT_HTML_CHARS],
        ]
    if context.attempt > 1:
        lines += [
            "",
            "The previous attempt scored below the quality bar. "
            "Cover every editable element with a field.",
        ]
    return "\n".join(lines)
