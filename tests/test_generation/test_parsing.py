"""Tests for generator payload parsing and fallback modules."""

from __future__ import annotations

import json

import pytest

from sectionforge.constants import SectionKind
from sectionforge.generation.parsing import (
    build_fallback_module,
    default_css,
    default_fields,
    parse_generated_content,
    to_module_data,
)
from sectionforge.processing.schemas import SectionDescriptor


class TestParseGeneratedContent:
    def test_dict_payload(self) -> None:
        outcome = parse_generated_content(
            {"html": "<p>x</p>", "fields": [], "quality_score": 82}
        )
        assert outcome.ok
        assert outcome.content is not None
        assert outcome.content.quality_score == 82

    def test_fenced_json_string(self) -> None:
        text = "```json\n" + json.dumps({"html": "<p>x</p>"}) + "\n```"
        outcome = parse_generated_content(text)
        assert outcome.ok

    def test_nested_module_form(self) -> None:
        outcome = parse_generated_content(
            {
                "html": "<p>x</p>",
                "module": {"fields": [{"name": "a"}], "meta": {"label": "A"}},
                "validation": {"score": 77},
            }
        )
        assert outcome.content is not None
        assert outcome.content.fields == [{"name": "a"}]
        assert outcome.content.quality_score == 77

    @pytest.mark.parametrize(
        "payload",
        ["not json", "[1, 2]", {"unrelated": True}, 42, None],
    )
    def test_rejects_unusable(self, payload: object) -> None:
        outcome = parse_generated_content(payload)
        assert not outcome.ok
        assert outcome.error

    @pytest.mark.parametrize(
        ("reported", "expected"),
        [(250, 100.0), (100.5, 100.0), (-3, 0.0), ("n/a", None)],
    )
    def test_reported_score_clamped_not_rejected(
        self, reported: object, expected: float | None
    ) -> None:
        outcome = parse_generated_content(
            {"html": "<p>x</p>", "quality_score": reported}
        )
        assert outcome.content is not None
        assert outcome.content.html == "<p>x</p>"
        assert outcome.content.quality_score == expected

    def test_nested_score_over_range_keeps_content(self) -> None:
        outcome = parse_generated_content(
            {
                "html": "<section>real</section>",
                "fields": [{"name": "a"}],
                "meta": {"label": "A"},
                "validation": {"score": 100.5},
            }
        )
        assert outcome.content is not None
        assert outcome.content.html == "<section>real</section>"
        assert outcome.content.quality_score == 100.0


class TestFallback:
    def test_hero_fields(self) -> None:
        desc = SectionDescriptor(id="h", kind="hero", title="Welcome")
        names = [f["name"] for f in default_fields(desc)]
        assert names == ["hero_title", "hero_content", "cta_text", "cta_url"]
        assert default_fields(desc)[0]["default"] == "Welcome"

    def test_header_and_footer_extras(self) -> None:
        header = default_fields(SectionDescriptor(id="a", kind="header"))
        footer = default_fields(SectionDescriptor(id="b", kind="footer"))
        assert header[-1]["name"] == "logo_image"
        assert footer[-1]["name"] == "copyright_text"

    def test_navigation_has_no_title(self) -> None:
        names = [
            f["name"]
            for f in default_fields(SectionDescriptor(id="n", kind="navigation"))
        ]
        assert names == ["navigation_content"]

    def test_seed_html_preferred(self) -> None:
        desc = SectionDescriptor(id="c", html="<div>seed</div>")
        assert build_fallback_module(desc).html == "<div>seed</div>"

    def test_generated_markup_without_seed(self) -> None:
        module = build_fallback_module(
            SectionDescriptor(id="c", kind="content", title="About")
        )
        assert 'class="content-section"' in module.html
        assert "About" in module.html
        assert module.meta["label"] == "Content Module"

    def test_default_css_per_kind(self) -> None:
        assert "sticky" in default_css(SectionKind.HEADER)
        assert ".gallery-section p" in default_css(SectionKind.GALLERY)


class TestToModuleData:
    def test_keeps_supplied_parts(self) -> None:
        desc = SectionDescriptor(id="c")
        outcome = parse_generated_content(
            {"html": "<p>x</p>", "css": "p{}", "meta": {"label": "X"}}
        )
        assert outcome.content is not None
        module = to_module_data(outcome.content, desc)
        assert module.html == "<p>x</p>"
        assert module.css == "p{}"
        assert module.meta == {"label": "X"}
        assert module.fields
