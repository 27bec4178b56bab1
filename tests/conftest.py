"""Shared test fixtures: settings, descriptors and app state."""

import os

# Force demo API keys for all tests: no real LLM calls.
os.environ["ANTHROPIC_API_KEY"] = "for-demo-purposes-only"
os.environ["OPENAI_API_KEY"] = "for-demo-purposes-only"

import json
import logging
from pathlib import Path

import pytest

from sectionforge.config import Settings
from sectionforge.constants import SectionKind
from sectionforge.logger import PipelineLogger
from sectionforge.packaging.builder import PackageBuilder
from sectionforge.packaging.schemas import ModuleFiles
from sectionforge.processing.schemas import SectionDescriptor
from tests.fakes import ScriptedGenerator

_KINDS = (
    SectionKind.HEADER,
    SectionKind.HERO,
    SectionKind.CONTENT,
    SectionKind.FEATURE,
    SectionKind.FOOTER,
)


def make_descriptors(
    n: int, *, priorities: list[int] | None = None
) -> list[SectionDescriptor]:
    """``n`` descriptors with ids s1..sn and cycling kinds."""
    return [
        SectionDescriptor(
            id=f"s{i}",
            kind=_KINDS[(i - 1) % len(_KINDS)],
            priority=priorities[i - 1] if priorities else i,
            estimated_fields=1,
            title=f"Section {i}",
        )
        for i in range(1, n + 1)
    ]


def make_module_files(**overrides: object) -> ModuleFiles:
    """A valid module; keyword overrides replace individual files."""
    values: dict[str, object] = {
        "module_html": '<section class="hero"><h1>{{ title }}</h1></section>',
        "fields_json": json.dumps(
            [{"name": "title", "label": "Title", "type": "text"}]
        ),
        "meta_json": json.dumps(
            {"label": "Hero", "content_types": ["page"]}
        ),
        "module_css": ".hero h1 { font-size: 2rem; }",
    }
    values.update(overrides)
    return ModuleFiles(**values)  # type: ignore[arg-type]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        packages_dir=tmp_path / "packages",
        log_dir=tmp_path / "logs",
        litellm_model_chain=["test/model-a", "test/model-b"],
    )


@pytest.fixture
def builder(settings: Settings) -> PackageBuilder:
    return PackageBuilder(settings)


@pytest.fixture
def pipeline_logger(tmp_path: Path):
    """PipelineLogger writing to tmp; its file handler is closed after."""
    plog = PipelineLogger(log_dir=tmp_path / "logs", level="INFO")
    yield plog
    lg = logging.getLogger("sectionforge.pipeline")
    for h in list(lg.handlers):
        if isinstance(h, logging.FileHandler):
            lg.removeHandler(h)
            h.close()


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


def setup_test_app(
    tmp_path: Path,
    *,
    generator: object | None = None,
    api_key: str = "",
) -> Settings:
    """Populate app.state the way the lifespan would (no LLM, tmp dirs).

    ASGITransport does not run the lifespan, so tests call this before
    building a client.
    """
    from sectionforge.main import app

    settings = Settings(
        packages_dir=tmp_path / "packages",
        log_dir=tmp_path / "logs",
        litellm_model_chain=["test/model-a"],
        api_key=api_key,
    )
    app.state.settings = settings
    app.state.builder = PackageBuilder(settings)
    app.state.generator = generator or ScriptedGenerator()
    app.state.scorer = None
    app.state.logger = None
    return settings
