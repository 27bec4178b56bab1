"""FastAPI dependency injection for pipeline collaborators."""

from __future__ import annotations

from fastapi import Request

from sectionforge.config import Settings
from sectionforge.generation.adapter import ContentGenerator
from sectionforge.generation.scorer import QualityScorer
from sectionforge.logger import PipelineLogger
from sectionforge.packaging.builder import PackageBuilder


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_builder(request: Request) -> PackageBuilder:
    return request.app.state.builder


def get_generator(request: Request) -> ContentGenerator:
    return request.app.state.generator


def get_scorer(request: Request) -> QualityScorer | None:
    return getattr(request.app.state, "scorer", None)


def get_pipeline_logger(request: Request) -> PipelineLogger | None:
    return getattr(request.app.state, "logger", None)
