"""FastAPI application with lifespan startup."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

# Phase 1: singleton logging, MUST be before any sectionforge imports
# (they transitively import litellm which reads LITELLM_LOG at import time)
from sectionforge.logging_config import setup_logging

setup_logging()

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from sectionforge import __version__  # noqa: E402
from sectionforge.api.middleware.auth import ApiKeyMiddleware  # noqa: E402
from sectionforge.api.routes import health, packages, sections  # noqa: E402
from sectionforge.config import Settings  # noqa: E402
from sectionforge.generation.adapter import (  # noqa: E402
    LLMContentGenerator,
)
from sectionforge.generation.scorer import (  # noqa: E402
    HeuristicQualityScorer,
)
from sectionforge.logger import PipelineLogger  # noqa: E402
from sectionforge.logging_config import (  # noqa: E402
    cleanup_third_party_handlers,
)
from sectionforge.packaging.builder import PackageBuilder  # noqa: E402

# Phase 2: Now that all imports (including litellm) are done,
# clear litellm's duplicate handlers.
cleanup_third_party_handlers()

_logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = _settings
    settings.packages_dir.mkdir(parents=True, exist_ok=True)

    plog = PipelineLogger(log_dir=settings.log_dir, level=settings.log_level)
    builder = PackageBuilder(settings, pipeline_logger=plog)

    app.state.settings = settings
    app.state.logger = plog
    app.state.builder = builder
    app.state.generator = LLMContentGenerator(settings)
    app.state.scorer = HeuristicQualityScorer()

    purged = builder.purge_expired()
    if purged:
        _logger.info("event=startup_purge removed=%d", len(purged))

    if not settings.api_key:
        _logger.warning("event=no_api_key action=all_endpoints_public")

    yield


app = FastAPI(
    title="SectionForge",
    description=(
        "Batch section processing -- turns split design sections"
        " into packaged CMS modules"
    ),
    version=__version__,
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

# Middleware stack (Starlette LIFO: last added = outermost = runs first)
#
# CORS must be outermost so OPTIONS preflight is answered before
# ApiKeyMiddleware rejects for missing X-API-Key.
_settings = Settings()
_cors_origins = [
    o.strip() for o in _settings.cors_origins.split(",") if o.strip()
]

app.add_middleware(ApiKeyMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-API-Key"],
    allow_credentials=False,
)

app.include_router(health.router)
app.include_router(sections.router)
app.include_router(packages.router)
