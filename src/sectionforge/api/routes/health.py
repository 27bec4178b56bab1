"""Health check endpoints."""

import os
from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from sectionforge import __version__
from sectionforge.api.dependencies import get_settings
from sectionforge.config import Settings
from sectionforge.generation._llm_call import open_circuits

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe for load balancers."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.get("/health/detailed")
async def health_detailed(
    settings: Settings = Depends(get_settings),
) -> dict[str, object]:
    """Package store and model chain status."""
    store = settings.packages_dir
    store_ok = store.is_dir() and os.access(store, os.W_OK)
    tripped = open_circuits()
    available = [m for m in settings.litellm_model_chain if m not in tripped]

    components = {
        "package_store": {
            "status": "writable" if store_ok else "unavailable",
        },
        "model_chain": {
            "status": "available" if available else "unavailable",
            "models": settings.litellm_model_chain,
            "open_circuits": tripped,
        },
    }
    healthy = store_ok and bool(available)
    return {
        "status": "healthy" if healthy else "degraded",
        "version": __version__,
        "components": components,
        "timestamp": datetime.now(UTC).isoformat(),
    }
