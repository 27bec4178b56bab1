"""Optional API key authentication middleware."""

from __future__ import annotations

import hmac
import logging

from fastapi import Request, Response
from starlette.middleware.base import (
    BaseHTTPMiddleware,
    RequestResponseEndpoint,
)
from starlette.responses import JSONResponse

from sectionforge.constants import (
    AUTH_EXEMPT_PATHS,
    AUTH_EXEMPT_PREFIXES,
    DOWNLOAD_PATH_SUFFIX,
)

logger = logging.getLogger(__name__)


def _provided_key(request: Request) -> str:
    """X-API-Key header, or ``?api_key=`` on archive downloads.

    Download URLs are handed to browsers, which cannot attach headers
    to a plain link.
    """
    header = request.headers.get("X-API-Key", "")
    if header:
        return header
    if request.method == "GET" and request.url.path.endswith(
        DOWNLOAD_PATH_SUFFIX
    ):
        return request.query_params.get("api_key", "")
    return ""


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Require a matching API key when one is configured.

    Empty ``Settings.api_key`` disables the check. Health and docs
    paths stay public either way.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        path = request.url.path
        if path in AUTH_EXEMPT_PATHS or path.startswith(
            AUTH_EXEMPT_PREFIXES
        ):
            return await call_next(request)

        expected: str = request.app.state.settings.api_key
        if not expected:
            return await call_next(request)

        provided = _provided_key(request)
        if hmac.compare_digest(provided.encode(), expected.encode()):
            return await call_next(request)

        logger.warning(
            "event=auth_rejected method=%s path=%s key_present=%s",
            request.method,
            path,
            bool(provided),
        )
        return JSONResponse(
            status_code=401,
            content={
                "success": False,
                "data": None,
                "error": "Invalid or missing API key",
                "metadata": {},
            },
        )
