"""
API handlers: map service errors to HTTP.

Responsibility: One place that turns SiteplaneError into {"message": ...} with
the error's status, so services stay free of FastAPI/HTTP types.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from siteplane.core.errors import SiteplaneError, TenantAccessDeniedError

logger = logging.getLogger(__name__)


async def handle_siteplane_error(request: Request, exc: SiteplaneError) -> JSONResponse:
    body: dict[str, str] = {"message": exc.message}
    if isinstance(exc, TenantAccessDeniedError) and exc.reason:
        body["reason"] = exc.reason
    logger.info("[api:error] %s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=body)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SiteplaneError, handle_siteplane_error)
