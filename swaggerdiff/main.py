from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse

from .api.middleware.logging import LoggingMiddleware
from .api.models import ErrorCode, error_response
from .api.routers.health import router as health_router
from .integration import use_swagger_diff
from .settings import Settings, get_settings

log = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Standalone viewer for a snapshot directory."""
    settings = settings or get_settings()
    app = FastAPI(title=settings.SERVICE_NAME, docs_url=None, redoc_url=None)

    app.add_middleware(LoggingMiddleware)
    app.include_router(health_router, tags=["ops"])
    use_swagger_diff(app, settings)

    if settings.ROUTE_PREFIX:

        @app.get("/", include_in_schema=False)
        async def root() -> RedirectResponse:
            return RedirectResponse(settings.ROUTE_PREFIX + "/")

    @app.exception_handler(RequestValidationError)
    async def validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # ctx can carry exception instances, which do not serialize
        errors = [{k: v for k, v in e.items() if k not in {"ctx", "input"}} for e in exc.errors()]
        return error_response(
            ErrorCode.validation_error,
            "Invalid request",
            422,
            request_id=getattr(request.state, "request_id", None),
            details={"errors": errors},
        )

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - simple
        log.exception("unhandled error", extra={"path": request.url.path})
        return error_response(
            ErrorCode.internal_error,
            "Internal server error",
            500,
            request_id=getattr(request.state, "request_id", None),
        )

    return app
