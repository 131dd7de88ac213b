"""Embed the Swagger Diff UI and its endpoints in a FastAPI application.

Typical wiring::

    app = FastAPI()
    use_swagger_diff(app)

which serves the UI at ``/swagger-diff/`` and the JSON endpoints at
``/swagger-diff/api-docs/versions`` and ``/swagger-diff/api-docs/compare``.
"""

from __future__ import annotations

import html
from functools import lru_cache
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles

from .api.routers.diff import router as diff_router
from .domain.diff_service import SwaggerDiffService
from .settings import Settings, get_settings

STATIC_DIR = Path(__file__).resolve().parent / "static"


def use_swagger_diff(
    app: FastAPI,
    settings: Settings | None = None,
    *,
    service: SwaggerDiffService | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    app.state.swagger_diff = service or SwaggerDiffService.from_settings(settings)
    app.state.swagger_diff_settings = settings

    # API routes first: the static mount below matches everything under the prefix.
    app.include_router(diff_router, prefix=settings.ROUTE_PREFIX, include_in_schema=False)
    app.mount(
        settings.ROUTE_PREFIX,
        StaticFiles(directory=STATIC_DIR / "swagger_diff", html=True),
        name="swagger-diff",
    )
    return app


@lru_cache
def _button_template() -> str:
    return (STATIC_DIR / "swagger-diff-button.html").read_text(encoding="utf-8")


def swagger_diff_button_html(route_prefix: str = "/swagger-diff") -> str:
    """Snippet that adds a "Swagger Diff" button to the Swagger UI top bar."""
    href = (route_prefix.rstrip("/") or "") + "/"
    return _button_template().replace("{{ROUTE_PREFIX}}", html.escape(href, quote=True))


def get_swagger_ui_html_with_diff_button(
    *,
    openapi_url: str,
    title: str,
    route_prefix: str = "/swagger-diff",
    **kwargs: Any,
) -> HTMLResponse:
    page = get_swagger_ui_html(openapi_url=openapi_url, title=title, **kwargs)
    body = bytes(page.body).decode("utf-8")
    snippet = swagger_diff_button_html(route_prefix)
    if "</body>" in body:
        body = body.replace("</body>", snippet + "\n</body>", 1)
    else:
        body += snippet
    return HTMLResponse(body)
