from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware


class LoggingMiddleware(BaseHTTPMiddleware):
    """Attach/propagate request IDs and log request lifecycle."""

    def __init__(self, app) -> None:
        super().__init__(app)
        self.logger = logging.getLogger("swaggerdiff")
        # redact any header key matching these patterns (case-insensitive)
        self._redact_key_re = re.compile(r"(authorization|cookie|api[-_]?key|token)", re.IGNORECASE)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            headers = {}
            for k, v in request.headers.items():
                headers[k] = "REDACTED" if self._redact_key_re.search(k) else v
            extra = {
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code if response else 500,
                "duration_ms": round(duration_ms, 2),
                "request_id": request_id,
                "headers": headers,
            }
            self.logger.info("request", extra=extra)
            if response:
                response.headers["X-Request-ID"] = request_id
