"""API middleware for request correlation and API key authentication."""

import hmac
import logging
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


def _client(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request and tags it with a request id.

    The id is taken from the incoming X-Request-Id header when present and is
    stored on ``request.state`` so report events can carry the same id.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        request.state.request_id = request_id
        start = time.perf_counter()

        logger.info(
            "[%s] %s %s clinician=%s client=%s",
            request_id,
            request.method,
            request.url.path,
            request.headers.get("X-Clinician-Id", "-"),
            _client(request),
        )

        response = await call_next(request)

        duration = time.perf_counter() - start
        logger.info(
            "[%s] %s %s status=%d duration=%.3fs",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            duration,
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Rejects requests without the configured API key.

    Accepts either ``Authorization: Bearer <key>`` or ``X-API-Key``.
    """

    open_paths = frozenset({"/health", "/health/ready", "/docs", "/openapi.json"})

    def __init__(self, app, api_key: str):
        super().__init__(app)
        self.api_key = api_key

    @staticmethod
    def _provided_key(request: Request) -> Optional[str]:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            return auth_header.removeprefix("Bearer ")
        return request.headers.get("X-API-Key")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.open_paths:
            return await call_next(request)

        provided = self._provided_key(request)
        if provided and hmac.compare_digest(provided, self.api_key):
            return await call_next(request)

        logger.warning(
            "Rejected request without valid API key: %s %s client=%s",
            request.method,
            request.url.path,
            _client(request),
        )
        return JSONResponse(
            status_code=401,
            content={"error": "Unauthorized", "detail": "Invalid or missing API key"},
        )
