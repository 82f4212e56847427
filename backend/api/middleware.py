"""
Request middleware for the read API.
Every request gets an id (X-Request-ID in, or a fresh one) bound into the
structlog context, so route and store log lines carry it too.
"""
from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from shared.utils.logging import get_logger

logger = get_logger(__name__)

# Health checks are polled every few seconds
UNLOGGED_PATHS = frozenset({"/health", "/ready"})


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        request.state.request_id = request_id
        started = time.perf_counter()
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
            if request.url.path not in UNLOGGED_PATHS:
                logger.info(
                    "request_completed",
                    method=request.method,
                    path=request.url.path,
                    status=response.status_code,
                    elapsed_ms=int((time.perf_counter() - started) * 1000),
                )
        response.headers["X-Request-ID"] = request_id
        return response


async def internal_error(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    logger.exception("request_failed", path=request.url.path, request_id=request_id)
    return JSONResponse(status_code=500, content={"error": "internal_server_error", "request_id": request_id})


def setup_middleware(app: FastAPI) -> None:
    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(Exception, internal_error)
