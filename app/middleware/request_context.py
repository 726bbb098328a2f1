"""
RequestContext Middleware - Adds request tracking to all requests.

Every request gets a request_id that is:
- stored on request.state.request_id
- bound into the structlog context, so batch logs emitted while serving a
  trigger carry it
- echoed back in the X-Request-ID response header

An incoming X-Request-ID (set by the cron provider or a proxy) is reused.
"""

import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.infrastructure.observability.logging import (
    bind_log_context,
    clear_log_context,
    get_logger,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        bind_log_context(request_id=request_id)

        logger.debug("Request started", method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        finally:
            clear_log_context("request_id")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
