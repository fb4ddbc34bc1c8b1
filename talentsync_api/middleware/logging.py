"""Request logging middleware using structlog."""

import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = structlog.get_logger()

# Polled by load balancers and probes; logged at debug only
QUIET_PATHS = ("/health", "/api/v1/health", "/api/v1/health/live", "/api/v1/health/ready")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Binds a request id and the caller's tenant, then logs one line per request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        context = {"request_id": request_id}
        if request.headers.get("X-Tenant-ID"):
            context["tenant_id"] = request.headers["X-Tenant-ID"]
        if "X-JobAdder-Signature" in request.headers:
            context["webhook"] = True
        structlog.contextvars.bind_contextvars(**context)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        if request.url.path in QUIET_PATHS and response.status_code < 500:
            emit = logger.debug
        elif response.status_code >= 500:
            emit = logger.error
        elif response.status_code >= 400:
            emit = logger.warning
        else:
            emit = logger.info
        emit(
            "Request handled",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=elapsed_ms,
        )

        response.headers["X-Request-ID"] = request_id
        return response
