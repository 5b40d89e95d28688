import logging
from time import perf_counter
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.infrastructure.logging.context import reset_request_id, set_request_id
from app.infrastructure.observability.metrics import record_request

logger = logging.getLogger(__name__)


def _route_path(request: Request) -> str:
    # Templated route path, e.g. /components/{component_id}.
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started_at = perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            record_request(
                method=request.method,
                path=_route_path(request),
                status_code=status_code,
                duration_seconds=perf_counter() - started_at,
            )


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id
        request_token = set_request_id(request_id)
        started_at = perf_counter()
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            if request.method != "GET" or response.status_code >= 400:
                logger.info(
                    "request_completed method=%s path=%s status=%s duration_ms=%.1f",
                    request.method,
                    _route_path(request),
                    response.status_code,
                    (perf_counter() - started_at) * 1000,
                )
            return response
        finally:
            reset_request_id(request_token)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        if "authorization" in request.headers:
            # Authenticated responses are never cached.
            response.headers["Cache-Control"] = "no-store"
        return response
