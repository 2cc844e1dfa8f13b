"""
Request logging middleware

Every request gets a correlation id: the client's X-Request-ID when it sends
one, a new UUID otherwise. The id is bound to the logging context for the
duration of the request and returned in the response header. Completed
requests are logged with their latency and counted in the HTTP metrics.
"""
import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from picstash.core.logging_config import clear_request_id, set_request_id
from picstash.core.metrics import record_request_metrics

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Probes and docs are polled constantly; they are counted but not logged
QUIET_PATHS = frozenset({'/health', '/metrics', '/docs', '/redoc', '/openapi.json'})


def level_for_status(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Binds a request id, logs request start/end and records HTTP metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = set_request_id(request_id)

        route = {"method": request.method, "path": request.url.path}
        verbose = route["path"] not in QUIET_PATHS
        started = time.perf_counter()

        if verbose:
            logger.info(
                f"{route['method']} {route['path']} started",
                extra={"event_type": "request_start", **route, "query": request.url.query or None}
            )

        try:
            try:
                response = await call_next(request)
            except Exception as e:
                elapsed = time.perf_counter() - started
                record_request_metrics(route["method"], route["path"], 500, elapsed)
                logger.error(
                    f"{route['method']} {route['path']} raised {type(e).__name__}",
                    extra={
                        "event_type": "request_error",
                        **route,
                        "duration_ms": round(elapsed * 1000, 2),
                        "error": str(e),
                    },
                    exc_info=True
                )
                raise

            elapsed = time.perf_counter() - started
            response.headers[REQUEST_ID_HEADER] = request_id
            record_request_metrics(route["method"], route["path"], response.status_code, elapsed)

            if verbose:
                logger.log(
                    level_for_status(response.status_code),
                    f"{route['method']} {route['path']} -> {response.status_code}",
                    extra={
                        "event_type": "request_complete",
                        **route,
                        "status_code": response.status_code,
                        "duration_ms": round(elapsed * 1000, 2),
                    }
                )
            return response
        finally:
            clear_request_id(token)
