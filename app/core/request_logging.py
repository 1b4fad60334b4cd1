"""
Request logging middleware.
Logs one structured line per request with timing.
NEVER logs: request bodies (prompts, sandbox env values), sensitive headers.
"""
import time
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.request_context import set_request_id
from app.core.metrics import metrics

logger = logging.getLogger("forge.request")

# Polled endpoints that would drown the log
QUIET_PATHS = frozenset(["/health", "/metrics"])


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    - Reuses an incoming X-Request-Id or generates one
    - Logs request/response with timing
    - Echoes X-Request-Id on the response
    - Updates metrics
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = set_request_id(request.headers.get("x-request-id"))

        client_ip = request.client.host if request.client else "unknown"
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()

        start_time = time.perf_counter()
        response: Response = await call_next(request)
        duration_ms = int((time.perf_counter() - start_time) * 1000)

        response.headers["X-Request-Id"] = request_id

        metrics.inc("requests_total")
        status_class = response.status_code // 100
        if status_class in (2, 4, 5):
            metrics.inc(f"requests_{status_class}xx")

        if request.url.path not in QUIET_PATHS:
            logger.info(
                "request",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                    "client_ip": client_ip,
                }
            )

        return response
