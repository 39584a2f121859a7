"""
Request correlation middleware.
"""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from society_booking.core.logging import bind_request_context, get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags every log line of a request with its request id and route, then
    logs one summary line per request. A caller-supplied X-Request-ID (gate
    terminals, the resident app) is kept so logs join up across services.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        bind_request_context(request_id=request_id, method=request.method, path=request.url.path)
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error("request_failed", error=str(e), duration_ms=_elapsed_ms(started), exc_info=True)
            raise

        duration_ms = _elapsed_ms(started)
        if response.status_code >= 500:
            logger.warning("request_completed", status_code=response.status_code, duration_ms=duration_ms)
        else:
            logger.info("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response
