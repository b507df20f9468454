"""
Request tracing middleware
"""
import time
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from sorykpass.core.logging_config import set_trace_id, generate_trace_id

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-ID"


class TracingMiddleware(BaseHTTPMiddleware):
    """Tags every request (and every log line it produces) with a trace ID"""

    async def dispatch(self, request: Request, call_next):
        trace_id = request.headers.get(TRACE_HEADER) or generate_trace_id()
        set_trace_id(trace_id)
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={'duration_ms': round((time.time() - start_time) * 1000, 2)},
                exc_info=True,
            )
            raise

        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={'duration_ms': round((time.time() - start_time) * 1000, 2)},
        )
        response.headers[TRACE_HEADER] = trace_id
        return response
