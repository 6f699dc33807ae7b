import logging
import time
from starlette.middleware.base import BaseHTTPMiddleware

from humanizer.core.metrics import http_requests_total, normalize_path


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count requests by method, normalized path and status."""

    async def dispatch(self, request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        _record_request_metric(request, response, (time.perf_counter() - start) * 1000)
        return response


def _record_request_metric(request, response, duration_ms: float) -> None:
    try:
        http_requests_total.inc(labels={
            "method": request.method.upper(),
            "path": normalize_path(request.url.path),
            "status": str(getattr(response, "status_code", None) or 0),
        })
    except Exception:
        # A metrics bug must never fail the request
        logging.getLogger("humanizer").debug("metrics.record_failed", exc_info=True)
