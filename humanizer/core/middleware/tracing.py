from starlette.middleware.base import BaseHTTPMiddleware

from humanizer.core.tracing import start_span
from humanizer.core.logging import get_request_id


class TracingMiddleware(BaseHTTPMiddleware):
    """Wrap each request in an http.request span when tracing is on."""

    async def dispatch(self, request, call_next):
        with start_span(
            "http.request",
            {
                "http.method": request.method,
                "http.route": request.url.path,
                "request_id": getattr(request.state, "request_id", None) or get_request_id(),
            },
        ):
            return await call_next(request)
