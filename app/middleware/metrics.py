"""Prometheus instrumentation for every HTTP request.

The endpoint label is the matched route template (``/api/users/{user_id}``)
rather than the raw path, so per-id URLs do not explode the label set.
Requests that match no route are counted under ``<unmatched>``.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.metrics import ACTIVE_REQUESTS, REQUEST_COUNT, REQUEST_DURATION

UNMATCHED = "<unmatched>"


def route_template(request: Request) -> str:
    """Return the path template of the route that handled *request*.

    FastAPI records the matched route in the scope while routing, so this
    is only meaningful once the downstream app has run.
    """
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if isinstance(path, str) else UNMATCHED


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collect request count, latency and in-flight gauge."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Scrapes would otherwise count themselves.
        if request.url.path == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.inc()
        start = time.monotonic()
        status_code = "500"

        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        finally:
            ACTIVE_REQUESTS.dec()
            endpoint = route_template(request)
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code,
            ).inc()
            REQUEST_DURATION.labels(
                method=request.method,
                endpoint=endpoint,
            ).observe(time.monotonic() - start)

        return response
