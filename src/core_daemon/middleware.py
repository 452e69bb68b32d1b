"""
HTTP middleware for the rvc2mqtt API.

Only one middleware exists: it feeds the HTTP request counter and latency
histogram in core_daemon.metrics.
"""

import time

from fastapi import Request

from core_daemon.metrics import HTTP_LATENCY, HTTP_REQUESTS


async def prometheus_http_middleware(request: Request, call_next):
    """
    Count and time every request.

    Requests are labelled with the matched route template (for example
    /api/spec/{target}) rather than the raw path, so message names and DGNs in
    URLs do not create a label per value. Unmatched requests fall back to
    the raw path.
    """
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started

    route = request.scope.get("route")
    endpoint = getattr(route, "path", None) or request.url.path

    HTTP_REQUESTS.labels(
        method=request.method, endpoint=endpoint, status_code=response.status_code
    ).inc()
    HTTP_LATENCY.labels(method=request.method, endpoint=endpoint).observe(elapsed)
    return response
