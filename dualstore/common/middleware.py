"""
Request tracking for the dataset API.

Each call gets an X-Request-ID, is logged under its route template with
the dataset it addresses, and is counted in the HTTP metrics.
"""

import logging
import time
from typing import Callable, Dict, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Match

from dualstore.common import metrics
from dualstore.common.logging_config import clear_request_id, dataset_context, set_request_id

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
UNMATCHED_ROUTE = "unmatched"

# Health checks and metric scrapes are logged at DEBUG
QUIET_PATHS = {"/health", "/live", "/ready", "/metrics"}


def resolve_route(request: Request) -> Tuple[str, Dict[str, str]]:
    """
    Find the route template and path parameters a request will hit.

    Returns:
        (template, path_params); ("unmatched", {}) when no route matches
    """
    app = request.scope.get("app")
    for route in getattr(app, "routes", []):
        match, child_scope = route.matches(request.scope)
        if match == Match.FULL:
            return route.path, child_scope.get("path_params", {})
    return UNMATCHED_ROUTE, {}


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Correlates, logs and counts every API call."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        route, path_params = resolve_route(request)
        dataset_id: Optional[str] = path_params.get("dataset_id")
        level = logging.DEBUG if request.url.path in QUIET_PATHS else logging.INFO

        fields = {"method": request.method, "route": route, "request_id": request_id}
        if dataset_id:
            fields["dataset_id"] = dataset_id

        start = time.perf_counter()
        try:
            with dataset_context(dataset_id):
                response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start
            metrics.record_http_request(request.method, route, 500, duration)
            logger.error(
                f"{request.method} {route} failed: {e}",
                extra={"extra_fields": {**fields, "error_type": type(e).__name__}},
            )
            raise
        finally:
            clear_request_id()

        duration = time.perf_counter() - start
        metrics.record_http_request(request.method, route, response.status_code, duration)
        response.headers[REQUEST_ID_HEADER] = request_id

        logger.log(
            level,
            f"{request.method} {route} -> {response.status_code}",
            extra={"extra_fields": {
                **fields,
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
            }},
        )
        return response
