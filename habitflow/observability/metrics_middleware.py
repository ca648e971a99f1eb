"""
FastAPI middleware for automatic Prometheus metrics collection.

Tracks request counts by endpoint, method and status code, request latency,
and requests in progress.
"""

import logging
import time
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from habitflow.observability.metrics import (
    http_requests_total,
    http_request_duration_seconds,
    http_requests_in_progress,
)

logger = logging.getLogger(__name__)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect Prometheus metrics for HTTP requests"""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        method = request.method
        path = normalize_path(request.url.path)

        http_requests_in_progress.labels(method=method, endpoint=path).inc()
        start_time = time.time()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code

        except Exception as e:
            logger.error(f"Request failed: {e}", exc_info=True)
            raise

        finally:
            http_requests_in_progress.labels(method=method, endpoint=path).dec()
            duration = time.time() - start_time

            http_requests_total.labels(
                method=method, endpoint=path, status=status_code
            ).inc()

            http_request_duration_seconds.labels(
                method=method, endpoint=path
            ).observe(duration)

        return response


def normalize_path(path: str) -> str:
    """
    Normalize request path to reduce cardinality.

    - /api/habits/<uuid> -> /api/habits/{uuid}
    - /api/gamification/profile/123 -> /api/gamification/profile/{id}
    """
    if path in ("/metrics", "/api/health", "/"):
        return path

    normalized_parts = []
    for part in path.strip("/").split("/"):
        if part.isdigit():
            normalized_parts.append("{id}")
        elif _is_uuid(part):
            normalized_parts.append("{uuid}")
        else:
            normalized_parts.append(part)

    return "/" + "/".join(normalized_parts)


def _is_uuid(value: str) -> bool:
    # 8-4-4-4-12 hex digits
    parts = value.split("-")
    if len(parts) != 5:
        return False

    try:
        for part in parts:
            int(part, 16)
        return True
    except ValueError:
        return False


def setup_metrics_middleware(app) -> None:
    """Add Prometheus metrics middleware to FastAPI application"""
    app.add_middleware(PrometheusMiddleware)
    logger.info("Prometheus metrics middleware added to FastAPI")
