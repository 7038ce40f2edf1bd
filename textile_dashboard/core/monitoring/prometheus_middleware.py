from prometheus_client import Counter, Histogram, Gauge
from fastapi import Request
from fastapi.routing import APIRoute
import time
import logging

logger = logging.getLogger(__name__)

# Paths that are not labelled or counted
UNTRACKED_PATHS = {"/metrics"}

# ============================================================================
# HTTP Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'HTTP requests by route template and status',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

http_requests_in_progress = Gauge(
    'http_requests_in_progress',
    'HTTP requests currently being served',
    ['method', 'endpoint']
)

# ============================================================================
# Production Dashboard Metrics
# ============================================================================

dashboard_operations_total = Counter(
    'dashboard_operations_total',
    'Production dashboard access-layer operations',
    ['operation', 'status']  # success, error
)

dashboard_alerts_total = Counter(
    'dashboard_alerts_total',
    'Production dashboard alert lifecycle events',
    ['event']  # created, acknowledged, resolved
)


def _route_template(request: Request) -> str:
    """Matched route path (e.g. /api/production-dashboard/machines/{machine_id})."""
    path = request.url.path
    for route in request.app.routes:
        if isinstance(route, APIRoute) and route.path_regex.match(path):
            return route.path
    return path


# ============================================================================
# Middleware Class
# ============================================================================

class PrometheusMiddleware:
    """
    HTTP middleware recording request count, latency and in-flight requests.
    Labels use the route template so machine and alert ids do not explode
    label cardinality.
    """

    async def __call__(self, request: Request, call_next):
        if request.url.path in UNTRACKED_PATHS:
            return await call_next(request)

        method = request.method
        endpoint = _route_template(request)
        in_progress = http_requests_in_progress.labels(method=method, endpoint=endpoint)

        in_progress.inc()
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception as e:
            logger.error(f"{method} {endpoint} failed: {e}")
            raise
        finally:
            http_requests_total.labels(
                method=method, endpoint=endpoint, status_code=status_code
            ).inc()
            http_request_duration_seconds.labels(
                method=method, endpoint=endpoint
            ).observe(time.perf_counter() - started)
            in_progress.dec()


# ============================================================================
# Helper Functions for Application Metrics
# ============================================================================

def track_dashboard_operation(operation: str, success: bool = True):
    """Count one access-layer operation"""
    status = "success" if success else "error"
    dashboard_operations_total.labels(operation=operation, status=status).inc()


def track_alert_event(event: str):
    dashboard_alerts_total.labels(event=event).inc()
