"""
Prometheus metrics endpoint for monitoring infrastructure.

Exposes metrics collected from the @measure_operation decorators, the
HTTP middleware and the booking transition counters.
"""

from fastapi import APIRouter, Response

from ..monitoring.prometheus_metrics import prometheus_metrics

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
def get_prometheus_metrics() -> Response:
    """Prometheus exposition-format scrape endpoint."""
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
