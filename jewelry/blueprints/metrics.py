"""
Prometheus metrics.

HTTP latency and status counts per endpoint, plus counters for the
quotation-to-order conversion and order status changes. Under Gunicorn set
PROMETHEUS_MULTIPROC_DIR so every worker writes to the shared directory.
The /metrics endpoint is unauthenticated; keep it on the internal network.
"""
import os
import time

from flask import Blueprint, Response, request, g
from prometheus_client import (
    CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, Counter, Histogram, generate_latest, multiprocess
)

metrics_bp = Blueprint('metrics', __name__)

MULTIPROCESS_MODE = 'PROMETHEUS_MULTIPROC_DIR' in os.environ

# Multiprocess values live in files; metrics are declared without a registry
_metric_registry = None if MULTIPROCESS_MODE else REGISTRY

request_latency = Histogram(
    'jewelry_http_request_duration_seconds',
    'API request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

request_count = Counter(
    'jewelry_http_requests_total',
    'API requests by endpoint and status code',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

quotation_conversions_total = Counter(
    'quotation_conversions_total',
    'Quotation group approvals by outcome (approved, rejected, conflict, failed)',
    ['outcome'],
    registry=_metric_registry
)

order_transitions_total = Counter(
    'order_transitions_total',
    'Order status changes by target status',
    ['status'],
    registry=_metric_registry
)


def count_conversion(outcome):
    quotation_conversions_total.labels(outcome=outcome).inc()


def count_order_transition(status):
    order_transitions_total.labels(status=status).inc()


def setup_metrics_instrumentation(app):
    """Time every request and count it by endpoint and status."""

    @app.before_request
    def start_timer():
        g._request_started = time.perf_counter()

    @app.after_request
    def record_request(response):
        started = g.pop('_request_started', None)
        if started is None:
            return response
        endpoint = request.endpoint or 'unknown'
        try:
            request_latency.labels(method=request.method, endpoint=endpoint).observe(
                time.perf_counter() - started
            )
            request_count.labels(
                method=request.method, endpoint=endpoint, http_status=response.status_code
            ).inc()
        except Exception as e:
            app.logger.warning(f"Failed to record metrics for {endpoint}: {e}")
        return response


def _exposition_registry():
    if not MULTIPROCESS_MODE:
        return REGISTRY
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    return registry


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus text exposition."""
    return Response(generate_latest(_exposition_registry()), mimetype=CONTENT_TYPE_LATEST)
