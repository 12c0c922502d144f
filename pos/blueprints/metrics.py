"""
Prometheus metrics for the POS service.

Exposes /metrics with HTTP request metrics and the stock pipeline counters
defined in pos.utils.metrics. Restrict the endpoint to the monitoring network.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
import time

from pos.utils.metrics import registry, register_on

metrics_bp = Blueprint('metrics', __name__)

LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0)

http_requests_total = Counter(
    'pos_http_requests_total', 'HTTP requests by endpoint and status',
    ['method', 'endpoint', 'http_status'], registry=register_on,
)
http_request_duration_seconds = Histogram(
    'pos_http_request_duration_seconds', 'HTTP request latency in seconds',
    ['method', 'endpoint'], registry=register_on, buckets=LATENCY_BUCKETS,
)
http_requests_in_flight = Gauge(
    'pos_http_requests_in_flight', 'HTTP requests being processed',
    registry=register_on, multiprocess_mode='livesum',
)


def setup_metrics_instrumentation(app):
    """Register request hooks that time every request."""

    @app.before_request
    def start_request_timer():
        g._metrics_started_at = time.perf_counter()
        g._metrics_in_flight = True
        http_requests_in_flight.inc()

    @app.after_request
    def observe_request(response):
        started_at = g.pop('_metrics_started_at', None)
        if started_at is not None:
            endpoint = request.endpoint or 'unknown'
            http_request_duration_seconds.labels(request.method, endpoint).observe(time.perf_counter() - started_at)
            http_requests_total.labels(request.method, endpoint, response.status_code).inc()
        return response

    @app.teardown_request
    def release_in_flight(exc=None):
        # Also runs when the view raised
        if g.pop('_metrics_in_flight', False):
            http_requests_in_flight.dec()


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus scrape endpoint (unauthenticated: firewall it)."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
