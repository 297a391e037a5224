"""
Prometheus metrics: request instrumentation plus order and payment counters.

Served unauthenticated at /metrics; keep it off the public network.
"""
import time

from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, REGISTRY, CONTENT_TYPE_LATEST

metrics_bp = Blueprint('metrics', __name__)

registry = REGISTRY

# HTTP
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=registry,
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=registry,
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'HTTP requests being processed',
    registry=registry,
)

# Orders and payments
gateway_notifications_total = Counter(
    'gateway_notifications_total',
    'Mercado Pago notifications by outcome',
    ['outcome'],
    registry=registry,
)

orders_created_total = Counter(
    'orders_created_total',
    'Orders created',
    registry=registry,
)

checkouts_total = Counter(
    'checkouts_total',
    'Gateway checkout initiations by result (created, reused or error status)',
    ['result'],
    registry=registry,
)


def setup_metrics_instrumentation(app):
    """Time every request and count it by endpoint and status."""

    @app.before_request
    def start_request_timer():
        g._metrics_started = time.time()
        http_requests_in_flight.inc()

    @app.after_request
    def record_request(response):
        started = g.pop('_metrics_started', None)
        if started is None:
            return response

        endpoint = request.endpoint or 'unknown'
        http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(time.time() - started)
        http_requests_total.labels(
            method=request.method, endpoint=endpoint, http_status=response.status_code
        ).inc()
        http_requests_in_flight.dec()
        return response


@metrics_bp.route('/metrics')
def metrics():
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
