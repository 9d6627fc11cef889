"""
Prometheus metrics registration and helpers.

Exports:
- observe_request(...): record HTTP request metrics
- observe_ollama_call(...): record assistant generation outcomes
- observe_audit_entry(...): count persisted audit rows
- register_request_metrics(app): before/after request hooks timing every request
- metrics_latest(): return text exposition from correct registry (handles multiprocess)
- CONTENT_TYPE_LATEST: correct Prometheus content type
"""

import os
import time
from flask import request, g
from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess


REQUEST_COUNTER = Counter(
    'licea_http_requests_total', 'Total HTTP requests', ['endpoint', 'method', 'status']
)

REQUEST_LATENCY = Histogram(
    'licea_http_request_latency_seconds', 'HTTP request latency seconds', ['endpoint']
)

OLLAMA_CALLS = Counter(
    'licea_ollama_calls_total', 'Assistant generation calls', ['outcome']
)

OLLAMA_LATENCY = Histogram(
    'licea_ollama_latency_seconds', 'Assistant generation latency seconds'
)

AUDIT_ENTRIES = Counter(
    'licea_audit_entries_total', 'Persisted audit log entries', ['action']
)


def observe_request(endpoint: str, method: str, status: int, latency_seconds: float) -> None:
    REQUEST_COUNTER.labels(endpoint=endpoint, method=method, status=str(status)).inc()
    REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency_seconds)


def observe_ollama_call(outcome: str, latency_seconds: float = None) -> None:
    OLLAMA_CALLS.labels(outcome=outcome).inc()
    if latency_seconds is not None:
        OLLAMA_LATENCY.observe(latency_seconds)


def observe_audit_entry(action: str) -> None:
    AUDIT_ENTRIES.labels(action=action).inc()


def register_request_metrics(app):
    @app.before_request
    def _start_timer():
        g.request_started_at = time.perf_counter()

    @app.after_request
    def _record_request(response):
        started = g.get('request_started_at')
        if started is not None:
            # url_rule keeps label cardinality bounded (ids stay templated)
            endpoint = request.url_rule.rule if request.url_rule else 'unmatched'
            observe_request(endpoint, request.method, response.status_code, time.perf_counter() - started)
        return response


def metrics_latest() -> bytes:
    """Return the Prometheus text exposition, multiprocess-aware if configured."""
    prom_mp_dir = os.getenv('PROMETHEUS_MULTIPROC_DIR')
    if prom_mp_dir:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        return generate_latest(registry)
    return generate_latest()
