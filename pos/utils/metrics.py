"""
Prometheus registry and stock pipeline counters.

Shared by the service layer and the /metrics blueprint.
"""
import os

from prometheus_client import Counter, CollectorRegistry, multiprocess, REGISTRY

# Gunicorn workers share samples through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    register_on = None  # samples go to the multiprocess files
else:
    registry = REGISTRY
    register_on = REGISTRY

pipeline_operations_total = Counter(
    'pos_pipeline_operations_total', 'Stock-affecting operations by outcome',
    ['operation', 'outcome'], registry=register_on,
)
pipeline_retries_total = Counter(
    'pos_pipeline_retries_total', 'Retries caused by concurrent stock modification',
    ['operation'], registry=register_on,
)


def record_operation(operation: str, outcome: str) -> None:
    """Count one pipeline run: committed, rejected, invalid, conflict, unavailable or partial."""
    pipeline_operations_total.labels(operation=operation, outcome=outcome).inc()


def record_retry(operation: str) -> None:
    pipeline_retries_total.labels(operation=operation).inc()
