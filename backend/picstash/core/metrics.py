"""
Prometheus metrics for Picstash

Exposed at /metrics in Prometheus text format. Covers:
- HTTP request counts and latency
- Job processing (count by type/outcome, duration, leases)
- Vector search latency and index size
- Embedding generation outcomes
"""
import logging
import re
import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

logger = logging.getLogger(__name__)

# Own registry so tests and reloads never collide with the global default
REGISTRY = CollectorRegistry(auto_describe=True)

_start_time = time.time()

app_info = Info(
    'picstash_app',
    'Application information',
    registry=REGISTRY
)

# HTTP
http_requests_total = Counter(
    'picstash_http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status_code'],
    registry=REGISTRY
)

http_request_duration_seconds = Histogram(
    'picstash_http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'path'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY
)

# Jobs
jobs_processed_total = Counter(
    'picstash_jobs_processed_total',
    'Jobs finished by the worker',
    ['job_type', 'status'],
    registry=REGISTRY
)

job_duration_seconds = Histogram(
    'picstash_job_duration_seconds',
    'Job handler run time in seconds',
    ['job_type'],
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
    registry=REGISTRY
)

jobs_leased_total = Counter(
    'picstash_jobs_leased_total',
    'Jobs leased from the queue',
    ['job_type'],
    registry=REGISTRY
)

# Vector search
vector_search_duration_seconds = Histogram(
    'picstash_vector_search_duration_seconds',
    'Nearest-neighbour query latency in seconds',
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0],
    registry=REGISTRY
)

vector_store_size = Gauge(
    'picstash_vector_store_size',
    'Embeddings held in the vector store',
    registry=REGISTRY
)

# Embeddings
embeddings_generated_total = Counter(
    'picstash_embeddings_generated_total',
    'Embedding generation attempts',
    ['kind', 'status'],
    registry=REGISTRY
)

uptime_seconds = Gauge(
    'picstash_uptime_seconds',
    'Seconds since the process started',
    registry=REGISTRY
)


def init_metrics(version: str = "1.0.0"):
    """
    Initialize metrics with application info.

    Args:
        version: Application version string
    """
    global _start_time
    _start_time = time.time()
    app_info.info({'version': version, 'name': 'Picstash'})
    logger.info("Prometheus metrics initialized", extra={"version": version})


def record_request_metrics(method: str, path: str, status_code: int, response_time_seconds: float):
    """Record one HTTP request."""
    normalized_path = _normalize_path(path)
    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status_code=str(status_code)
    ).inc()
    http_request_duration_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(response_time_seconds)


def record_job_leased(job_type: str):
    jobs_leased_total.labels(job_type=job_type).inc()


def record_job_processed(job_type: str, status: str, duration_seconds: float):
    """
    Record a finished job.

    Args:
        job_type: Job type string
        status: "completed", "retried" or "failed"
        duration_seconds: Handler run time
    """
    jobs_processed_total.labels(job_type=job_type, status=status).inc()
    job_duration_seconds.labels(job_type=job_type).observe(duration_seconds)


def record_vector_search(duration_seconds: float):
    vector_search_duration_seconds.observe(duration_seconds)


def set_vector_store_size(count: int):
    vector_store_size.set(count)


def record_embedding_generated(kind: str, success: bool):
    """kind is "image" or "label"."""
    embeddings_generated_total.labels(
        kind=kind,
        status="success" if success else "failure"
    ).inc()


def get_metrics() -> bytes:
    """Prometheus text format output."""
    uptime_seconds.set(time.time() - _start_time)
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def _normalize_path(path: str) -> str:
    """Replace UUIDs and numeric ids with a placeholder to keep label cardinality low."""
    path = re.sub(
        r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
        '{id}',
        path,
        flags=re.IGNORECASE
    )
    return re.sub(r'/\d+(?=/|$)', '/{id}', path)
