"""Prometheus metrics for ContentFoundry ingestion and retrieval."""

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.core import CollectorRegistry
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

# Custom registry so embedding applications can expose or ignore it freely
contentfoundry_registry = CollectorRegistry()

# Ingestion metrics
ingested_documents = Counter(
    'contentfoundry_ingested_documents_total',
    'Total number of documents processed by the ingestion pipeline',
    ['status'],
    registry=contentfoundry_registry
)

ingest_duration = Histogram(
    'contentfoundry_ingest_duration_seconds',
    'Ingestion call duration in seconds',
    ['source'],
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0],
    registry=contentfoundry_registry
)

crawled_urls = Counter(
    'contentfoundry_crawled_urls_total',
    'Total number of URLs handled by the crawler',
    ['outcome'],
    registry=contentfoundry_registry
)

# Retrieval metrics
retrieval_requests = Counter(
    'contentfoundry_retrieval_requests_total',
    'Total number of retrieval requests',
    ['status'],
    registry=contentfoundry_registry
)

retrieval_duration = Histogram(
    'contentfoundry_retrieval_duration_seconds',
    'Retrieval request duration in seconds',
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    registry=contentfoundry_registry
)

retrieval_results_count = Histogram(
    'contentfoundry_retrieval_results_count',
    'Number of documents returned per retrieval',
    buckets=[0, 1, 3, 5, 10, 25, 50],
    registry=contentfoundry_registry
)

# Embedding metrics
embedding_cache_lookups = Counter(
    'contentfoundry_embedding_cache_lookups_total',
    'Embedding cache lookups',
    ['result'],
    registry=contentfoundry_registry
)

embedding_duration = Histogram(
    'contentfoundry_embedding_duration_seconds',
    'Embedding generation duration in seconds',
    ['model'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
    registry=contentfoundry_registry
)

error_count = Counter(
    'contentfoundry_errors_total',
    'Total number of errors',
    ['error_type', 'component'],
    registry=contentfoundry_registry
)


def record_ingest_metrics(source: str, duration: float, indexed: int, failed: int) -> None:
    """Record the outcome of one ingestion call."""
    ingested_documents.labels(status="indexed").inc(indexed)
    ingested_documents.labels(status="failed").inc(failed)
    ingest_duration.labels(source=source).observe(duration)

    if failed:
        error_count.labels(error_type="ingest_error", component="ingestion").inc(failed)


def record_crawl_metrics(crawled: int, skipped: int, failed: int) -> None:
    crawled_urls.labels(outcome="crawled").inc(crawled)
    crawled_urls.labels(outcome="skipped").inc(skipped)
    crawled_urls.labels(outcome="failed").inc(failed)


def record_retrieval_metrics(duration: float, result_count: int, error: Optional[str] = None) -> None:
    """Record retrieval-related metrics."""
    status = "error" if error else "success"

    retrieval_requests.labels(status=status).inc()
    retrieval_duration.observe(duration)

    if error:
        error_count.labels(error_type="retrieval_error", component="retrieval").inc()
    else:
        retrieval_results_count.observe(result_count)


def record_cache_lookup(hit: bool) -> None:
    embedding_cache_lookups.labels(result="hit" if hit else "miss").inc()


def record_embedding_metrics(model: str, duration: float) -> None:
    embedding_duration.labels(model=model).observe(duration)


def _sample_total(metric, suffix: str = '_total') -> float:
    return sum(
        sample.value
        for family in metric.collect()
        for sample in family.samples
        if sample.name.endswith(suffix)
    )


def get_metrics_summary() -> Dict[str, Any]:
    """Get a summary of current metrics."""
    return {
        "ingested_documents_total": _sample_total(ingested_documents),
        "crawled_urls_total": _sample_total(crawled_urls),
        "retrieval_requests_total": _sample_total(retrieval_requests),
        "embedding_cache_lookups_total": _sample_total(embedding_cache_lookups),
        "embeddings_generated_total": _sample_total(embedding_duration, '_count'),
        "errors_total": _sample_total(error_count),
    }


def export_metrics() -> bytes:
    """Render the registry in the Prometheus text exposition format."""
    return generate_latest(contentfoundry_registry)
