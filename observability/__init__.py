"""Observability package for ContentFoundry."""

from .logging import setup_logging, get_logger, get_structured_logger, StructuredLogger
from .prometheus_metrics import (
    record_ingest_metrics,
    record_crawl_metrics,
    record_retrieval_metrics,
    record_cache_lookup,
    record_embedding_metrics,
    get_metrics_summary,
    export_metrics,
    contentfoundry_registry
)

__all__ = [
    'setup_logging',
    'get_logger',
    'get_structured_logger',
    'StructuredLogger',
    'record_ingest_metrics',
    'record_crawl_metrics',
    'record_retrieval_metrics',
    'record_cache_lookup',
    'record_embedding_metrics',
    'get_metrics_summary',
    'export_metrics',
    'contentfoundry_registry'
]
