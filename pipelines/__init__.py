"""Pipelines package for ContentFoundry.

Provides HTTP fetching, HTML extraction, crawling, feed and URL ingestion,
and the ingestion pipeline that writes to the vector store.
"""

from .http import HttpFetcher, FetchResponse, FetchError
from .html_extract import ExtractedPage, extract_page, infer_type
from .ingestion import IngestionPipeline, DocumentNotFoundError
from .crawler import WebCrawler, CrawlConfig, SitemapConfig, UrlListConfig, url_to_id
from .feed_ingest import FeedIngestor, RSSConfig
from .url_ingest import UrlIngestor

__all__ = [
    # HTTP
    'HttpFetcher',
    'FetchResponse',
    'FetchError',

    # Extraction
    'ExtractedPage',
    'extract_page',
    'infer_type',

    # Ingestion
    'IngestionPipeline',
    'DocumentNotFoundError',

    # Crawler
    'WebCrawler',
    'CrawlConfig',
    'SitemapConfig',
    'UrlListConfig',
    'url_to_id',

    # Feeds and URL sources
    'FeedIngestor',
    'RSSConfig',
    'UrlIngestor'
]
