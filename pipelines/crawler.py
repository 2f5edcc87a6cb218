"""Web crawler pipeline for ContentFoundry.

Turns sitemaps and URL lists into page documents. URLs are fetched in
fixed-size batches, the pages of a batch concurrently, with a pause between
batches.
"""

import asyncio
import logging
import re
import time
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from pydantic import BaseModel, Field

from observability.prometheus_metrics import record_crawl_metrics
from sources.models import CrawlResult, Document
from sources.parsers import ParseError, parse_sitemap

from .html_extract import extract_page, infer_type
from .http import FetchError, HttpFetcher
from .ingestion import IngestionPipeline

logger = logging.getLogger(__name__)

# Child sitemaps followed per sitemap index
MAX_CHILD_SITEMAPS = 10
MAX_ID_LENGTH = 100

HTML_ACCEPT = 'text/html,application/xhtml+xml'


class CrawlConfig(BaseModel):
    """Options shared by every crawl."""
    concurrency: int = Field(default=3, ge=1, description="Pages fetched concurrently per batch")
    delay: float = Field(default=0.5, ge=0, description="Pause between batches in seconds")
    timeout: float = Field(default=30.0, gt=0, description="Per-page timeout in seconds")
    content_selector: Optional[str] = Field(default=None, description="CSS selector for the main content")
    title_selector: Optional[str] = Field(default=None, description="CSS selector for the title")
    remove_selectors: Optional[List[str]] = Field(default=None, description="Boilerplate selectors to strip")
    type_from_url: Dict[str, str] = Field(default_factory=dict, description="URL substring -> type, first match wins")
    default_type: str = Field(default="page", description="Type when no URL pattern matches")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Metadata added to every page")


class SitemapConfig(CrawlConfig):
    sitemap_url: Optional[str] = Field(default=None, description="Sitemap location")
    base_url: Optional[str] = Field(default=None, description="Site root, sitemap assumed at /sitemap.xml")
    include_patterns: List[str] = Field(default_factory=list, description="Keep URLs containing any of these")
    exclude_patterns: List[str] = Field(default_factory=list, description="Drop URLs containing any of these")
    max_pages: int = Field(default=100, ge=0, description="Maximum pages crawled")


class UrlListConfig(CrawlConfig):
    type: Optional[str] = Field(default=None, description="Static type for every page")


def url_to_id(url: str) -> str:
    """Stable document id for a page URL."""
    slug = re.sub(r'^https?://', '', url)
    slug = re.sub(r'[^a-zA-Z0-9]', '-', slug)
    slug = re.sub(r'-+', '-', slug).strip('-')
    return slug[:MAX_ID_LENGTH]


def filter_urls(urls: List[str], include: List[str], exclude: List[str]) -> List[str]:
    if include:
        urls = [url for url in urls if any(pattern in url for pattern in include)]
    if exclude:
        urls = [url for url in urls if not any(pattern in url for pattern in exclude)]
    return urls


class WebCrawler:
    """Crawls HTML pages and hands the extracted documents to the ingestion pipeline."""

    def __init__(self, fetcher: HttpFetcher, pipeline: IngestionPipeline):
        self.fetcher = fetcher
        self.pipeline = pipeline

    async def crawl_page(self, url: str, config: CrawlConfig) -> Optional[Document]:
        """Fetch and extract one page.

        Returns:
            The page document, or None when the page has too little content

        Raises:
            FetchError: Transport failure, non-2xx status or non-HTML response
        """
        response = await self.fetcher.fetch(url, headers={'Accept': HTML_ACCEPT}, timeout=config.timeout)

        if not response.is_html():
            raise FetchError(f"Non-HTML content type: {response.content_type or 'unknown'}", url)

        page = extract_page(
            response.text,
            content_selector=config.content_selector,
            title_selector=config.title_selector,
            remove_selectors=config.remove_selectors,
        )
        if page is None:
            return None

        return Document(
            id=url_to_id(url),
            content=page.content,
            metadata={
                'type': infer_type(url, config.type_from_url, config.default_type),
                'title': page.title,
                'url': url,
                **config.metadata,
            },
        )

    async def _crawl_one(self, url: str, config: CrawlConfig) -> Tuple[str, Optional[Document], Optional[Exception]]:
        try:
            return url, await self.crawl_page(url, config), None
        except Exception as e:
            # Any page-level failure, including a bad selector, fails only this URL
            return url, None, e

    async def crawl(self, urls: List[str], config: Optional[CrawlConfig] = None,
                    agent_id: Optional[str] = None) -> CrawlResult:
        """Crawl ``urls`` and ingest every page with enough content."""
        config = config or CrawlConfig()
        result = CrawlResult()
        documents: List[Document] = []
        start_time = time.time()

        for start in range(0, len(urls), config.concurrency):
            batch = urls[start:start + config.concurrency]
            outcomes = await asyncio.gather(*(self._crawl_one(url, config) for url in batch))

            for url, document, error in outcomes:
                if error is not None:
                    logger.warning(f"Failed to crawl {url}: {error}")
                    result.urls_failed += 1
                    result.add_error(url, error)
                elif document is None:
                    logger.debug(f"Skipping {url}: not enough content")
                    result.urls_skipped += 1
                else:
                    documents.append(document)
                    result.urls_crawled += 1

            if start + config.concurrency < len(urls):
                await asyncio.sleep(config.delay)

        if documents:
            ingested = await self.pipeline.ingest(documents, agent_id=agent_id, source="crawl")
            result.indexed = ingested.indexed
            result.metadata = ingested.metadata
            for error in ingested.errors:
                result.add_error(error.id, error.error)

        record_crawl_metrics(result.urls_crawled, result.urls_skipped, result.urls_failed)
        logger.info(f"Crawled {len(urls)} URLs in {time.time() - start_time:.2f}s: "
                    f"{result.urls_crawled} crawled, {result.urls_skipped} skipped, "
                    f"{result.urls_failed} failed, {result.indexed} indexed")
        return result

    async def collect_sitemap_urls(self, sitemap_url: str, config: SitemapConfig, result: CrawlResult,
                                   visited: Optional[Set[str]] = None) -> List[str]:
        """Page URLs listed by a sitemap, following sitemap indexes.

        Unreachable or malformed sitemaps are recorded in ``result`` against
        their own URL.
        """
        visited = visited if visited is not None else set()
        if sitemap_url in visited:
            return []
        visited.add(sitemap_url)

        try:
            response = await self.fetcher.fetch(sitemap_url, timeout=config.timeout)
            sitemap = parse_sitemap(response.text)
        except (FetchError, ParseError) as e:
            logger.warning(f"Failed to read sitemap {sitemap_url}: {e}")
            result.add_error(sitemap_url, e)
            return []

        if not sitemap.is_index:
            return sitemap.locations

        children = sitemap.locations[:MAX_CHILD_SITEMAPS]
        if len(sitemap.locations) > MAX_CHILD_SITEMAPS:
            logger.info(f"Sitemap index {sitemap_url} lists {len(sitemap.locations)} sitemaps, "
                        f"following the first {MAX_CHILD_SITEMAPS}")

        urls = []
        for child in children:
            urls.extend(await self.collect_sitemap_urls(child, config, result, visited))
        return urls

    async def ingest_from_sitemap(self, config: Union[SitemapConfig, dict],
                                  agent_id: Optional[str] = None) -> CrawlResult:
        """Crawl every page of a site's sitemap, after filtering and truncation."""
        if isinstance(config, dict):
            config = SitemapConfig(**config)

        sitemap_url = config.sitemap_url
        if not sitemap_url and config.base_url:
            sitemap_url = f"{config.base_url.rstrip('/')}/sitemap.xml"

        if not sitemap_url:
            result = CrawlResult()
            result.add_error('config', 'Either sitemap_url or base_url is required')
            return result

        discovery = CrawlResult()
        urls = await self.collect_sitemap_urls(sitemap_url, config, discovery)
        logger.info(f"Sitemap {sitemap_url} lists {len(urls)} URLs")

        filtered = filter_urls(urls, config.include_patterns, config.exclude_patterns)
        to_crawl = filtered[:config.max_pages]

        result = await self.crawl(to_crawl, config, agent_id=agent_id)
        result.urls_skipped += len(urls) - len(to_crawl)
        for error in discovery.errors:
            result.add_error(error.id, error.error)
        return result

    async def ingest_from_urls(self, urls: List[str], config: Optional[Union[UrlListConfig, dict]] = None,
                               agent_id: Optional[str] = None) -> CrawlResult:
        """Crawl an explicit list of pages."""
        if config is None:
            config = UrlListConfig()
        elif isinstance(config, dict):
            config = UrlListConfig(**config)

        if config.type:
            config = config.model_copy(update={'default_type': config.type})

        return await self.crawl(list(urls), config, agent_id=agent_id)
