"""RSS and Atom feed ingestion."""

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from sources.models import CrawlResult, Document
from sources.parsers import FeedItem, ParseError, parse_feed, strip_html

from .crawler import CrawlConfig, WebCrawler, url_to_id
from .html_extract import MIN_CONTENT_LENGTH
from .http import FetchError, HttpFetcher
from .ingestion import IngestionPipeline

logger = logging.getLogger(__name__)


class RSSConfig(BaseModel):
    feed_url: str = Field(description="RSS or Atom feed location")
    type: str = Field(default="post", description="Type given to every item")
    use_full_content: bool = Field(default=True, description="Prefer the full content field over the summary")
    fetch_full_content: bool = Field(default=False, description="Crawl each item's link for its page text")
    content_selector: Optional[str] = Field(default=None, description="CSS selector used when crawling item links")
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Metadata added to every item")


class FeedIngestor:
    """Turns feed items into documents, optionally replacing their text with the linked page."""

    def __init__(self, fetcher: HttpFetcher, crawler: WebCrawler, pipeline: IngestionPipeline):
        self.fetcher = fetcher
        self.crawler = crawler
        self.pipeline = pipeline

    def _item_text(self, item: FeedItem, config: RSSConfig) -> str:
        if config.use_full_content:
            return item.content or item.description or ''
        return item.description or item.content or ''

    async def ingest_from_rss(self, config: Union[RSSConfig, dict],
                              agent_id: Optional[str] = None) -> CrawlResult:
        if isinstance(config, dict):
            config = RSSConfig(**config)

        result = CrawlResult()

        try:
            response = await self.fetcher.fetch(config.feed_url, timeout=config.timeout)
            feed = parse_feed(response.body)
        except FetchError as e:
            logger.warning(f"Failed to fetch feed {config.feed_url}: {e}")
            result.urls_failed = 1
            result.add_error(config.feed_url, e)
            return result
        except ParseError as e:
            logger.warning(f"Failed to parse feed {config.feed_url}: {e}")
            result.add_error(config.feed_url, e)
            return result

        logger.info(f"Feed {config.feed_url} ({feed.dialect}) has {len(feed.items)} items")

        page_config = CrawlConfig(
            content_selector=config.content_selector,
            default_type=config.type,
            timeout=config.timeout,
        )
        documents: List[Document] = []

        for item in feed.items:
            text = self._item_text(item, config)

            if config.fetch_full_content and item.link:
                try:
                    page = await self.crawler.crawl_page(item.link, page_config)
                    if page is not None:
                        text = page.content
                    result.urls_crawled += 1
                except Exception as e:
                    # Keep the feed's own text
                    logger.warning(f"Failed to fetch full content for {item.link}: {e}")
                    result.urls_failed += 1

            content = strip_html(text)
            if len(content) < MIN_CONTENT_LENGTH:
                logger.debug(f"Skipping feed item {item.link or item.guid}: not enough content")
                result.urls_skipped += 1
                continue

            metadata = {
                'type': config.type,
                'title': item.title,
                'url': item.link,
                'publishedAt': item.published,
                'author': item.author,
                'categories': item.categories or None,
                **config.metadata,
            }
            documents.append(Document(
                id=url_to_id(item.link or item.guid or f'rss-{len(documents)}'),
                content=content,
                metadata={k: v for k, v in metadata.items() if v is not None},
            ))

        if documents:
            ingested = await self.pipeline.ingest(documents, agent_id=agent_id, source="rss")
            result.indexed = ingested.indexed
            result.metadata = ingested.metadata
            for error in ingested.errors:
                result.add_error(error.id, error.error)

        return result
