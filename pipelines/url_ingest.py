"""URL and CMS ingestion: fetch structured records, map them, index them."""

import logging
from typing import Any, Dict, List, Optional, Union

from sources.adapter import URLSource, build_auth_headers, source_to_documents
from sources.models import URLIngestResult, utcnow
from sources.parsers import ParseError
from sources.presets import (
    DrupalConfig,
    PaginatedSource,
    SanityConfig,
    StrapiConfig,
    WordPressConfig,
    drupal_sources,
    sanity_sources,
    strapi_sources,
    wordpress_sources,
)

from .http import FetchError, HttpFetcher
from .ingestion import IngestionPipeline

logger = logging.getLogger(__name__)


class UrlIngestor:
    """Ingests JSON, CSV, XML and API endpoints, plus the CMS presets built on them."""

    def __init__(self, fetcher: HttpFetcher, pipeline: IngestionPipeline):
        self.fetcher = fetcher
        self.pipeline = pipeline

    async def ingest_from_url(self, source: Union[URLSource, Dict[str, Any]],
                              agent_id: Optional[str] = None) -> URLIngestResult:
        """Fetch ``source``, map its records to documents and index them.

        Fetch and parse failures produce a failed result with a single
        ``fetch`` error instead of raising.
        """
        if isinstance(source, dict):
            source = URLSource(**source)

        fetched_at = utcnow()
        headers = {**source.headers, **build_auth_headers(source.auth)}

        try:
            response = await self.fetcher.fetch(source.url, headers=headers, timeout=source.timeout)
            documents = source_to_documents(source, response.text)
        except (FetchError, ParseError, ValueError) as e:
            logger.warning(f"URL ingestion failed for {source.url}: {e}")
            result = URLIngestResult(source_url=source.url, fetched_at=fetched_at)
            result.add_error('fetch', e)
            return result

        for doc in documents:
            doc.metadata = {
                **doc.metadata,
                **source.metadata,
                'sourceUrl': source.url,
                'fetchedAt': fetched_at.isoformat(),
            }

        ingested = await self.pipeline.ingest(documents, agent_id=agent_id, source=source.type)
        logger.info(f"Fetched {len(documents)} documents from {source.url}")

        return URLIngestResult(
            success=ingested.success,
            indexed=ingested.indexed,
            failed=ingested.failed,
            errors=ingested.errors,
            metadata=ingested.metadata,
            source_url=source.url,
            fetched_at=fetched_at,
            documents_fetched=len(documents),
        )

    async def ingest_paginated(self, paginated: PaginatedSource,
                               agent_id: Optional[str] = None) -> List[URLIngestResult]:
        """Walk pages while each one comes back full, up to ``max_pages``."""
        results = []
        for page in range(1, paginated.max_pages + 1):
            result = await self.ingest_from_url(paginated.build(page), agent_id=agent_id)
            results.append(result)
            if result.documents_fetched != paginated.page_size:
                break
        logger.debug(f"Ingested {len(results)} pages of {paginated.name}")
        return results

    async def ingest_from_drupal(self, config: Union[DrupalConfig, Dict[str, Any]],
                                 agent_id: Optional[str] = None) -> List[URLIngestResult]:
        if isinstance(config, dict):
            config = DrupalConfig(**config)
        return [await self.ingest_from_url(source, agent_id=agent_id) for source in drupal_sources(config)]

    async def ingest_from_wordpress(self, config: Union[WordPressConfig, Dict[str, Any]],
                                    agent_id: Optional[str] = None) -> List[URLIngestResult]:
        if isinstance(config, dict):
            config = WordPressConfig(**config)
        results = []
        for paginated in wordpress_sources(config):
            results.extend(await self.ingest_paginated(paginated, agent_id=agent_id))
        return results

    async def ingest_from_sanity(self, config: Union[SanityConfig, Dict[str, Any]],
                                 agent_id: Optional[str] = None) -> List[URLIngestResult]:
        if isinstance(config, dict):
            config = SanityConfig(**config)
        return [await self.ingest_from_url(source, agent_id=agent_id) for source in sanity_sources(config)]

    async def ingest_from_strapi(self, config: Union[StrapiConfig, Dict[str, Any]],
                                 agent_id: Optional[str] = None) -> List[URLIngestResult]:
        if isinstance(config, dict):
            config = StrapiConfig(**config)
        results = []
        for paginated in strapi_sources(config):
            results.extend(await self.ingest_paginated(paginated, agent_id=agent_id))
        return results
