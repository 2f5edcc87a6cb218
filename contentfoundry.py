"""ContentFoundry engine: content ingestion and retrieval for RAG-backed agents.

Usage::

    config = RAGConfig(tenant_id="acme")
    async with ContentFoundry(config) as engine:
        await engine.ingest_from_sitemap({"base_url": "https://acme.example"})
        context = await engine.retrieve("What do you build?", agent_id="sales")
        print(context.content)
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from config.settings import RAGConfig
from indexer.embedding_cache import EmbeddingCache
from indexer.embeddings import CachedEmbedder, EmbeddingService, SentenceTransformerEmbeddings
from indexer.retrieval import RetrievalEngine
from indexer.store import VectorStore, create_vector_store
from observability.logging import get_structured_logger
from pipelines.crawler import SitemapConfig, UrlListConfig, WebCrawler
from pipelines.feed_ingest import FeedIngestor, RSSConfig
from pipelines.http import HttpFetcher
from pipelines.ingestion import DocumentInput, IngestionPipeline
from pipelines.url_ingest import UrlIngestor
from sources.adapter import URLSource
from sources.loader import SourceLoader
from sources.models import (
    BulkOperation,
    BulkResult,
    CrawlResult,
    IngestResult,
    RetrievedContext,
    StoredDocument,
    URLIngestResult,
)
from sources.presets import DrupalConfig, SanityConfig, StrapiConfig, WordPressConfig

logger = logging.getLogger(__name__)

SourceResult = Union[IngestResult, List[URLIngestResult]]


class ContentFoundry:
    """One engine instance per tenant.

    Owns the embedding cache, the vector store and the HTTP session; every
    ingestion and retrieval call is scoped to ``config.tenant_id``.

    Args:
        config: Engine configuration
        embedding_service: Embedding backend, sentence-transformers by default
        store: Vector store, built from the configuration by default
        fetcher: HTTP fetcher, built from the configuration by default
    """

    def __init__(self, config: RAGConfig,
                 embedding_service: Optional[EmbeddingService] = None,
                 store: Optional[VectorStore] = None,
                 fetcher: Optional[HttpFetcher] = None):
        self.config = config

        cache_config = config.cache.embeddings
        self.cache = EmbeddingCache(ttl=cache_config.ttl, max_size=cache_config.max_size) if cache_config.enabled else None

        self.embedder = CachedEmbedder(
            embedding_service or SentenceTransformerEmbeddings(config.embedding_model),
            self.cache,
            model_name=config.embedding_model,
        )
        self.store = store or create_vector_store(config.store_type.value, config.sqlite_path)
        self.fetcher = fetcher or HttpFetcher(user_agent=config.user_agent, timeout=config.request_timeout)

        self.pipeline = IngestionPipeline(
            self.store, self.embedder, config.tenant_id,
            collection=config.collection, batch_size=config.batch_size,
        )
        self.urls = UrlIngestor(self.fetcher, self.pipeline)
        self.crawler = WebCrawler(self.fetcher, self.pipeline)
        self.feeds = FeedIngestor(self.fetcher, self.crawler, self.pipeline)
        self.retrieval = RetrievalEngine(self.store, self.embedder, config)
        self.sources = SourceLoader(Path(config.sources_dir))

        self.log = get_structured_logger(__name__, tenant_id=config.tenant_id, component="engine")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Release the HTTP session and the store connection."""
        await self.fetcher.close()
        await self.store.close()
        self.log.debug("Engine closed")

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest(self, documents: Sequence[DocumentInput], agent_id: Optional[str] = None,
                     batch_size: Optional[int] = None) -> IngestResult:
        return await self.pipeline.ingest(documents, agent_id=agent_id, batch_size=batch_size)

    async def update(self, doc_id: str, changes: DocumentInput, agent_id: Optional[str] = None) -> StoredDocument:
        return await self.pipeline.update(doc_id, changes, agent_id=agent_id)

    async def delete(self, ids: Union[str, Sequence[str]], agent_id: Optional[str] = None) -> int:
        return await self.pipeline.delete(ids, agent_id=agent_id)

    async def bulk(self, operations: Sequence[Union[BulkOperation, Dict[str, Any]]],
                   agent_id: Optional[str] = None) -> BulkResult:
        return await self.pipeline.bulk(operations, agent_id=agent_id)

    async def ingest_from_url(self, source: Union[URLSource, Dict[str, Any]],
                              agent_id: Optional[str] = None) -> URLIngestResult:
        return await self.urls.ingest_from_url(source, agent_id=agent_id)

    async def ingest_from_drupal(self, config: Union[DrupalConfig, Dict[str, Any]],
                                 agent_id: Optional[str] = None) -> List[URLIngestResult]:
        return await self.urls.ingest_from_drupal(config, agent_id=agent_id)

    async def ingest_from_wordpress(self, config: Union[WordPressConfig, Dict[str, Any]],
                                    agent_id: Optional[str] = None) -> List[URLIngestResult]:
        return await self.urls.ingest_from_wordpress(config, agent_id=agent_id)

    async def ingest_from_sanity(self, config: Union[SanityConfig, Dict[str, Any]],
                                 agent_id: Optional[str] = None) -> List[URLIngestResult]:
        return await self.urls.ingest_from_sanity(config, agent_id=agent_id)

    async def ingest_from_strapi(self, config: Union[StrapiConfig, Dict[str, Any]],
                                 agent_id: Optional[str] = None) -> List[URLIngestResult]:
        return await self.urls.ingest_from_strapi(config, agent_id=agent_id)

    async def ingest_from_sitemap(self, config: Union[SitemapConfig, Dict[str, Any]],
                                  agent_id: Optional[str] = None) -> CrawlResult:
        return await self.crawler.ingest_from_sitemap(config, agent_id=agent_id)

    async def ingest_from_urls(self, urls: Sequence[str],
                               config: Optional[Union[UrlListConfig, Dict[str, Any]]] = None,
                               agent_id: Optional[str] = None) -> CrawlResult:
        return await self.crawler.ingest_from_urls(list(urls), config, agent_id=agent_id)

    async def ingest_from_rss(self, config: Union[RSSConfig, Dict[str, Any]],
                              agent_id: Optional[str] = None) -> CrawlResult:
        return await self.feeds.ingest_from_rss(config, agent_id=agent_id)

    async def ingest_source(self, name: str) -> SourceResult:
        """Ingest a source declared in ``<sources_dir>/<name>.yaml``.

        A missing, disabled or invalid definition gives a failed result with
        a single ``config`` error.
        """
        definition = self.sources.load_source(name)
        if definition is None:
            return self._config_failure(f"Source definition not found or invalid: {name}")
        if not definition.enabled:
            return self._config_failure(f"Source {name} is disabled")

        options = dict(definition.options)
        agent_id = definition.agent_id
        self.log.info(f"Ingesting source {name}", kind=definition.kind, agent_id=agent_id)

        try:
            if definition.kind == 'sitemap':
                return await self.ingest_from_sitemap(SitemapConfig(**options), agent_id=agent_id)
            if definition.kind == 'urls':
                urls = options.pop('urls', [])
                return await self.ingest_from_urls(urls, UrlListConfig(**options), agent_id=agent_id)
            if definition.kind == 'rss':
                return await self.ingest_from_rss(RSSConfig(**options), agent_id=agent_id)
            if definition.kind == 'url':
                return await self.ingest_from_url(URLSource(**options), agent_id=agent_id)
            if definition.kind == 'drupal':
                return await self.ingest_from_drupal(DrupalConfig(**options), agent_id=agent_id)
            if definition.kind == 'wordpress':
                return await self.ingest_from_wordpress(WordPressConfig(**options), agent_id=agent_id)
            if definition.kind == 'sanity':
                return await self.ingest_from_sanity(SanityConfig(**options), agent_id=agent_id)
            return await self.ingest_from_strapi(StrapiConfig(**options), agent_id=agent_id)
        except ValidationError as e:
            self.log.warning(f"Invalid options for source {name}: {e}")
            return self._config_failure(str(e))

    @staticmethod
    def _config_failure(message: str) -> IngestResult:
        result = IngestResult()
        result.add_error('config', message)
        return result

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def retrieve(self, query: str, agent_id: Optional[str] = None,
                       filters: Optional[Dict[str, Any]] = None) -> RetrievedContext:
        return await self.retrieval.retrieve(query, agent_id=agent_id, filters=filters)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_cache_stats(self) -> Dict[str, Any]:
        if self.cache is None:
            return {'enabled': False, 'size': 0, 'hits': 0, 'misses': 0, 'hit_rate': 0.0}
        return {'enabled': True, **self.cache.stats()}

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()
            self.log.info("Embedding cache cleared")

    def get_config(self) -> Dict[str, Any]:
        return self.config.to_public_dict()
