# ContentFoundry Embeddings Module
# Embedding service contract, the sentence-transformers default and a caching wrapper

import asyncio
import logging
import time
from typing import List, Optional, Protocol, runtime_checkable

from observability.prometheus_metrics import record_cache_lookup, record_embedding_metrics

from .embedding_cache import EmbeddingCache

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "all-MiniLM-L6-v2"


@runtime_checkable
class EmbeddingService(Protocol):
    """Anything that can turn text into a fixed-size vector."""

    async def embed(self, text: str) -> List[float]:
        ...


class SentenceTransformerEmbeddings:
    """Embedding service backed by a local sentence-transformers model."""

    def __init__(self, model_name: str = DEFAULT_MODEL):
        self.model_name = model_name
        self.model = None

    def _load_model(self):
        """Load the sentence transformer model"""
        if self.model is not None:
            return self.model

        from sentence_transformers import SentenceTransformer

        logger.info(f"Loading embedding model: {self.model_name}")
        self.model = SentenceTransformer(self.model_name)
        logger.info(f"Model loaded successfully. Embedding dimension: {self.model.get_sentence_embedding_dimension()}")
        return self.model

    @property
    def dimension(self) -> int:
        return self._load_model().get_sentence_embedding_dimension()

    def _encode(self, text: str) -> List[float]:
        model = self._load_model()
        text = text.strip()
        if not text:
            return [0.0] * model.get_sentence_embedding_dimension()
        return model.encode(text, convert_to_numpy=True).tolist()

    async def embed(self, text: str) -> List[float]:
        # encode() is CPU bound, keep it off the event loop
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._encode, text)


class CachedEmbedder:
    """Routes every embedding request through the engine's cache.

    Shared by ingestion (document content) and retrieval (query text).
    Service errors propagate to the caller.
    """

    def __init__(self, service: EmbeddingService, cache: Optional[EmbeddingCache] = None,
                 model_name: str = "default"):
        self.service = service
        self.cache = cache
        self.model_name = model_name

    async def embed(self, text: str) -> List[float]:
        if self.cache is not None:
            cached = self.cache.get(text)
            record_cache_lookup(cached is not None)
            if cached is not None:
                return cached

        start_time = time.time()
        vector = list(await self.service.embed(text))
        record_embedding_metrics(self.model_name, time.time() - start_time)

        if self.cache is not None:
            self.cache.put(text, vector)
        return vector

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed texts one at a time, in order."""
        vectors = []
        for text in texts:
            vectors.append(await self.embed(text))
        return vectors
