"""Indexer package for ContentFoundry.

Provides the embedding cache and services, vector stores and retrieval.
"""

from .embedding_cache import EmbeddingCache
from .embeddings import EmbeddingService, SentenceTransformerEmbeddings, CachedEmbedder
from .store import StorageError, ScopeFilter, VectorStore, InMemoryVectorStore, create_vector_store, similarity_score
from .retrieval import RetrievalEngine, format_context

__all__ = [
    'EmbeddingCache',
    'EmbeddingService',
    'SentenceTransformerEmbeddings',
    'CachedEmbedder',
    'StorageError',
    'ScopeFilter',
    'VectorStore',
    'InMemoryVectorStore',
    'create_vector_store',
    'similarity_score',
    'RetrievalEngine',
    'format_context'
]
