"""Configuration module for ContentFoundry.

Provides the engine configuration: storage, retrieval scoring, caching
and ingestion defaults.
"""

from .settings import (
    RAGConfig,
    RecencyBoostConfig,
    EmbeddingCacheConfig,
    CacheSettings,
    StoreType,
    DEFAULT_USER_AGENT
)

__all__ = [
    'RAGConfig',
    'RecencyBoostConfig',
    'EmbeddingCacheConfig',
    'CacheSettings',
    'StoreType',
    'DEFAULT_USER_AGENT'
]
