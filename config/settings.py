"""Engine configuration for ContentFoundry.

Settings are pydantic models so they validate on construction and can be
built from environment variables or a YAML file.
"""

import os
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "ContentFoundry-Crawler/1.0"


class StoreType(str, Enum):
    """Supported vector store backends."""
    MEMORY = "memory"
    SQLITE = "sqlite"


class RecencyBoostConfig(BaseModel):
    """Boost recently published documents."""
    enabled: bool = Field(default=False, description="Apply the recency boost")
    field: str = Field(default="publishedAt", description="Metadata path holding the document date")
    decay_days: float = Field(default=30.0, gt=0, description="Age at which the boost reaches zero")
    max_boost: float = Field(default=1.2, ge=1.0, description="Multiplier for a document published now")


class EmbeddingCacheConfig(BaseModel):
    enabled: bool = Field(default=True, description="Cache embeddings in memory")
    ttl: float = Field(default=3600.0, gt=0, description="Entry lifetime in seconds")
    max_size: int = Field(default=1000, ge=1, description="Maximum cached vectors")


class CacheSettings(BaseModel):
    embeddings: EmbeddingCacheConfig = Field(default_factory=EmbeddingCacheConfig)


class RAGConfig(BaseModel):
    """Engine-wide configuration."""
    tenant_id: str = Field(min_length=1, description="Tenant every document and query is scoped to")
    collection: str = Field(default="cms_content", description="Logical collection name")
    embedding_model: str = Field(default="all-MiniLM-L6-v2", description="sentence-transformers model")

    # Storage
    store_type: StoreType = Field(default=StoreType.MEMORY, description="Vector store backend")
    sqlite_path: str = Field(default="contentfoundry.db", description="SQLite database path")

    # Retrieval
    num_candidates: int = Field(default=100, ge=1, description="Candidates considered by similarity search")
    limit: int = Field(default=10, ge=1, description="Maximum documents returned")
    min_score: float = Field(default=0.7, ge=0.0, le=1.0, description="Similarity cutoff, applied before boosts")
    filterable_fields: List[str] = Field(default_factory=lambda: ["type"], description="Metadata fields callers filter on")
    type_boosts: Dict[str, float] = Field(default_factory=dict, description="Score multiplier per content type")
    recency_boost: RecencyBoostConfig = Field(default_factory=RecencyBoostConfig)

    # Ingestion
    cache: CacheSettings = Field(default_factory=CacheSettings)
    batch_size: int = Field(default=10, ge=1, description="Documents per ingestion batch")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent for outbound requests")
    request_timeout: float = Field(default=30.0, gt=0, description="Default request timeout in seconds")
    sources_dir: str = Field(default="sources", description="Directory of YAML source definitions")

    @classmethod
    def from_env(cls, **overrides: Any) -> 'RAGConfig':
        """Create configuration from CONTENTFOUNDRY_* environment variables."""
        type_boosts = {}
        for pair in filter(None, os.getenv('CONTENTFOUNDRY_TYPE_BOOSTS', '').split(',')):
            type_name, _, boost = pair.partition('=')
            type_boosts[type_name.strip()] = float(boost)

        values: Dict[str, Any] = {
            'tenant_id': os.getenv('CONTENTFOUNDRY_TENANT_ID', 'default'),
            'collection': os.getenv('CONTENTFOUNDRY_COLLECTION', 'cms_content'),
            'embedding_model': os.getenv('CONTENTFOUNDRY_EMBEDDING_MODEL', 'all-MiniLM-L6-v2'),
            'store_type': os.getenv('CONTENTFOUNDRY_STORE_TYPE', 'memory').lower(),
            'sqlite_path': os.getenv('CONTENTFOUNDRY_SQLITE_PATH', 'contentfoundry.db'),
            'num_candidates': int(os.getenv('CONTENTFOUNDRY_NUM_CANDIDATES', '100')),
            'limit': int(os.getenv('CONTENTFOUNDRY_LIMIT', '10')),
            'min_score': float(os.getenv('CONTENTFOUNDRY_MIN_SCORE', '0.7')),
            'type_boosts': type_boosts,
            'recency_boost': RecencyBoostConfig(
                enabled=os.getenv('CONTENTFOUNDRY_RECENCY_BOOST', 'false').lower() == 'true',
                field=os.getenv('CONTENTFOUNDRY_RECENCY_FIELD', 'publishedAt'),
                decay_days=float(os.getenv('CONTENTFOUNDRY_RECENCY_DECAY_DAYS', '30')),
                max_boost=float(os.getenv('CONTENTFOUNDRY_RECENCY_MAX_BOOST', '1.2')),
            ),
            'cache': CacheSettings(embeddings=EmbeddingCacheConfig(
                enabled=os.getenv('CONTENTFOUNDRY_CACHE_ENABLED', 'true').lower() == 'true',
                ttl=float(os.getenv('CONTENTFOUNDRY_CACHE_TTL', '3600')),
                max_size=int(os.getenv('CONTENTFOUNDRY_CACHE_MAX_SIZE', '1000')),
            )),
            'batch_size': int(os.getenv('CONTENTFOUNDRY_BATCH_SIZE', '10')),
            'user_agent': os.getenv('CONTENTFOUNDRY_USER_AGENT', DEFAULT_USER_AGENT),
            'request_timeout': float(os.getenv('CONTENTFOUNDRY_REQUEST_TIMEOUT', '30')),
            'sources_dir': os.getenv('CONTENTFOUNDRY_SOURCES_DIR', 'sources'),
        }
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'RAGConfig':
        """Load configuration from a YAML mapping."""
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")

        logger.info(f"Loaded configuration from {path}")
        return cls(**data)

    def to_public_dict(self) -> Dict[str, Any]:
        """Serializable view of the configuration."""
        return self.model_dump(mode='json')
