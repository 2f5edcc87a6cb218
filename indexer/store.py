"""Vector storage for scoped documents.

Documents are keyed by ``(tenant_id, agent_id, id)``. A document with
``agent_id=None`` is shared by every agent of its tenant; any other value makes
it private to that agent.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from sources.models import SearchHit, StoredDocument
from sources.paths import extract_by_path

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """A vector store rejected a read or write."""


def similarity_score(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity mapped onto [0, 1] as (1 + cos) / 2."""
    a = np.asarray(a, dtype=np.float32)
    b = np.asarray(b, dtype=np.float32)
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)

    if norm_a == 0 or norm_b == 0:
        cosine = 0.0
    else:
        cosine = float(np.dot(a, b) / (norm_a * norm_b))

    return (1.0 + max(-1.0, min(1.0, cosine))) / 2.0


def _filter_matches(value: Any, expected: Any) -> bool:
    if isinstance(expected, (list, tuple, set)):
        if isinstance(value, list):
            return any(v in expected for v in value)
        return value in expected
    if isinstance(value, list):
        return expected in value
    return value == expected


@dataclass
class ScopeFilter:
    """Hard filter applied before similarity ranking.

    The tenant always has to match. With an ``agent_id`` only shared documents
    and that agent's private documents pass. Caller ``filters`` map a metadata
    path (optionally prefixed with ``metadata.``) to a value, or to a list of
    accepted values, and are ANDed with the scope.
    """
    tenant_id: str
    agent_id: Optional[str] = None
    filters: Dict[str, Any] = field(default_factory=dict)

    def matches(self, document: StoredDocument) -> bool:
        if document.tenant_id != self.tenant_id:
            return False

        if self.agent_id is not None and document.agent_id not in (self.agent_id, None):
            return False

        for path, expected in (self.filters or {}).items():
            if path.startswith('metadata.'):
                path = path[len('metadata.'):]
            if not _filter_matches(extract_by_path(document.metadata, path), expected):
                return False

        return True


class VectorStore(ABC):
    """Storage and similarity search contract used by ingestion and retrieval."""

    dimension: Optional[int] = None

    def _check_dimension(self, vector: Sequence[float]) -> None:
        if not vector:
            raise StorageError("Embedding vector is empty")
        if self.dimension is not None and len(vector) != self.dimension:
            raise StorageError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {len(vector)}"
            )

    @abstractmethod
    async def upsert(self, document: StoredDocument) -> bool:
        """Insert or replace a document; returns True when it was new.

        An existing document keeps its original ``created_at``.
        """

    @abstractmethod
    async def get(self, tenant_id: str, agent_id: Optional[str], doc_id: str) -> Optional[StoredDocument]:
        ...

    @abstractmethod
    async def delete(self, tenant_id: str, agent_id: Optional[str], ids: Sequence[str]) -> int:
        """Remove documents of exactly this scope; returns how many existed."""

    @abstractmethod
    async def search(self, vector: Sequence[float], scope: ScopeFilter,
                     num_candidates: int = 100, limit: int = 10) -> List[SearchHit]:
        """Best ``limit`` matches among the top ``num_candidates`` in scope, highest first."""

    @abstractmethod
    async def count(self, tenant_id: Optional[str] = None) -> int:
        ...

    async def close(self) -> None:
        pass


def rank(vector: Sequence[float], documents, num_candidates: int, limit: int) -> List[SearchHit]:
    """Score documents against ``vector`` and keep the best ones."""
    hits = [SearchHit(document=doc, score=similarity_score(vector, doc.embedding)) for doc in documents]
    hits.sort(key=lambda hit: hit.score, reverse=True)
    return hits[:min(num_candidates, limit)]


class InMemoryVectorStore(VectorStore):
    """Dict-backed store with exhaustive cosine search."""

    def __init__(self):
        self._documents: Dict[tuple, StoredDocument] = {}
        self.dimension = None

    async def upsert(self, document: StoredDocument) -> bool:
        self._check_dimension(document.embedding)

        existing = self._documents.get(document.key)
        if existing is not None:
            document.created_at = existing.created_at

        self._documents[document.key] = document
        if self.dimension is None:
            self.dimension = len(document.embedding)
        return existing is None

    async def get(self, tenant_id: str, agent_id: Optional[str], doc_id: str) -> Optional[StoredDocument]:
        return self._documents.get((tenant_id, agent_id, str(doc_id)))

    async def delete(self, tenant_id: str, agent_id: Optional[str], ids: Sequence[str]) -> int:
        deleted = 0
        for doc_id in ids:
            if self._documents.pop((tenant_id, agent_id, str(doc_id)), None) is not None:
                deleted += 1
        return deleted

    async def search(self, vector: Sequence[float], scope: ScopeFilter,
                     num_candidates: int = 100, limit: int = 10) -> List[SearchHit]:
        if self.dimension is not None:
            self._check_dimension(vector)
        candidates = [doc for doc in self._documents.values() if scope.matches(doc)]
        return rank(vector, candidates, num_candidates, limit)

    async def count(self, tenant_id: Optional[str] = None) -> int:
        if tenant_id is None:
            return len(self._documents)
        return sum(1 for doc in self._documents.values() if doc.tenant_id == tenant_id)


def create_vector_store(store_type: str = 'memory', sqlite_path: Optional[str] = None) -> VectorStore:
    """Build the configured store backend."""
    if store_type == 'memory':
        return InMemoryVectorStore()

    if store_type == 'sqlite':
        from .sqlite_store import SQLiteVectorStore
        return SQLiteVectorStore(sqlite_path or 'contentfoundry.db')

    raise ValueError(f"Unsupported store type: {store_type}")
