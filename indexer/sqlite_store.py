"""SQLite vector store for ContentFoundry.

Persists scoped documents in a single table with float32 embedding blobs.
Similarity search loads the rows of the requested scope and ranks them in
numpy, which is adequate for small and medium corpora.
"""

import json
import logging
import sqlite3
from datetime import datetime
from typing import List, Optional, Sequence

import numpy as np

from sources.models import SearchHit, StoredDocument

from .store import ScopeFilter, StorageError, VectorStore, rank

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    tenant_id TEXT NOT NULL,
    agent_key TEXT NOT NULL,
    doc_id TEXT NOT NULL,
    content TEXT NOT NULL,
    metadata TEXT NOT NULL,
    embedding BLOB NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT,
    PRIMARY KEY (tenant_id, agent_key, doc_id)
);
CREATE INDEX IF NOT EXISTS idx_documents_tenant ON documents (tenant_id, agent_key);
"""

# Shared documents have no agent; stored as '' so the primary key stays usable
SHARED_AGENT_KEY = ''


def _agent_key(agent_id: Optional[str]) -> str:
    return SHARED_AGENT_KEY if agent_id is None else agent_id


class SQLiteVectorStore(VectorStore):
    """SQLite-backed store with the same semantics as the in-memory one."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None
        self.dimension = None

    async def initialize(self):
        """Open the connection and ensure the schema exists."""
        if self.conn is not None:
            return

        try:
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.executescript(SCHEMA)
            self.conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to initialize SQLite store {self.db_path}: {e}") from e

        row = self.conn.execute("SELECT length(embedding) AS size FROM documents LIMIT 1").fetchone()
        if row is not None:
            self.dimension = row['size'] // np.dtype(np.float32).itemsize

        logger.info(f"SQLite store initialized: {self.db_path}")

    async def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("SQLite connection closed")

    async def _connection(self) -> sqlite3.Connection:
        if self.conn is None:
            await self.initialize()
        return self.conn

    def _row_to_document(self, row: sqlite3.Row) -> StoredDocument:
        return StoredDocument(
            id=row['doc_id'],
            content=row['content'],
            metadata=json.loads(row['metadata']),
            tenant_id=row['tenant_id'],
            agent_id=row['agent_key'] or None,
            embedding=np.frombuffer(row['embedding'], dtype=np.float32).tolist(),
            created_at=datetime.fromisoformat(row['created_at']),
            updated_at=datetime.fromisoformat(row['updated_at']) if row['updated_at'] else None,
        )

    async def upsert(self, document: StoredDocument) -> bool:
        self._check_dimension(document.embedding)
        conn = await self._connection()

        existing = await self.get(document.tenant_id, document.agent_id, document.id)
        if existing is not None:
            document.created_at = existing.created_at

        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO documents
                    (tenant_id, agent_key, doc_id, content, metadata, embedding, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document.tenant_id,
                    _agent_key(document.agent_id),
                    document.id,
                    document.content,
                    json.dumps(document.metadata, default=str),
                    np.asarray(document.embedding, dtype=np.float32).tobytes(),
                    document.created_at.isoformat(),
                    document.updated_at.isoformat() if document.updated_at else None,
                ),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Failed to store document {document.id}: {e}") from e

        if self.dimension is None:
            self.dimension = len(document.embedding)
        return existing is None

    async def get(self, tenant_id: str, agent_id: Optional[str], doc_id: str) -> Optional[StoredDocument]:
        conn = await self._connection()
        row = conn.execute(
            "SELECT * FROM documents WHERE tenant_id = ? AND agent_key = ? AND doc_id = ?",
            (tenant_id, _agent_key(agent_id), str(doc_id)),
        ).fetchone()
        return self._row_to_document(row) if row else None

    async def delete(self, tenant_id: str, agent_id: Optional[str], ids: Sequence[str]) -> int:
        if not ids:
            return 0
        conn = await self._connection()
        placeholders = ','.join('?' * len(ids))
        cursor = conn.execute(
            f"DELETE FROM documents WHERE tenant_id = ? AND agent_key = ? AND doc_id IN ({placeholders})",
            [tenant_id, _agent_key(agent_id), *[str(i) for i in ids]],
        )
        conn.commit()
        return cursor.rowcount

    async def search(self, vector: Sequence[float], scope: ScopeFilter,
                     num_candidates: int = 100, limit: int = 10) -> List[SearchHit]:
        conn = await self._connection()
        if self.dimension is not None:
            self._check_dimension(vector)

        if scope.agent_id is None:
            rows = conn.execute("SELECT * FROM documents WHERE tenant_id = ?", (scope.tenant_id,))
        else:
            rows = conn.execute(
                "SELECT * FROM documents WHERE tenant_id = ? AND agent_key IN (?, ?)",
                (scope.tenant_id, SHARED_AGENT_KEY, scope.agent_id),
            )

        candidates = [doc for doc in map(self._row_to_document, rows.fetchall()) if scope.matches(doc)]
        return rank(vector, candidates, num_candidates, limit)

    async def count(self, tenant_id: Optional[str] = None) -> int:
        conn = await self._connection()
        if tenant_id is None:
            row = conn.execute("SELECT COUNT(*) AS n FROM documents").fetchone()
        else:
            row = conn.execute("SELECT COUNT(*) AS n FROM documents WHERE tenant_id = ?", (tenant_id,)).fetchone()
        return row['n']
