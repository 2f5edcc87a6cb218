"""Ingestion pipeline: embed documents and upsert them into the vector store.

The pipeline is the only writer of stored documents. Every write is scoped
to the engine's tenant and, optionally, to one agent.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Union

from indexer.embeddings import CachedEmbedder
from indexer.store import StorageError, VectorStore
from observability.prometheus_metrics import record_ingest_metrics
from sources.models import (
    BulkError,
    BulkOperation,
    BulkResult,
    Document,
    IngestResult,
    StoredDocument,
    utcnow,
)

logger = logging.getLogger(__name__)

DocumentInput = Union[Document, Dict[str, Any]]


class DocumentNotFoundError(LookupError):
    """Raised when updating a document that does not exist in the given scope."""

    def __init__(self, doc_id: str, agent_id: Optional[str] = None):
        scope = f"agent {agent_id}" if agent_id else "shared scope"
        super().__init__(f"Document {doc_id} not found in {scope}")
        self.doc_id = doc_id
        self.agent_id = agent_id


def _coerce(item: DocumentInput) -> Document:
    if isinstance(item, Document):
        return item
    if isinstance(item, dict):
        if 'id' not in item or 'content' not in item:
            raise ValueError("Document requires 'id' and 'content'")
        return Document.from_dict(item)
    raise ValueError(f"Unsupported document type: {type(item).__name__}")


def _check_agent(agent_id: Optional[str]) -> None:
    # None is the shared scope
    if agent_id is not None and not agent_id:
        raise ValueError("agent_id must be a non-empty string or None")


def _item_id(item: Any, index: int) -> str:
    if isinstance(item, Document):
        return item.id
    if isinstance(item, dict) and item.get('id'):
        return str(item['id'])
    return f"index-{index}"


class IngestionPipeline:
    """Embeds and stores documents in sequential batches."""

    def __init__(self, store: VectorStore, embedder: CachedEmbedder, tenant_id: str,
                 collection: str = "cms_content", batch_size: int = 10):
        self.store = store
        self.embedder = embedder
        self.tenant_id = tenant_id
        self.collection = collection
        self.batch_size = batch_size

    async def ingest(self, documents: Sequence[DocumentInput], agent_id: Optional[str] = None,
                     batch_size: Optional[int] = None, source: str = "documents") -> IngestResult:
        """Embed and upsert documents.

        Args:
            documents: Documents (or plain dicts) to index
            agent_id: Make the documents private to this agent; shared when None
            batch_size: Documents embedded per batch
            source: Label used for metrics

        Returns:
            IngestResult; per-document storage and validation failures are
            collected in ``errors`` while the rest of the batch continues

        Raises:
            Exception: Embedding service failures propagate unchanged
        """
        _check_agent(agent_id)
        size = batch_size or self.batch_size
        if size < 1:
            raise ValueError("batch_size must be at least 1")

        result = IngestResult(metadata={'tenant_id': self.tenant_id, 'collection': self.collection})
        start_time = time.time()

        for start in range(0, len(documents), size):
            batch = []
            for offset, item in enumerate(documents[start:start + size]):
                try:
                    batch.append(_coerce(item))
                except ValueError as e:
                    result.add_error(_item_id(item, start + offset), e)

            embeddings = await self.embedder.embed_batch([doc.content for doc in batch])

            for doc, embedding in zip(batch, embeddings):
                try:
                    await self._store(doc, embedding, agent_id)
                    result.indexed += 1
                except (StorageError, ValueError) as e:
                    logger.warning(f"Failed to index document {doc.id}: {e}")
                    result.add_error(doc.id, e)

        duration = time.time() - start_time
        record_ingest_metrics(source, duration, result.indexed, result.failed)
        logger.info(f"Ingested {result.indexed}/{len(documents)} documents for tenant {self.tenant_id} "
                    f"(agent={agent_id or 'shared'}, failed={result.failed}) in {duration:.2f}s")
        return result

    async def _store(self, doc: Document, embedding: List[float], agent_id: Optional[str]) -> bool:
        now = utcnow()
        stored = StoredDocument(
            id=doc.id,
            content=doc.content,
            metadata=dict(doc.metadata),
            tenant_id=self.tenant_id,
            agent_id=agent_id,
            embedding=embedding,
            created_at=now,
            updated_at=now,
        )
        return await self.store.upsert(stored)

    async def update(self, doc_id: str, changes: DocumentInput,
                     agent_id: Optional[str] = None) -> StoredDocument:
        """Apply a partial update to a stored document.

        Content changes trigger a re-embed; metadata is merged key by key.

        Raises:
            DocumentNotFoundError: No document with this id in the scope
        """
        _check_agent(agent_id)
        if isinstance(changes, Document):
            changes = changes.to_dict()

        existing = await self.store.get(self.tenant_id, agent_id, str(doc_id))
        if existing is None:
            raise DocumentNotFoundError(str(doc_id), agent_id)

        content = changes.get('content')
        embedding = existing.embedding
        if content is not None and content != existing.content:
            embedding = await self.embedder.embed(content)
        else:
            content = existing.content

        metadata = {**existing.metadata, **(changes.get('metadata') or {})}

        updated = StoredDocument(
            id=existing.id,
            content=content,
            metadata=metadata,
            tenant_id=existing.tenant_id,
            agent_id=existing.agent_id,
            embedding=embedding,
            created_at=existing.created_at,
            updated_at=utcnow(),
        )
        await self.store.upsert(updated)
        logger.debug(f"Updated document {doc_id} (agent={agent_id or 'shared'})")
        return updated

    async def delete(self, ids: Union[str, Sequence[str]], agent_id: Optional[str] = None) -> int:
        """Delete documents of this scope; returns how many were removed."""
        _check_agent(agent_id)
        if isinstance(ids, str):
            ids = [ids]
        deleted = await self.store.delete(self.tenant_id, agent_id, [str(i) for i in ids])
        logger.info(f"Deleted {deleted} documents for tenant {self.tenant_id} (agent={agent_id or 'shared'})")
        return deleted

    async def bulk(self, operations: Sequence[Union[BulkOperation, Dict[str, Any]]],
                   agent_id: Optional[str] = None) -> BulkResult:
        """Run insert/update/delete operations in order.

        A failing operation is recorded and the remaining ones still run.
        """
        _check_agent(agent_id)
        result = BulkResult()

        for raw in operations:
            op = raw if isinstance(raw, BulkOperation) else BulkOperation(**raw)
            try:
                if op.type == 'insert':
                    if op.document is None:
                        raise ValueError("Insert operation requires a document")
                    document = op.document
                    if isinstance(document, dict) and 'id' not in document:
                        document = {**document, 'id': op.id}
                    outcome = await self.ingest([document], agent_id=agent_id, source="bulk")
                    if not outcome.indexed:
                        raise StorageError(outcome.errors[0].error if outcome.errors else "Insert failed")
                    result.inserted += 1

                elif op.type == 'update':
                    if op.document is None:
                        raise ValueError("Update operation requires a document")
                    await self.update(op.id, op.document, agent_id=agent_id)
                    result.updated += 1

                else:
                    result.deleted += await self.delete([op.id], agent_id=agent_id)

            except Exception as e:
                logger.warning(f"Bulk {op.type} failed for {op.id}: {e}")
                result.errors.append(BulkError(id=op.id, operation=op.type, error=str(e)))
                result.failed += 1

        result.success = result.failed == 0
        return result
