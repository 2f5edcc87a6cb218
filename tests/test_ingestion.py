"""Tests for the ingestion pipeline."""

import pytest

from conftest import FakeEmbedder
from indexer.embeddings import CachedEmbedder
from indexer.store import InMemoryVectorStore, StorageError
from pipelines.ingestion import DocumentNotFoundError, IngestionPipeline
from sources.models import BulkOperation, Document


class FlakyStore(InMemoryVectorStore):
    """Rejects writes for a fixed set of document ids."""

    def __init__(self, failing_ids):
        super().__init__()
        self.failing_ids = set(failing_ids)

    async def upsert(self, document):
        if document.id in self.failing_ids:
            raise StorageError(f"disk full while writing {document.id}")
        return await super().upsert(document)


class FailingEmbedder(FakeEmbedder):
    async def embed(self, text):
        raise RuntimeError("embedding service unavailable")


def make_pipeline(store=None, embedder=None, batch_size=10):
    return IngestionPipeline(
        store or InMemoryVectorStore(),
        CachedEmbedder(embedder or FakeEmbedder()),
        tenant_id='tenant-a',
        batch_size=batch_size,
    )


class TestIngest:
    """Test suite for IngestionPipeline.ingest."""

    @pytest.mark.asyncio
    async def test_ingest_stamps_tenant_and_agent(self):
        store = InMemoryVectorStore()
        pipeline = make_pipeline(store)

        result = await pipeline.ingest(
            [{'id': 'a', 'content': 'alpha', 'metadata': {'type': 'faq', 'title': 'A'}}],
            agent_id='support',
        )

        assert result.success
        assert result.indexed == 1
        assert result.metadata == {'tenant_id': 'tenant-a', 'collection': 'cms_content'}

        doc = await store.get('tenant-a', 'support', 'a')
        assert doc.tenant_id == 'tenant-a'
        assert doc.agent_id == 'support'
        assert doc.metadata == {'type': 'faq', 'title': 'A'}
        assert len(doc.embedding) == 64

    @pytest.mark.asyncio
    async def test_failed_document_does_not_abort_batch(self):
        store = FlakyStore({'doc-14'})
        pipeline = make_pipeline(store)
        documents = [Document(id=f'doc-{i}', content=f'content number {i}') for i in range(25)]

        result = await pipeline.ingest(documents, batch_size=10)

        assert result.indexed == 24
        assert result.failed == 1
        assert result.success is False
        assert result.errors[0].id == 'doc-14'
        assert 'disk full' in result.errors[0].error
        assert await store.count('tenant-a') == 24

    @pytest.mark.asyncio
    async def test_invalid_items_are_reported(self):
        pipeline = make_pipeline()

        result = await pipeline.ingest([
            {'id': 'ok', 'content': 'fine'},
            {'id': 'no-content'},
            {'content': 'no id'},
        ])

        assert result.indexed == 1
        assert [error.id for error in result.errors] == ['no-content', 'index-2']

    @pytest.mark.asyncio
    async def test_reingest_is_idempotent(self):
        store = InMemoryVectorStore()
        pipeline = make_pipeline(store)

        first = await pipeline.ingest([Document(id='a', content='first version')])
        second = await pipeline.ingest([Document(id='a', content='second version')])

        assert first.indexed + second.indexed == 2
        assert await store.count() == 1
        assert (await store.get('tenant-a', None, 'a')).content == 'second version'

    @pytest.mark.asyncio
    async def test_embedding_failure_propagates(self):
        pipeline = make_pipeline(embedder=FailingEmbedder())

        with pytest.raises(RuntimeError, match="unavailable"):
            await pipeline.ingest([Document(id='a', content='text')])

    @pytest.mark.asyncio
    async def test_missing_type_defaults_to_content(self):
        store = InMemoryVectorStore()
        await make_pipeline(store).ingest([{'id': 'a', 'content': 'text'}])

        assert (await store.get('tenant-a', None, 'a')).type == 'content'

    @pytest.mark.asyncio
    async def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            await make_pipeline().ingest([Document(id='a', content='x')], batch_size=0)


class TestUpdateAndDelete:
    """Test suite for partial updates and deletes."""

    @pytest.mark.asyncio
    async def test_update_merges_metadata_without_reembedding(self):
        embedder = FakeEmbedder()
        store = InMemoryVectorStore()
        pipeline = make_pipeline(store, embedder)
        await pipeline.ingest([{'id': 'a', 'content': 'text', 'metadata': {'type': 'faq', 'title': 'Old'}}])
        calls_before = len(embedder.calls)

        updated = await pipeline.update('a', {'metadata': {'title': 'New', 'tags': ['x']}})

        assert updated.metadata == {'type': 'faq', 'title': 'New', 'tags': ['x']}
        assert updated.content == 'text'
        assert len(embedder.calls) == calls_before

    @pytest.mark.asyncio
    async def test_update_content_reembeds(self):
        embedder = FakeEmbedder()
        store = InMemoryVectorStore()
        pipeline = make_pipeline(store, embedder)
        await pipeline.ingest([Document(id='a', content='old words')])
        original = await store.get('tenant-a', None, 'a')

        updated = await pipeline.update('a', {'content': 'completely different words'})

        assert embedder.calls[-1] == 'completely different words'
        assert updated.embedding != original.embedding
        assert updated.created_at == original.created_at

    @pytest.mark.asyncio
    async def test_update_missing_document(self):
        with pytest.raises(DocumentNotFoundError):
            await make_pipeline().update('ghost', {'content': 'x'}, agent_id='support')

    @pytest.mark.asyncio
    async def test_delete_only_touches_scope(self):
        store = InMemoryVectorStore()
        pipeline = make_pipeline(store)
        await pipeline.ingest([Document(id='a', content='shared copy')])
        await pipeline.ingest([Document(id='a', content='private copy')], agent_id='support')

        assert await pipeline.delete('a', agent_id='support') == 1
        assert await store.get('tenant-a', None, 'a') is not None
        assert await pipeline.delete(['a', 'b']) == 1


class TestEmptyAgentId:
    """An empty agent id is neither the shared scope nor a private one."""

    @pytest.mark.asyncio
    async def test_ingest_rejects_empty_agent(self):
        store = InMemoryVectorStore()
        with pytest.raises(ValueError):
            await make_pipeline(store).ingest([Document(id='a', content='text')], agent_id='')
        assert await store.get('tenant-a', None, 'a') is None

    @pytest.mark.asyncio
    async def test_update_and_delete_reject_empty_agent(self):
        store = InMemoryVectorStore()
        pipeline = make_pipeline(store)
        await pipeline.ingest([Document(id='a', content='text')])

        with pytest.raises(ValueError):
            await pipeline.update('a', {'content': 'changed'}, agent_id='')
        with pytest.raises(ValueError):
            await pipeline.delete('a', agent_id='')

        assert (await store.get('tenant-a', None, 'a')).content == 'text'

    @pytest.mark.asyncio
    async def test_bulk_rejects_empty_agent(self):
        with pytest.raises(ValueError):
            await make_pipeline().bulk([{'type': 'delete', 'id': 'a'}], agent_id='')


class TestBulk:
    """Test suite for mixed bulk operations."""

    @pytest.mark.asyncio
    async def test_mixed_operations(self):
        store = InMemoryVectorStore()
        pipeline = make_pipeline(store)
        await pipeline.ingest([Document(id='old', content='to be removed'),
                               Document(id='keep', content='to be updated')])

        result = await pipeline.bulk([
            {'type': 'insert', 'id': 'new', 'document': {'content': 'fresh content'}},
            BulkOperation(type='update', id='keep', document={'metadata': {'title': 'Kept'}}),
            {'type': 'delete', 'id': 'old'},
        ])

        assert result.success
        assert (result.inserted, result.updated, result.deleted, result.failed) == (1, 1, 1, 0)
        assert (await store.get('tenant-a', None, 'new')).content == 'fresh content'
        assert (await store.get('tenant-a', None, 'keep')).metadata['title'] == 'Kept'
        assert await store.get('tenant-a', None, 'old') is None

    @pytest.mark.asyncio
    async def test_failures_are_recorded_and_later_operations_run(self):
        pipeline = make_pipeline(FlakyStore({'bad'}))

        result = await pipeline.bulk([
            {'type': 'update', 'id': 'ghost', 'document': {'content': 'x'}},
            {'type': 'insert', 'id': 'bad', 'document': {'id': 'bad', 'content': 'x'}},
            {'type': 'insert', 'id': 'empty'},
            {'type': 'insert', 'id': 'good', 'document': Document(id='good', content='x')},
        ])

        assert result.success is False
        assert result.inserted == 1
        assert result.failed == 3
        assert [(e.id, e.operation) for e in result.errors] == [
            ('ghost', 'update'), ('bad', 'insert'), ('empty', 'insert'),
        ]
        assert 'disk full' in result.errors[1].error

    def test_unknown_operation_type(self):
        with pytest.raises(ValueError):
            BulkOperation(type='upsert', id='x')
