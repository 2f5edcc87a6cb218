"""Tests for the in-memory vector store and the scope filter."""

import pytest

from indexer.store import (
    InMemoryVectorStore,
    ScopeFilter,
    StorageError,
    create_vector_store,
    similarity_score,
)
from sources.models import StoredDocument


def stored(doc_id, vector, tenant='t1', agent=None, **metadata):
    metadata.setdefault('type', 'page')
    return StoredDocument(id=doc_id, content=f'content {doc_id}', metadata=metadata,
                          tenant_id=tenant, agent_id=agent, embedding=vector)


class TestSimilarityScore:
    """Test suite for score normalization."""

    def test_identical_vectors(self):
        assert similarity_score([1.0, 0.0], [2.0, 0.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert similarity_score([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.5)

    def test_opposite_vectors(self):
        assert similarity_score([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(0.0)

    def test_zero_vector(self):
        assert similarity_score([0.0, 0.0], [1.0, 0.0]) == pytest.approx(0.5)


class TestScopeFilter:
    """Test suite for tenant, agent and metadata filtering."""

    def test_tenant_is_mandatory(self):
        assert not ScopeFilter(tenant_id='t2').matches(stored('a', [1.0]))

    def test_agent_sees_shared_and_own(self):
        scope = ScopeFilter(tenant_id='t1', agent_id='A')
        assert scope.matches(stored('shared', [1.0]))
        assert scope.matches(stored('mine', [1.0], agent='A'))
        assert not scope.matches(stored('theirs', [1.0], agent='B'))

    def test_no_agent_sees_whole_tenant(self):
        scope = ScopeFilter(tenant_id='t1')
        assert scope.matches(stored('theirs', [1.0], agent='B'))

    def test_metadata_filters(self):
        doc = stored('a', [1.0], type='post', tags=['design', 'news'], author={'name': 'Jo'})

        assert ScopeFilter('t1', filters={'type': 'post'}).matches(doc)
        assert ScopeFilter('t1', filters={'metadata.type': ['page', 'post']}).matches(doc)
        assert ScopeFilter('t1', filters={'tags': 'news'}).matches(doc)
        assert ScopeFilter('t1', filters={'author.name': 'Jo'}).matches(doc)
        assert not ScopeFilter('t1', filters={'type': 'page'}).matches(doc)
        assert not ScopeFilter('t1', filters={'type': 'post', 'tags': 'sports'}).matches(doc)


class TestInMemoryVectorStore:
    """Test suite for InMemoryVectorStore."""

    @pytest.mark.asyncio
    async def test_upsert_reports_creation_and_keeps_created_at(self):
        store = InMemoryVectorStore()
        first = stored('a', [1.0, 0.0])
        original_created = first.created_at

        assert await store.upsert(first) is True
        assert await store.upsert(stored('a', [0.0, 1.0])) is False

        doc = await store.get('t1', None, 'a')
        assert doc.embedding == [0.0, 1.0]
        assert doc.created_at == original_created
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_shared_and_private_copies_do_not_collide(self):
        store = InMemoryVectorStore()
        await store.upsert(stored('a', [1.0]))
        await store.upsert(stored('a', [1.0], agent='A'))

        assert await store.count('t1') == 2
        assert await store.delete('t1', 'A', ['a']) == 1
        assert await store.get('t1', None, 'a') is not None

    @pytest.mark.asyncio
    async def test_dimension_mismatch_rejected(self):
        store = InMemoryVectorStore()
        await store.upsert(stored('a', [1.0, 0.0]))

        with pytest.raises(StorageError):
            await store.upsert(stored('b', [1.0, 0.0, 0.0]))
        with pytest.raises(StorageError):
            await store.upsert(stored('c', []))

    @pytest.mark.asyncio
    async def test_search_orders_and_limits(self):
        store = InMemoryVectorStore()
        await store.upsert(stored('exact', [1.0, 0.0]))
        await store.upsert(stored('close', [0.9, 0.1]))
        await store.upsert(stored('far', [0.0, 1.0]))
        await store.upsert(stored('other-tenant', [1.0, 0.0], tenant='t2'))

        hits = await store.search([1.0, 0.0], ScopeFilter('t1'), num_candidates=100, limit=2)

        assert [hit.document.id for hit in hits] == ['exact', 'close']
        assert hits[0].score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_delete_missing_ids(self):
        store = InMemoryVectorStore()
        assert await store.delete('t1', None, ['nope']) == 0


class TestCreateVectorStore:
    """Test suite for the store factory."""

    def test_memory(self):
        assert isinstance(create_vector_store('memory'), InMemoryVectorStore)

    def test_sqlite(self, tmp_path):
        from indexer.sqlite_store import SQLiteVectorStore
        store = create_vector_store('sqlite', str(tmp_path / 'x.db'))
        assert isinstance(store, SQLiteVectorStore)

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_vector_store('postgres')
