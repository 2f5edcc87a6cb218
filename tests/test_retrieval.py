"""Tests for scoped retrieval, boosting and context formatting."""

import math
from datetime import datetime, timedelta, timezone

import pytest

from config.settings import RAGConfig, RecencyBoostConfig
from conftest import FakeEmbedder
from indexer.embeddings import CachedEmbedder
from indexer.retrieval import NO_RESULTS, RetrievalEngine, format_context, format_value, humanize_key
from indexer.store import InMemoryVectorStore
from sources.models import SearchHit, StoredDocument

QUERY = 'what do you build'
NOW = datetime(2025, 1, 31, 12, 0, tzinfo=timezone.utc)


def vector_with_score(score):
    """2-d unit vector whose normalized similarity to [1, 0] is ``score``."""
    cosine = 2 * score - 1
    return [cosine, math.sqrt(1 - cosine ** 2)]


def stored(doc_id, score, agent=None, tenant='tenant-a', **metadata):
    metadata.setdefault('type', 'page')
    return StoredDocument(id=doc_id, content=f'content of {doc_id}', metadata=metadata,
                          tenant_id=tenant, agent_id=agent, embedding=vector_with_score(score))


async def make_engine(documents, **config):
    store = InMemoryVectorStore()
    for doc in documents:
        await store.upsert(doc)
    embedder = CachedEmbedder(FakeEmbedder(vectors={QUERY: [1.0, 0.0]}))
    return RetrievalEngine(store, embedder, RAGConfig(tenant_id='tenant-a', **config), clock=lambda: NOW)


class TestSearch:
    """Test suite for RetrievalEngine.search."""

    @pytest.mark.asyncio
    async def test_cutoff_applies_before_type_boost(self):
        engine = await make_engine([
            stored('weak-faq', 0.69, type='faq'),
            stored('faq', 0.75, type='faq'),
            stored('page', 0.9),
        ], type_boosts={'faq': 1.5})

        hits = await engine.search(QUERY)

        assert [hit.document.id for hit in hits] == ['faq', 'page']
        assert hits[0].score == pytest.approx(1.125)
        assert hits[1].score == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_cutoff_is_inclusive(self):
        engine = await make_engine([stored('edge', 0.5)], min_score=0.5)
        assert len(await engine.search(QUERY)) == 1

    @pytest.mark.asyncio
    async def test_recency_boost(self):
        engine = await make_engine([
            stored('today', 0.8, publishedAt=NOW.isoformat()),
            stored('fortnight', 0.8, publishedAt=(NOW - timedelta(days=15)).isoformat()),
            stored('old', 0.8, publishedAt='2020-01-01T00:00:00Z'),
            stored('future', 0.8, publishedAt=(NOW + timedelta(days=10)).isoformat()),
            stored('undated', 0.8),
            stored('garbled', 0.8, publishedAt='last tuesday'),
        ], recency_boost=RecencyBoostConfig(enabled=True, decay_days=30, max_boost=1.2))

        scores = {hit.document.id: hit.score for hit in await engine.search(QUERY)}

        assert scores['today'] == pytest.approx(0.96)
        assert scores['future'] == pytest.approx(0.96)
        assert scores['fortnight'] == pytest.approx(0.88)
        assert scores['old'] == pytest.approx(0.8)
        assert scores['undated'] == pytest.approx(0.8)
        assert scores['garbled'] == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_recency_boost_disabled_by_default(self):
        engine = await make_engine([stored('today', 0.8, publishedAt=NOW.isoformat())])
        hits = await engine.search(QUERY)
        assert hits[0].score == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_limit(self):
        engine = await make_engine([stored(f'd{i}', 0.9) for i in range(6)], limit=4)
        assert len(await engine.search(QUERY)) == 4

    @pytest.mark.asyncio
    async def test_agent_scope(self):
        engine = await make_engine([
            stored('shared', 0.9),
            stored('sales-only', 0.9, agent='sales'),
            stored('support-only', 0.9, agent='support'),
            stored('other-tenant', 0.9, tenant='tenant-b'),
        ])

        sales = {hit.document.id for hit in await engine.search(QUERY, agent_id='sales')}
        everyone = {hit.document.id for hit in await engine.search(QUERY)}

        assert sales == {'shared', 'sales-only'}
        assert everyone == {'shared', 'sales-only', 'support-only'}

    @pytest.mark.asyncio
    async def test_metadata_filters(self):
        engine = await make_engine([stored('faq', 0.9, type='faq'), stored('page', 0.9)])
        hits = await engine.search(QUERY, filters={'type': 'faq'})
        assert [hit.document.id for hit in hits] == ['faq']

    @pytest.mark.asyncio
    async def test_filter_on_unlisted_field_is_ignored(self):
        engine = await make_engine([stored('a', 0.9, title='Alpha'), stored('b', 0.9, title='Beta')])

        hits = await engine.search(QUERY, filters={'title': 'Alpha', 'metadata.title': 'Alpha'})

        assert {hit.document.id for hit in hits} == {'a', 'b'}

    @pytest.mark.asyncio
    async def test_filter_on_listed_field_is_applied(self):
        engine = await make_engine([
            stored('a', 0.9, title='Alpha', author={'name': 'Jo'}),
            stored('b', 0.9, title='Beta', author={'name': 'Sam'}),
        ], filterable_fields=['type', 'title', 'author'])

        by_title = await engine.search(QUERY, filters={'metadata.title': 'Alpha'})
        by_author = await engine.search(QUERY, filters={'author.name': 'Sam'})

        assert [hit.document.id for hit in by_title] == ['a']
        assert [hit.document.id for hit in by_author] == ['b']

    def test_allowed_filters(self):
        engine = RetrievalEngine(InMemoryVectorStore(), CachedEmbedder(FakeEmbedder()),
                                 RAGConfig(tenant_id='tenant-a', filterable_fields=['type', 'tags']))

        allowed = engine.allowed_filters({'type': 'faq', 'tags[0]': 'x', 'metadata.tags': 'y', 'title': 'z'})

        assert allowed == {'type': 'faq', 'tags[0]': 'x', 'metadata.tags': 'y'}
        assert engine.allowed_filters(None) == {}


class TestRetrieve:
    """Test suite for RetrievalEngine.retrieve."""

    @pytest.mark.asyncio
    async def test_no_results(self):
        engine = await make_engine([stored('weak', 0.5)])

        context = await engine.retrieve(QUERY)

        assert context.content == NO_RESULTS
        assert context.metadata == {'content_count': 0, 'types': [], 'top_results': []}

    @pytest.mark.asyncio
    async def test_summary_metadata(self):
        docs = [stored(f'page-{i}', 0.9 - i * 0.01, title=f'Page {i}') for i in range(6)]
        docs.append(stored('faq', 0.95, type='faq', url='https://example.com/faq'))
        engine = await make_engine(docs)

        context = await engine.retrieve(QUERY)

        assert context.metadata['content_count'] == 7
        assert context.metadata['types'] == ['faq', 'page']
        top = context.metadata['top_results']
        assert len(top) == 5
        assert top[0] == {'id': 'faq', 'type': 'faq', 'title': None,
                          'url': 'https://example.com/faq', 'score': pytest.approx(0.95)}
        assert top[1]['title'] == 'Page 0'

    @pytest.mark.asyncio
    async def test_embedding_errors_propagate(self):
        class Broken(FakeEmbedder):
            async def embed(self, text):
                raise RuntimeError("model not loaded")

        engine = RetrievalEngine(InMemoryVectorStore(), CachedEmbedder(Broken()),
                                 RAGConfig(tenant_id='tenant-a'))

        with pytest.raises(RuntimeError):
            await engine.retrieve(QUERY)


class TestFormatting:
    """Test suite for context rendering."""

    def test_humanize_key(self):
        assert humanize_key('publishedAt') == 'Published At'
        assert humanize_key('author') == 'Author'

    def test_format_value(self):
        assert format_value(['a', 'b']) == 'a, b'
        assert format_value(NOW) == '2025-01-31'
        assert format_value({'name': 'Jo'}) == '{"name": "Jo"}'
        assert format_value(3) == '3'

    def test_format_context(self):
        doc = StoredDocument(
            id='refunds', content='Refunds take five days.',
            metadata={'type': 'faq', 'title': 'Refunds', 'url': 'https://example.com/refunds',
                      'tags': ['billing', 'policy'], 'sourceUrl': 'https://api.example.com', 'publishedAt': NOW},
            tenant_id='tenant-a', embedding=[1.0],
        )
        untitled = StoredDocument(id='x1', content='Body', metadata={'type': 'note'},
                                  tenant_id='tenant-a', embedding=[1.0])

        text = format_context([SearchHit(doc, 0.9), SearchHit(untitled, 0.8)])

        assert text.startswith('## Relevant Content\n')
        assert '### Refunds' in text
        assert '**Type:** faq' in text
        assert '**URL:** https://example.com/refunds' in text
        assert '**Tags:** billing, policy' in text
        assert '**Published At:** 2025-01-31' in text
        assert 'api.example.com' not in text
        assert 'Refunds take five days.' in text
        assert '### note (x1)' in text

    def test_empty(self):
        assert format_context([]) == NO_RESULTS
