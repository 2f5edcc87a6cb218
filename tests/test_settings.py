"""Tests for engine configuration."""

import pytest
from pydantic import ValidationError

from config.settings import DEFAULT_USER_AGENT, RAGConfig, StoreType


class TestRAGConfig:
    """Test suite for RAGConfig."""

    def test_defaults(self):
        config = RAGConfig(tenant_id='acme')

        assert config.collection == 'cms_content'
        assert config.store_type is StoreType.MEMORY
        assert config.num_candidates == 100
        assert config.limit == 10
        assert config.min_score == 0.7
        assert config.recency_boost.enabled is False
        assert config.cache.embeddings.ttl == 3600
        assert config.cache.embeddings.max_size == 1000
        assert config.user_agent == DEFAULT_USER_AGENT

    @pytest.mark.parametrize('overrides', [
        {'tenant_id': ''},
        {'tenant_id': 'acme', 'min_score': 1.5},
        {'tenant_id': 'acme', 'limit': 0},
        {'tenant_id': 'acme', 'store_type': 'postgres'},
        {'tenant_id': 'acme', 'recency_boost': {'max_boost': 0.5}},
    ])
    def test_validation(self, overrides):
        with pytest.raises(ValidationError):
            RAGConfig(**overrides)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv('CONTENTFOUNDRY_TENANT_ID', 'acme')
        monkeypatch.setenv('CONTENTFOUNDRY_STORE_TYPE', 'SQLite')
        monkeypatch.setenv('CONTENTFOUNDRY_MIN_SCORE', '0.6')
        monkeypatch.setenv('CONTENTFOUNDRY_TYPE_BOOSTS', 'faq=1.5, service=1.2')
        monkeypatch.setenv('CONTENTFOUNDRY_RECENCY_BOOST', 'true')
        monkeypatch.setenv('CONTENTFOUNDRY_CACHE_ENABLED', 'false')

        config = RAGConfig.from_env(limit=3)

        assert config.tenant_id == 'acme'
        assert config.store_type is StoreType.SQLITE
        assert config.min_score == 0.6
        assert config.type_boosts == {'faq': 1.5, 'service': 1.2}
        assert config.recency_boost.enabled is True
        assert config.cache.embeddings.enabled is False
        assert config.limit == 3

    def test_from_yaml(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text("""
tenant_id: acme
type_boosts:
  faq: 1.3
recency_boost:
  enabled: true
  field: attributes.publishedAt
cache:
  embeddings:
    max_size: 10
""", encoding='utf-8')

        config = RAGConfig.from_yaml(path)

        assert config.type_boosts == {'faq': 1.3}
        assert config.recency_boost.field == 'attributes.publishedAt'
        assert config.cache.embeddings.max_size == 10

    def test_from_yaml_requires_mapping(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text('- not\n- a mapping\n', encoding='utf-8')

        with pytest.raises(ValueError, match='mapping'):
            RAGConfig.from_yaml(path)

    def test_public_dict_is_serializable(self):
        data = RAGConfig(tenant_id='acme', type_boosts={'faq': 1.1}).to_public_dict()
        assert data['store_type'] == 'memory'
        assert data['type_boosts'] == {'faq': 1.1}
