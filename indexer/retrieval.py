"""Semantic retrieval: scoped similarity search, score boosting and LLM context rendering."""

import json
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from config.settings import RAGConfig
from observability.prometheus_metrics import record_retrieval_metrics
from sources.models import RetrievedContext, SearchHit
from sources.paths import extract_by_path

from .embeddings import CachedEmbedder
from .store import ScopeFilter, VectorStore

logger = logging.getLogger(__name__)

NO_RESULTS = "No relevant content found."

# Shown in the section header or not meant for the model
SKIP_FIELDS = ('type', 'title', 'url', 'sourceUrl', 'fetchedAt')

TOP_RESULTS = 5
SECONDS_PER_DAY = 24 * 60 * 60


def humanize_key(key: str) -> str:
    """'publishedAt' -> 'Published At'."""
    spaced = re.sub(r'([A-Z])', r' \1', key)
    return spaced[:1].upper() + spaced[1:]


def format_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ', '.join(format_value(v) for v in value)
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    return str(value)


def parse_date(value: Any) -> Optional[datetime]:
    """Best-effort conversion of a metadata value to an aware datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_context(hits: List[SearchHit]) -> str:
    """Render ranked documents as a markdown block for an LLM prompt."""
    if not hits:
        return NO_RESULTS

    sections = ['## Relevant Content\n']

    for hit in hits:
        doc = hit.document
        meta = doc.metadata
        sections.append(f"### {meta.get('title') or f'{doc.type} ({doc.id})'}")

        if meta.get('type'):
            sections.append(f"**Type:** {meta['type']}")
        if meta.get('url'):
            sections.append(f"**URL:** {meta['url']}")

        extra = [
            f"**{humanize_key(key)}:** {format_value(value)}"
            for key, value in meta.items()
            if key not in SKIP_FIELDS
        ]
        if extra:
            sections.append('\n'.join(extra))

        sections.append('')
        sections.append(doc.content)
        sections.append('')

    return '\n'.join(sections)


class RetrievalEngine:
    """Answers a query with the best scoped documents, formatted for a prompt."""

    def __init__(self, store: VectorStore, embedder: CachedEmbedder, config: RAGConfig,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.embedder = embedder
        self.config = config
        self._now = clock or (lambda: datetime.now(timezone.utc))

    def apply_type_boosts(self, hits: List[SearchHit]) -> List[SearchHit]:
        boosts = self.config.type_boosts
        if not boosts:
            return hits
        return [SearchHit(document=h.document, score=h.score * boosts.get(h.document.type, 1.0)) for h in hits]

    def apply_recency_boost(self, hits: List[SearchHit]) -> List[SearchHit]:
        recency = self.config.recency_boost
        if not recency.enabled:
            return hits

        now = self._now()
        decay = recency.decay_days * SECONDS_PER_DAY
        boosted = []

        for hit in hits:
            published = parse_date(extract_by_path(hit.document.metadata, recency.field))
            if published is None:
                boosted.append(hit)
                continue

            # Future dates count as brand new so the boost never exceeds max_boost
            age = max(0.0, (now - published).total_seconds())
            freshness = max(0.0, 1.0 - age / decay)
            boost = 1.0 + (recency.max_boost - 1.0) * freshness
            boosted.append(SearchHit(document=hit.document, score=hit.score * boost))

        return boosted

    def allowed_filters(self, filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Keep only filters whose root field is listed in ``filterable_fields``."""
        allowed = {}
        for path, value in (filters or {}).items():
            field = path[len('metadata.'):] if path.startswith('metadata.') else path
            if field.split('.')[0].split('[')[0] in self.config.filterable_fields:
                allowed[path] = value
            else:
                logger.warning(f"Ignoring filter on {path}: not in filterable_fields")
        return allowed

    async def search(self, query: str, agent_id: Optional[str] = None,
                     filters: Optional[Dict[str, Any]] = None) -> List[SearchHit]:
        """Ranked, boosted hits for ``query`` within the tenant and agent scope."""
        vector = await self.embedder.embed(query)
        scope = ScopeFilter(tenant_id=self.config.tenant_id, agent_id=agent_id, filters=self.allowed_filters(filters))

        hits = await self.store.search(
            vector, scope,
            num_candidates=self.config.num_candidates,
            limit=self.config.limit * 2,
        )

        # Cutoff applies to raw similarity, before any boost
        hits = [hit for hit in hits if hit.score >= self.config.min_score]

        hits = self.apply_recency_boost(self.apply_type_boosts(hits))
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:self.config.limit]

    async def retrieve(self, query: str, agent_id: Optional[str] = None,
                       filters: Optional[Dict[str, Any]] = None) -> RetrievedContext:
        """Retrieve formatted context for ``query``.

        Args:
            query: User message or search text
            agent_id: Restrict to shared documents plus this agent's private ones
            filters: Metadata path -> value (or list of accepted values)

        Returns:
            RetrievedContext with the rendered markdown and a summary of the hits
        """
        start_time = time.time()
        try:
            hits = await self.search(query, agent_id=agent_id, filters=filters)
        except Exception as e:
            record_retrieval_metrics(time.time() - start_time, 0, error=str(e))
            raise

        duration = time.time() - start_time
        record_retrieval_metrics(duration, len(hits))
        logger.info(f"Retrieved {len(hits)} documents for tenant {self.config.tenant_id} "
                    f"(agent={agent_id or '*'}) in {duration:.3f}s")

        types = []
        for hit in hits:
            if hit.document.type not in types:
                types.append(hit.document.type)

        return RetrievedContext(
            content=format_context(hits),
            metadata={
                'content_count': len(hits),
                'types': types,
                'top_results': [
                    {
                        'id': hit.document.id,
                        'type': hit.document.type,
                        'title': hit.document.title,
                        'url': hit.document.url,
                        'score': hit.score,
                    }
                    for hit in hits[:TOP_RESULTS]
                ],
            },
        )
