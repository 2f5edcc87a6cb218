"""Shared fixtures: a deterministic embedding service and a scripted HTTP fetcher."""

import re
import zlib
from typing import Dict, List, Optional, Union

import pytest

from config.settings import RAGConfig
from contentfoundry import ContentFoundry
from indexer.store import InMemoryVectorStore
from pipelines.http import FetchError, FetchResponse

DIMENSION = 64


class FakeEmbedder:
    """Bag-of-words embeddings: each token bumps one hashed dimension.

    Texts registered in ``vectors`` get that exact vector instead, which lets
    tests pin similarity scores precisely.
    """

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, dimension: int = DIMENSION):
        self.vectors = dict(vectors or {})
        self.dimension = dimension
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if text in self.vectors:
            return list(self.vectors[text])

        vector = [0.0] * self.dimension
        for token in re.findall(r'\w+', text.lower()):
            vector[zlib.crc32(token.encode()) % self.dimension] += 1.0
        return vector


class FakeFetcher:
    """Serves canned responses keyed by URL and records every request."""

    def __init__(self, routes: Optional[Dict[str, Union[FetchResponse, Exception]]] = None):
        self.routes = dict(routes or {})
        self.requests: List[Dict] = []
        self.closed = False

    def add(self, url: str, body: Union[str, bytes], content_type: str = 'text/html; charset=utf-8',
            status: int = 200) -> None:
        if isinstance(body, str):
            body = body.encode('utf-8')
        self.routes[url] = FetchResponse(url=url, status=status, body=body,
                                         headers={'Content-Type': content_type})

    def requested_urls(self) -> List[str]:
        return [request['url'] for request in self.requests]

    async def fetch(self, url: str, headers=None, timeout=None) -> FetchResponse:
        self.requests.append({'url': url, 'headers': dict(headers or {}), 'timeout': timeout})

        route = self.routes.get(url)
        if route is None:
            raise FetchError(f"HTTP 404 fetching {url}", url, status=404)
        if isinstance(route, Exception):
            raise route
        if not route.ok:
            raise FetchError(f"HTTP {route.status} fetching {url}", url, status=route.status)
        return route

    async def close(self):
        self.closed = True


def page_html(title: str, body: str) -> str:
    return (
        f"<html><head><title>{title}</title></head><body>"
        f"<nav>Home | About | Contact</nav>"
        f"<article><h1>{title}</h1><p>{body}</p></article>"
        f"<footer>Copyright</footer></body></html>"
    )


LONG_TEXT = (
    "This page explains our approach to building durable software for clients "
    "across many industries, with a focus on clarity and maintainability."
)


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def store():
    return InMemoryVectorStore()


@pytest.fixture
def rag_config():
    return RAGConfig(tenant_id="tenant-a", min_score=0.7)


@pytest.fixture
def engine(rag_config, fake_embedder, fake_fetcher, store):
    return ContentFoundry(rag_config, embedding_service=fake_embedder, store=store, fetcher=fake_fetcher)
