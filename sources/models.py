"""Core data model shared by ingestion and retrieval."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

MetadataValue = Union[str, int, float, bool, datetime, List[str]]
Metadata = Dict[str, Any]

DEFAULT_TYPE = "content"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Document:
    """A piece of content to embed and search.

    Only ``id``, ``content`` and ``metadata['type']`` are required; every other
    metadata key is passed through untouched and returned with search results.
    """
    id: str
    content: str
    metadata: Metadata = field(default_factory=dict)

    def __post_init__(self):
        if not self.id:
            raise ValueError("Document id cannot be empty")
        self.id = str(self.id)
        if self.content is None:
            raise ValueError(f"Document {self.id} has no content")
        if not self.metadata.get('type'):
            rest = {k: v for k, v in self.metadata.items() if k != 'type'}
            self.metadata = {'type': DEFAULT_TYPE, **rest}

    @property
    def type(self) -> str:
        return self.metadata['type']

    @property
    def title(self) -> Optional[str]:
        return self.metadata.get('title')

    @property
    def url(self) -> Optional[str]:
        return self.metadata.get('url')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Document':
        return cls(
            id=data['id'],
            content=data['content'],
            metadata=dict(data.get('metadata') or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'content': self.content, 'metadata': dict(self.metadata)}


@dataclass
class StoredDocument(Document):
    """A document as persisted by a vector store."""
    tenant_id: str = ""
    agent_id: Optional[str] = None
    embedding: List[float] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> tuple:
        """Upsert identity: shared and agent-private copies never collide."""
        return (self.tenant_id, self.agent_id, self.id)

    @property
    def is_shared(self) -> bool:
        return self.agent_id is None


@dataclass
class SearchHit:
    """A stored document annotated with its (possibly boosted) score."""
    document: StoredDocument
    score: float


@dataclass
class IngestError:
    id: str
    error: str

    def to_dict(self) -> Dict[str, str]:
        return {'id': self.id, 'error': self.error}


@dataclass
class IngestResult:
    """Outcome of an ingestion call. Not persisted."""
    success: bool = True
    indexed: int = 0
    failed: int = 0
    errors: List[IngestError] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_error(self, item_id: str, error: Union[str, Exception]) -> None:
        self.errors.append(IngestError(id=item_id, error=str(error)))
        self.failed = len(self.errors)
        self.success = False


@dataclass
class URLIngestResult(IngestResult):
    source_url: str = ""
    fetched_at: datetime = field(default_factory=utcnow)
    documents_fetched: int = 0


@dataclass
class CrawlResult(IngestResult):
    urls_crawled: int = 0
    urls_skipped: int = 0
    urls_failed: int = 0
    crawled_at: datetime = field(default_factory=utcnow)


@dataclass
class BulkOperation:
    """One step of a mixed bulk request."""
    type: str  # insert | update | delete
    id: str
    document: Optional[Union[Document, Dict[str, Any]]] = None

    def __post_init__(self):
        if self.type not in ('insert', 'update', 'delete'):
            raise ValueError(f"Unknown bulk operation type: {self.type}")


@dataclass
class BulkError:
    id: str
    operation: str
    error: str


@dataclass
class BulkResult:
    success: bool = True
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    failed: int = 0
    errors: List[BulkError] = field(default_factory=list)


@dataclass
class RetrievedContext:
    """Formatted context for an LLM prompt plus structured debugging data."""
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
