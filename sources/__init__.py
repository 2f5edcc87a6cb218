"""Sources package for ContentFoundry.

Provides the document model, format parsers, the generic source adapter,
CMS presets and YAML source definitions.
"""

from .adapter import (
    DataTransform,
    FieldMapping,
    URLSource,
    URLSourceAuth,
    build_auth_headers,
    source_to_documents,
    to_documents,
)
from .loader import SourceDefinition, SourceLoader
from .models import (
    BulkOperation,
    BulkResult,
    CrawlResult,
    Document,
    IngestResult,
    RetrievedContext,
    SearchHit,
    StoredDocument,
    URLIngestResult,
)
from .parsers import ParseError
from .paths import extract_by_path

__all__ = [
    'BulkOperation',
    'BulkResult',
    'CrawlResult',
    'DataTransform',
    'Document',
    'FieldMapping',
    'IngestResult',
    'ParseError',
    'RetrievedContext',
    'SearchHit',
    'SourceDefinition',
    'SourceLoader',
    'StoredDocument',
    'URLIngestResult',
    'URLSource',
    'URLSourceAuth',
    'build_auth_headers',
    'extract_by_path',
    'source_to_documents',
    'to_documents',
]
