"""Storage backends for DuckBake projects."""

from .base import (
    DocumentChunk,
    DocumentRecord,
    DocumentScope,
    DocumentSource,
    EmbeddingEntry,
    EmbeddingMatch,
    EmbeddingStatus,
    SearchScope,
    Source,
    StorageBackend,
    TableSource,
)
from .duckdb import DuckDBStorage

__all__ = [
    "DocumentChunk",
    "DocumentRecord",
    "DocumentScope",
    "DocumentSource",
    "EmbeddingEntry",
    "EmbeddingMatch",
    "EmbeddingStatus",
    "SearchScope",
    "Source",
    "StorageBackend",
    "TableSource",
    "DuckDBStorage",
]
