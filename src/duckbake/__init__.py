"""
DuckBake - local semantic search over DuckDB project data.

This package computes text embeddings for table columns and documents stored
in a per-project DuckDB database, using a local Ollama model server, and
ranks them by cosine similarity against free-text queries.

Example usage:
    >>> from duckbake import DuckBakeService
    >>> service = DuckBakeService()
    >>> service.vectorize_table("sales", "customers", ["name", "notes"])
    >>> hits = service.search_table("sales", "customers", "unhappy enterprise client")
"""

from .connections import ConnectionCache, SharedConnection
from .embeddings import EmbeddingClient, OllamaEmbeddingClient
from .errors import (
    DuckBakeError,
    EmbeddingError,
    EmbeddingServiceUnavailableError,
    EmbeddingTimeoutError,
    StorageError,
)
from .indexing import (
    CancellationRegistry,
    DocumentChunker,
    ProgressBroadcaster,
    VectorizationPipeline,
    VectorizationProgress,
)
from .search import SearchHit, SemanticSearchEngine
from .service import DuckBakeService
from .storage import DuckDBStorage

__all__ = [
    # Service
    "DuckBakeService",
    # Connections and storage
    "ConnectionCache",
    "SharedConnection",
    "DuckDBStorage",
    # Embeddings
    "EmbeddingClient",
    "OllamaEmbeddingClient",
    # Vectorization
    "CancellationRegistry",
    "DocumentChunker",
    "ProgressBroadcaster",
    "VectorizationPipeline",
    "VectorizationProgress",
    # Search
    "SearchHit",
    "SemanticSearchEngine",
    # Errors
    "DuckBakeError",
    "EmbeddingError",
    "EmbeddingServiceUnavailableError",
    "EmbeddingTimeoutError",
    "StorageError",
]
