"""
Storage interfaces and data models for project persistence.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Protocol, TypeAlias, Union

ChunkType: TypeAlias = Literal["paragraph", "section"]

COLUMN_KEY_SEPARATOR = "+"


@dataclass(frozen=True)
class DocumentChunk:
    """A contiguous, offset-tracked slice of a document's text."""

    id: str
    document_id: str
    chunk_index: int
    chunk_type: ChunkType
    content: str
    start_offset: int
    end_offset: int
    embedding: list[float] | None = None
    embedding_model: str | None = None


@dataclass(frozen=True)
class DocumentRecord:
    """A stored document with its decoded text."""

    id: str
    project_id: str
    filename: str
    file_type: str
    file_size: int
    word_count: int
    content: str
    title: str | None = None
    author: str | None = None
    page_count: int | None = None
    uploaded_at: str = ""
    is_vectorized: bool = False


@dataclass(frozen=True)
class TableSource:
    """A (table, column-set) pair being vectorized."""

    table_name: str
    columns: tuple[str, ...] = ()

    @property
    def column_key(self) -> str:
        return COLUMN_KEY_SEPARATOR.join(self.columns)

    @property
    def source_id(self) -> str:
        return self.table_name


@dataclass(frozen=True)
class DocumentSource:
    """A single document being vectorized."""

    document_id: str

    @property
    def source_id(self) -> str:
        return self.document_id


@dataclass(frozen=True)
class DocumentScope:
    """Search scope over document chunks: one document, or all of a project."""

    project_id: str
    document_id: str | None = None


Source: TypeAlias = Union[TableSource, DocumentSource]
SearchScope: TypeAlias = Union[TableSource, DocumentScope]


@dataclass(frozen=True)
class EmbeddingEntry:
    """One row of an embedding batch."""

    row_id: int | str
    content: str
    embedding: list[float]


@dataclass(frozen=True)
class EmbeddingMatch:
    """A ranked similarity search result."""

    row_id: int | str
    content: str
    score: float
    source_name: str
    document_id: str | None = None


@dataclass(frozen=True)
class EmbeddingStatus:
    """Vectorization state of a source."""

    source_id: str
    is_vectorized: bool
    vectorized_columns: list[str]
    embedding_count: int
    embedding_model: str | None


class StorageBackend(Protocol):
    """Protocol for persistence operations used by vectorization and search."""

    def initialize(self) -> None:
        """Create missing tables and repair legacy layouts."""

    def validate_source(self, source: Source) -> None:
        """Raise if a source is missing, not a base table, or names unknown columns."""

    def count_source_units(self, source: Source) -> int:
        """Count rows or chunks a vectorization run will process."""

    def fetch_source_page(
        self, source: Source, *, limit: int, offset: int
    ) -> list[tuple[int | str, str]]:
        """Return the next page of (id, text) pairs in stable order."""

    def upsert_embeddings(
        self, source: Source, entries: list[EmbeddingEntry], *, model: str
    ) -> int:
        """Atomically write a batch of embeddings. Return count written."""

    def remove_embeddings(self, source: Source) -> None:
        """Delete all embeddings for a source."""

    def search_embeddings(
        self,
        scope: SearchScope,
        query_embedding: list[float],
        *,
        limit: int = 10,
    ) -> list[EmbeddingMatch]:
        """Rank stored vectors in scope by cosine similarity."""

    def count_embeddings(self, scope: SearchScope) -> int:
        """Count embedded records in scope."""

    def embedding_status(self, source: Source) -> EmbeddingStatus:
        """Report whether and how a source is vectorized."""

    def get_document(self, *, document_id: str) -> DocumentRecord:
        """Get a document by id."""

    def mark_document_vectorized(self, *, document_id: str) -> None:
        """Flag a document as fully vectorized."""

    def list_tables(self) -> list[dict[str, Any]]:
        """List user tables with vectorization flags."""
