"""
Project-level facade wiring storage, embeddings, vectorization and search.
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any

from loguru import logger

from .config import BatchSettings, resolve_data_dir, resolve_project_db_path
from .connections import ConnectionCache
from .embeddings import EmbeddingClient, OllamaEmbeddingClient
from .indexing import (
    CancellationRegistry,
    DocumentChunker,
    ProgressBroadcaster,
    VectorizationJob,
    VectorizationPipeline,
)
from .search import SearchHit, SemanticSearchEngine
from .storage import (
    DocumentChunk,
    DocumentRecord,
    DocumentScope,
    DocumentSource,
    DuckDBStorage,
    EmbeddingStatus,
    TableSource,
)


class DuckBakeService:
    """Entry point for every project operation.

    One instance owns the connection cache, the cancellation registry and the
    progress broadcaster, so all jobs in the process share them.
    """

    def __init__(
        self,
        *,
        data_dir: str | None = None,
        cache: ConnectionCache | None = None,
        embedding_client: EmbeddingClient | None = None,
        broadcaster: ProgressBroadcaster | None = None,
        cancellations: CancellationRegistry | None = None,
        batch_settings: BatchSettings | None = None,
        chunker: DocumentChunker | None = None,
    ) -> None:
        self.data_dir = resolve_data_dir(data_dir)
        self.cache = cache or ConnectionCache()
        self._owns_client = embedding_client is None
        self.embedding_client: EmbeddingClient = embedding_client or OllamaEmbeddingClient()
        self.broadcaster = broadcaster or ProgressBroadcaster()
        self.cancellations = cancellations or CancellationRegistry()
        self.batch_settings = batch_settings or BatchSettings.from_env()
        self.chunker = chunker or DocumentChunker()

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def storage(self, project_id: str) -> DuckDBStorage:
        db_path = resolve_project_db_path(project_id, self.data_dir)
        handle = self.cache.acquire(project_id, db_path)
        return DuckDBStorage(handle, project_id=project_id)

    def pipeline(self, project_id: str) -> VectorizationPipeline:
        return VectorizationPipeline(
            self.storage(project_id),
            self.embedding_client,
            broadcaster=self.broadcaster,
            cancellations=self.cancellations,
            batch_settings=self.batch_settings,
        )

    def search_engine(self, project_id: str) -> SemanticSearchEngine:
        return SemanticSearchEngine(self.storage(project_id), self.embedding_client)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def list_tables(self, project_id: str) -> list[dict[str, Any]]:
        return self.storage(project_id).list_tables()

    def get_text_columns(self, project_id: str, table_name: str) -> list[str]:
        return self.storage(project_id).get_text_columns(table_name)

    def validate_table_source(
        self, project_id: str, table_name: str, columns: list[str]
    ) -> None:
        """Raise unless *columns* of *table_name* can be vectorized."""
        self.storage(project_id).validate_source(TableSource(table_name, tuple(columns)))

    def vectorize_table(
        self, project_id: str, table_name: str, columns: list[str]
    ) -> VectorizationJob:
        return self.pipeline(project_id).vectorize_table(table_name, columns)

    def table_status(self, project_id: str, table_name: str) -> EmbeddingStatus:
        return self.storage(project_id).embedding_status(TableSource(table_name))

    def remove_table_embeddings(self, project_id: str, table_name: str) -> None:
        self.storage(project_id).remove_embeddings(TableSource(table_name))

    def search_table(
        self,
        project_id: str,
        table_name: str,
        query: str,
        limit: int | None = None,
        columns: list[str] | None = None,
    ) -> list[SearchHit]:
        scope = TableSource(table_name, tuple(columns or ()))
        return self.search_engine(project_id).search(scope, query, limit)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add_document(
        self,
        project_id: str,
        *,
        filename: str,
        content: str,
        file_type: str | None = None,
        file_size: int | None = None,
        title: str | None = None,
        author: str | None = None,
        page_count: int | None = None,
    ) -> DocumentRecord:
        """Store decoded document text and chunk it right away."""
        kind = (file_type or Path(filename).suffix.lstrip(".") or "txt").lower()
        document = DocumentRecord(
            id=str(uuid.uuid4()),
            project_id=project_id,
            filename=filename,
            file_type=kind,
            file_size=file_size if file_size is not None else len(content.encode("utf-8")),
            word_count=len(content.split()),
            content=content,
            title=title,
            author=author,
            page_count=page_count,
        )
        chunks = self.chunker.chunk_document(document.id, content, kind)
        storage = self.storage(project_id)
        storage.insert_document(document, chunks)
        logger.info(f"Added document {filename} ({len(chunks)} chunks) to {project_id}")
        return storage.get_document(document_id=document.id)

    def list_documents(self, project_id: str) -> list[dict[str, Any]]:
        return self.storage(project_id).list_documents(project_id=project_id)

    def get_document(self, project_id: str, document_id: str) -> DocumentRecord:
        return self.storage(project_id).get_document(document_id=document_id)

    def get_document_chunks(
        self, project_id: str, document_id: str, limit: int | None = None
    ) -> list[DocumentChunk]:
        return self.storage(project_id).get_document_chunks(
            document_id=document_id, limit=limit
        )

    def delete_document(self, project_id: str, document_id: str) -> None:
        storage = self.storage(project_id)
        storage.get_document(document_id=document_id)
        storage.delete_document(document_id=document_id)

    def vectorize_document(self, project_id: str, document_id: str) -> VectorizationJob:
        return self.pipeline(project_id).vectorize_document(document_id)

    def document_status(self, project_id: str, document_id: str) -> EmbeddingStatus:
        storage = self.storage(project_id)
        storage.get_document(document_id=document_id)
        return storage.embedding_status(DocumentSource(document_id))

    def remove_document_embeddings(self, project_id: str, document_id: str) -> None:
        self.storage(project_id).remove_embeddings(DocumentSource(document_id))

    def search_documents(
        self,
        project_id: str,
        query: str,
        limit: int | None = None,
        document_id: str | None = None,
    ) -> list[SearchHit]:
        scope = DocumentScope(project_id=project_id, document_id=document_id)
        return self.search_engine(project_id).search(scope, query, limit)

    # ------------------------------------------------------------------
    # Jobs and lifecycle
    # ------------------------------------------------------------------

    def embedding_service_status(self) -> dict[str, Any]:
        """Return ``{"connected", "version", "model"}`` for the embedding service."""
        if isinstance(self.embedding_client, OllamaEmbeddingClient):
            status = self.embedding_client.check_status()
        else:
            status = {"connected": True, "version": None}
        return {**status, "model": self.embedding_client.model}

    def list_models(self) -> list[dict[str, Any]]:
        if not isinstance(self.embedding_client, OllamaEmbeddingClient):
            return [{"name": self.embedding_client.model}]
        return self.embedding_client.list_models()

    def cancel(self, source_id: str) -> None:
        """Request cancellation of the running job for a table or document."""
        self.cancellations.request(source_id)

    def close_project(self, project_id: str) -> None:
        """Close the project's connection so its database file can be copied."""
        self.cache.release(project_id)

    def delete_project_database(self, project_id: str) -> None:
        self.cache.release(project_id)
        db_path = Path(resolve_project_db_path(project_id, self.data_dir))
        for path in (db_path, db_path.with_name(db_path.name + ".wal")):
            path.unlink(missing_ok=True)
        logger.info(f"Deleted database for project {project_id}")

    def close(self) -> None:
        self.cache.close_all()
        if self._owns_client and isinstance(self.embedding_client, OllamaEmbeddingClient):
            self.embedding_client.close()
