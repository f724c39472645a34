"""
Vectorization pipeline orchestration.

A job walks one source (a table column set, or a document's chunks) page by
page: warm up the model, drop previous embeddings, then embed and upsert one
batch at a time until the source is exhausted or cancellation is requested.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from loguru import logger

from ..config import BatchSettings
from ..embeddings import EmbeddingClient
from ..errors import EmbeddingCountMismatchError
from ..storage import (
    DocumentSource,
    EmbeddingEntry,
    Source,
    StorageBackend,
    TableSource,
)
from .progress import (
    CancellationRegistry,
    JobStatus,
    ProgressBroadcaster,
    VectorizationProgress,
)


@dataclass
class VectorizationJob:
    """Mutable state of one vectorization run."""

    source_id: str
    source_name: str
    total_units: int
    offset: int = 0
    processed: int = 0
    status: JobStatus = "pending"
    error: str | None = None


class VectorizationPipeline:
    """Compute and persist embeddings for tables and documents."""

    def __init__(
        self,
        storage: StorageBackend,
        embedding_client: EmbeddingClient,
        *,
        broadcaster: ProgressBroadcaster | None = None,
        cancellations: CancellationRegistry | None = None,
        batch_settings: BatchSettings | None = None,
    ) -> None:
        self.storage = storage
        self.embedding_client = embedding_client
        self.broadcaster = broadcaster or ProgressBroadcaster()
        self.cancellations = cancellations or CancellationRegistry()
        self.batch_settings = batch_settings or BatchSettings()

    def vectorize_table(self, table_name: str, columns: list[str]) -> VectorizationJob:
        """Embed the concatenated *columns* of every row in *table_name*."""
        if not columns:
            raise ValueError("At least one column is required to vectorize a table.")
        source = TableSource(table_name=table_name, columns=tuple(columns))
        return self._run(
            source,
            source_name=table_name,
            batch_size=self.batch_settings.table_batch_size,
        )

    def vectorize_document(self, document_id: str) -> VectorizationJob:
        """Embed every chunk of a stored document and mark it vectorized."""
        document = self.storage.get_document(document_id=document_id)
        source = DocumentSource(document_id=document_id)
        return self._run(
            source,
            source_name=document.filename,
            batch_size=self.batch_settings.document_batch_size,
            on_complete=lambda: self.storage.mark_document_vectorized(
                document_id=document_id
            ),
        )

    def _run(
        self,
        source: Source,
        *,
        source_name: str,
        batch_size: int,
        on_complete: Callable[[], None] | None = None,
    ) -> VectorizationJob:
        self.storage.validate_source(source)
        total = self.storage.count_source_units(source)
        job = VectorizationJob(
            source_id=source.source_id, source_name=source_name, total_units=total
        )
        logger.info(
            f"Vectorizing {source_name} ({total} units) with {self.embedding_client.model}"
        )

        try:
            self._transition(job, "loading_model")
            self.embedding_client.warm_up()

            self.storage.remove_embeddings(source)
            self.cancellations.clear(job.source_id)
            self._transition(job, "processing")

            while True:
                if self.cancellations.consume(job.source_id):
                    logger.info(f"Vectorization of {source_name} cancelled at {job.processed}")
                    self._transition(job, "cancelled")
                    return job

                page = self.storage.fetch_source_page(
                    source, limit=batch_size, offset=job.offset
                )
                if not page:
                    break

                ids = [row_id for row_id, _ in page]
                texts = [text for _, text in page]
                vectors = self.embedding_client.embed_texts(texts)
                if len(vectors) != len(ids):
                    raise EmbeddingCountMismatchError(len(ids), len(vectors))

                entries = [
                    EmbeddingEntry(row_id=row_id, content=text, embedding=vector)
                    for row_id, text, vector in zip(ids, texts, vectors)
                ]
                written = self.storage.upsert_embeddings(
                    source, entries, model=self.embedding_client.model
                )
                logger.debug(
                    f"{source_name}: wrote {written} embeddings at offset {job.offset}"
                )
                job.offset += batch_size
                job.processed += len(page)
                self._transition(job, "processing")

            if on_complete is not None:
                on_complete()
            self._transition(job, "completed")
            logger.info(f"Vectorization of {source_name} completed ({job.processed} units)")
            return job
        except Exception as exc:
            job.error = str(exc)
            logger.error(f"Vectorization of {source_name} failed: {exc}")
            self._transition(job, "error")
            raise

    def _transition(self, job: VectorizationJob, status: JobStatus) -> None:
        job.status = status
        self.broadcaster.publish(
            VectorizationProgress(
                source_id=job.source_id,
                source_name=job.source_name,
                total_units=job.total_units,
                processed_units=job.processed,
                status=status,
                error=job.error,
            )
        )
