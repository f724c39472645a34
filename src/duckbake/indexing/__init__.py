"""Chunking and vectorization components for DuckBake."""

from .chunker import DocumentChunker, chunk_document
from .pipeline import VectorizationJob, VectorizationPipeline
from .progress import (
    CancellationRegistry,
    JobStatus,
    ProgressBroadcaster,
    VectorizationProgress,
)

__all__ = [
    "DocumentChunker",
    "chunk_document",
    "VectorizationJob",
    "VectorizationPipeline",
    "CancellationRegistry",
    "JobStatus",
    "ProgressBroadcaster",
    "VectorizationProgress",
]
