"""
Vector-based semantic search engine.

Embeds a query and ranks stored embeddings in a scope by cosine similarity.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from ..embeddings import EmbeddingClient
from ..storage import SearchScope, StorageBackend

DEFAULT_SEARCH_LIMIT = 10


@dataclass(frozen=True)
class SearchHit:
    """Ranked similarity hit."""

    row_id: int | str
    content: str
    score: float
    source_name: str
    document_id: str | None = None


def normalize_limit(limit: int | None) -> int:
    """Clamp a requested result count to a positive integer."""
    if limit is None:
        return DEFAULT_SEARCH_LIMIT
    return max(int(limit), 1)


class SemanticSearchEngine:
    """Embed a query and search stored embeddings."""

    def __init__(
        self,
        storage: StorageBackend,
        embedding_client: EmbeddingClient,
    ) -> None:
        self.storage = storage
        self.embedding_client = embedding_client

    def search(
        self,
        scope: SearchScope,
        query: str,
        limit: int | None = DEFAULT_SEARCH_LIMIT,
    ) -> list[SearchHit]:
        """Return hits sorted by descending cosine similarity.

        An empty scope returns ``[]`` without contacting the embedding service.
        """
        normalized_limit = normalize_limit(limit)
        if self.storage.count_embeddings(scope) == 0:
            logger.debug(f"No embeddings in scope {scope}; skipping query embedding")
            return []

        query_embedding = self.embedding_client.embed_query(query)
        matches = self.storage.search_embeddings(
            scope, query_embedding, limit=normalized_limit
        )
        return [
            SearchHit(
                row_id=match.row_id,
                content=match.content,
                score=match.score,
                source_name=match.source_name,
                document_id=match.document_id,
            )
            for match in matches
        ]
