"""Similarity search over vectorized tables and documents."""

from .semantic import SearchHit, SemanticSearchEngine, normalize_limit

__all__ = [
    "SearchHit",
    "SemanticSearchEngine",
    "normalize_limit",
]
