"""Typed exception hierarchy for DuckBake.

Hierarchy
---------
DuckBakeError (base)
├── StorageError                      – project database errors
│   ├── StorageOpenError
│   ├── ConnectionClosedError
│   ├── TableNotFoundError
│   └── DocumentNotFoundError
└── EmbeddingError                    – embedding service errors
    ├── EmbeddingServiceUnavailableError
    ├── EmbeddingTimeoutError
    ├── EmbeddingResponseError
    └── EmbeddingCountMismatchError

Errors raised by DuckDB itself while reading or writing are not wrapped.
"""

from __future__ import annotations

from typing import Any


class DuckBakeError(Exception):
    """Base exception for DuckBake."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = context or {}


# ── Storage layer ───────────────────────────────────────────────────────


class StorageError(DuckBakeError):
    """Project database errors."""


class StorageOpenError(StorageError):
    """The project database file could not be opened."""


class ConnectionClosedError(StorageError):
    """A shared connection was used after its project was closed."""


class TableNotFoundError(StorageError):
    """The requested user table does not exist."""

    def __init__(self, table_name: str) -> None:
        super().__init__(f"Table not found: {table_name}", {"table_name": table_name})
        self.table_name = table_name


class DocumentNotFoundError(StorageError):
    """The requested document does not exist."""

    def __init__(self, document_id: str) -> None:
        super().__init__(
            f"Document not found: {document_id}", {"document_id": document_id}
        )
        self.document_id = document_id


# ── Embedding service ───────────────────────────────────────────────────


class EmbeddingError(DuckBakeError):
    """Embedding generation errors."""


class EmbeddingServiceUnavailableError(EmbeddingError):
    """The embedding service refused the connection."""

    def __init__(self, base_url: str) -> None:
        super().__init__(
            f"Embedding service not available at {base_url}. "
            "Start Ollama and try again.",
            {"base_url": base_url},
        )
        self.base_url = base_url


class EmbeddingTimeoutError(EmbeddingError):
    """An embedding or warm-up request exceeded the configured timeout."""

    def __init__(self, operation: str, timeout: float) -> None:
        super().__init__(
            f"{operation} timed out after {timeout:g} seconds. "
            "The model may still be loading - try again.",
            {"operation": operation, "timeout": timeout},
        )
        self.timeout = timeout


class EmbeddingResponseError(EmbeddingError):
    """Non-success status or malformed body from the embedding service."""

    def __init__(
        self,
        operation: str,
        *,
        model: str,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        excerpt = body.strip()[:500]
        status = f" ({status_code})" if status_code is not None else ""
        super().__init__(
            f"{operation} failed{status}: {excerpt or 'no response body'}. "
            f"Make sure '{model}' model is installed (ollama pull {model})",
            {"status_code": status_code, "model": model},
        )
        self.status_code = status_code
        self.body = excerpt
        self.model = model


class EmbeddingCountMismatchError(EmbeddingError):
    """The service returned a different number of vectors than texts sent."""

    def __init__(self, expected: int, received: int) -> None:
        super().__init__(
            f"Embedding service returned {received} vectors for {expected} inputs",
            {"expected": expected, "received": received},
        )
        self.expected = expected
        self.received = received
