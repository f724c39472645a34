"""
Embedding client for the local Ollama model server.

Sends batched text -> vector requests to ``POST /api/embed`` and maps
transport failures onto the DuckBake error taxonomy so callers can tell
"service not running" apart from "model still loading" and "bad response".
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx
from loguru import logger

from .config import EmbeddingSettings
from .errors import (
    EmbeddingError,
    EmbeddingResponseError,
    EmbeddingServiceUnavailableError,
    EmbeddingTimeoutError,
)

_WARMUP_INPUT = "warmup"


class EmbeddingClient(Protocol):
    """What the pipeline and search engine need from an embedding service."""

    model: str

    def warm_up(self) -> None:
        """Force the model into memory."""

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per input text, in order."""

    def embed_query(self, query: str) -> list[float]:
        """Return the vector for a single query text."""


class OllamaEmbeddingClient:
    """Generate text embeddings via a local Ollama server."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        keep_alive: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        defaults = EmbeddingSettings.from_env()
        self.base_url = (base_url or defaults.base_url).rstrip("/")
        self.model = model or defaults.model
        self.timeout = timeout or defaults.timeout
        self.keep_alive = keep_alive or defaults.keep_alive
        self._client = client or httpx.Client(base_url=self.base_url)
        self._owns_client = client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def check_status(self) -> dict[str, Any]:
        """Return ``{"connected": bool, "version": str | None}``."""
        try:
            response = self._client.get(self._url("/api/version"), timeout=10.0)
        except httpx.HTTPError:
            return {"connected": False, "version": None}
        if not response.is_success:
            return {"connected": False, "version": None}
        try:
            body = response.json()
        except ValueError:
            body = None
        version = body.get("version") if isinstance(body, dict) else None
        return {"connected": True, "version": version}

    def list_models(self) -> list[dict[str, Any]]:
        """List models installed on the server."""
        try:
            response = self._client.get(self._url("/api/tags"), timeout=10.0)
        except httpx.HTTPError as exc:
            raise EmbeddingServiceUnavailableError(self.base_url) from exc
        if not response.is_success:
            raise EmbeddingServiceUnavailableError(self.base_url)
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            raise EmbeddingResponseError(
                "Model listing",
                model=self.model,
                status_code=response.status_code,
                body="response is not a JSON object",
            )
        models = body.get("models") or []
        return [
            {
                "name": str(m.get("name", "")),
                "size": int(m.get("size", 0)),
                "digest": str(m.get("digest", "")),
                "modified_at": str(m.get("modified_at", "")),
            }
            for m in models
            if isinstance(m, dict)
        ]

    def warm_up(self) -> None:
        """Load the model into memory; the returned vector is discarded."""
        logger.debug(f"Warming up embedding model {self.model}")
        self._post_embed([_WARMUP_INPUT], operation="Model warmup")

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts in a single request.

        Returns the vectors in the same order as *texts*.
        """
        if not texts:
            return []
        return self._post_embed(texts, operation="Embedding request")

    def embed_query(self, query: str) -> list[float]:
        """Embed a single query text for retrieval."""
        vectors = self._post_embed([query], operation="Embedding request")
        if len(vectors) != 1:
            raise EmbeddingResponseError(
                "Embedding request",
                model=self.model,
                body=f"expected 1 embedding, received {len(vectors)}",
            )
        return vectors[0]

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _post_embed(self, texts: list[str], *, operation: str) -> list[list[float]]:
        payload = {"model": self.model, "input": texts, "keep_alive": self.keep_alive}
        try:
            response = self._client.post(
                self._url("/api/embed"), json=payload, timeout=self.timeout
            )
        except httpx.TimeoutException as exc:
            raise EmbeddingTimeoutError(operation, self.timeout) from exc
        except httpx.ConnectError as exc:
            raise EmbeddingServiceUnavailableError(self.base_url) from exc
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"Failed to connect to Ollama: {exc}") from exc

        if not response.is_success:
            raise EmbeddingResponseError(
                operation,
                model=self.model,
                status_code=response.status_code,
                body=response.text,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise EmbeddingResponseError(
                operation,
                model=self.model,
                status_code=response.status_code,
                body=response.text,
            ) from exc

        embeddings = body.get("embeddings") if isinstance(body, dict) else None
        if not isinstance(embeddings, list):
            raise EmbeddingResponseError(
                operation,
                model=self.model,
                status_code=response.status_code,
                body="response has no 'embeddings' list",
            )
        return [[float(value) for value in vector] for vector in embeddings]
