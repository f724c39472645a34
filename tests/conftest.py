from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from duckbake.connections import ConnectionCache, SharedConnection
from duckbake.storage import DuckDBStorage

_VOCABULARY = ("cat", "dog", "fish", "bird")


def keyword_vector(text: str) -> list[float]:
    """Deterministic bag-of-keywords vector; never all zeros."""
    lowered = text.lower()
    return [float(lowered.count(word)) for word in _VOCABULARY] + [0.01]


class FakeEmbeddingClient:
    """Records calls and returns deterministic embeddings."""

    def __init__(
        self,
        *,
        model: str = "fake-embed",
        vector_fn: Callable[[str], list[float]] = keyword_vector,
        warmup_error: Exception | None = None,
        fail_on_call: int | None = None,
        error: Exception | None = None,
        drop_vectors: int = 0,
        on_embed: Callable[[int], None] | None = None,
    ) -> None:
        self.model = model
        self.vector_fn = vector_fn
        self.warmup_error = warmup_error
        self.fail_on_call = fail_on_call
        self.error = error or RuntimeError("embedding failed")
        self.drop_vectors = drop_vectors
        self.on_embed = on_embed
        self.query_error: Exception | None = None
        self.warmups = 0
        self.calls: list[list[str]] = []
        self.queries: list[str] = []

    def warm_up(self) -> None:
        self.warmups += 1
        if self.warmup_error is not None:
            raise self.warmup_error

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.on_embed is not None:
            self.on_embed(len(self.calls))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise self.error
        vectors = [self.vector_fn(text) for text in texts]
        if self.drop_vectors:
            vectors = vectors[: -self.drop_vectors]
        return vectors

    def embed_query(self, query: str) -> list[float]:
        self.queries.append(query)
        if self.query_error is not None:
            raise self.query_error
        return self.vector_fn(query)


def seed_table(handle: SharedConnection, name: str, rows: list[tuple[int, str | None, str | None]]) -> None:
    """Create a user table ``(id INTEGER, title VARCHAR, notes VARCHAR)``."""
    with handle as conn:
        conn.execute(f'CREATE TABLE "{name}" (id INTEGER, title VARCHAR, notes VARCHAR)')
        if rows:
            conn.executemany(f'INSERT INTO "{name}" VALUES (?, ?, ?)', rows)


@pytest.fixture()
def cache():
    cache = ConnectionCache()
    yield cache
    cache.close_all()


@pytest.fixture()
def handle(cache: ConnectionCache, tmp_path: Path) -> SharedConnection:
    return cache.acquire("proj", str(tmp_path / "proj.duckdb"))


@pytest.fixture()
def storage(handle: SharedConnection) -> DuckDBStorage:
    return DuckDBStorage(handle, project_id="proj")


@pytest.fixture()
def fake_client() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture()
def items_table(handle: SharedConnection) -> str:
    """A 120-row table named ``items``."""
    animals = ("cat", "dog", "fish", "bird")
    rows = [
        (i, f"item {i}", f"a {animals[i % len(animals)]} note")
        for i in range(120)
    ]
    seed_table(handle, "items", rows)
    return "items"
