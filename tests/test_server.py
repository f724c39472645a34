"""Tests for the REST and WebSocket endpoints."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

import duckbake.server as server_module
from duckbake.config import resolve_project_db_path
from duckbake.errors import EmbeddingServiceUnavailableError, EmbeddingTimeoutError
from duckbake.server import app
from duckbake.service import DuckBakeService

from conftest import FakeEmbeddingClient, seed_table


@pytest.fixture()
def service(tmp_path: Path):
    client = FakeEmbeddingClient()
    service = DuckBakeService(data_dir=str(tmp_path), embedding_client=client)
    handle = service.cache.acquire("proj", resolve_project_db_path("proj", str(tmp_path)))
    seed_table(
        handle,
        "pets",
        [(i, f"pet {i}", ("cat", "dog", "fish")[i % 3]) for i in range(30)],
    )
    server_module.set_service(service)
    yield service
    server_module.set_service(None)
    service.close()


@pytest.fixture()
def client(service: DuckBakeService) -> TestClient:
    return TestClient(app)


def test_list_tables_and_text_columns(client: TestClient) -> None:
    tables = client.get("/api/projects/proj/tables")
    columns = client.get("/api/projects/proj/tables/pets/text-columns")

    assert tables.status_code == 200
    assert [t["name"] for t in tables.json()["tables"]] == ["pets"]
    assert columns.json()["columns"] == ["title", "notes"]


def test_vectorize_status_and_search(client: TestClient) -> None:
    started = client.post(
        "/api/projects/proj/tables/pets/vectorize", json={"columns": ["title", "notes"]}
    )
    status = client.get("/api/projects/proj/tables/pets/status")
    search = client.post(
        "/api/projects/proj/tables/pets/search", json={"query": "fish", "limit": 3}
    )

    assert started.status_code == 202
    assert started.json() == {"sourceId": "pets", "status": "pending"}
    assert status.json()["embedding_count"] == 30
    assert status.json()["vectorized_columns"] == ["title+notes"]
    hits = search.json()["hits"]
    assert len(hits) == 3
    assert all(hit["content"].endswith("fish") for hit in hits)


def test_remove_table_embeddings(client: TestClient) -> None:
    client.post("/api/projects/proj/tables/pets/vectorize", json={"columns": ["notes"]})

    response = client.delete("/api/projects/proj/tables/pets/embeddings")
    status = client.get("/api/projects/proj/tables/pets/status")

    assert response.status_code == 200
    assert status.json()["is_vectorized"] is False


def test_vectorize_missing_table_is_404(client: TestClient) -> None:
    response = client.post(
        "/api/projects/proj/tables/nope/vectorize", json={"columns": ["title"]}
    )

    assert response.status_code == 404
    assert response.json() == {"error": "Table not found: nope"}


def test_vectorize_without_columns_is_400(client: TestClient) -> None:
    response = client.post("/api/projects/proj/tables/pets/vectorize", json={"columns": []})

    assert response.status_code == 400


def test_vectorize_unknown_column_is_400_and_keeps_embeddings(client: TestClient) -> None:
    client.post("/api/projects/proj/tables/pets/vectorize", json={"columns": ["notes"]})

    response = client.post(
        "/api/projects/proj/tables/pets/vectorize", json={"columns": ["nots"]}
    )
    status = client.get("/api/projects/proj/tables/pets/status")

    assert response.status_code == 400
    assert "nots" in response.json()["error"]
    assert status.json()["embedding_count"] == 30


def test_search_with_nothing_vectorized_is_empty(client: TestClient, service) -> None:
    response = client.post("/api/projects/proj/tables/pets/search", json={"query": "cat"})

    assert response.status_code == 200
    assert response.json()["hits"] == []
    assert service.embedding_client.queries == []


@pytest.mark.parametrize(
    ("error", "status_code"),
    [
        (EmbeddingServiceUnavailableError("http://localhost:11434"), 503),
        (EmbeddingTimeoutError("Embedding request", 300), 504),
    ],
)
def test_embedding_failures_map_to_gateway_statuses(client: TestClient, service, error, status_code) -> None:
    client.post("/api/projects/proj/tables/pets/vectorize", json={"columns": ["notes"]})
    service.embedding_client.query_error = error

    response = client.post("/api/projects/proj/tables/pets/search", json={"query": "cat"})

    assert response.status_code == status_code
    assert response.json()["error"] == str(error)


def test_document_endpoints(client: TestClient) -> None:
    added = client.post(
        "/api/projects/proj/documents",
        json={"filename": "guide.md", "content": "# Cats\nAll about cat care.\n# Dogs\nDog walking."},
    )
    document_id = added.json()["id"]

    listed = client.get("/api/projects/proj/documents")
    chunks = client.get(f"/api/projects/proj/documents/{document_id}/chunks")
    started = client.post(f"/api/projects/proj/documents/{document_id}/vectorize")
    status = client.get(f"/api/projects/proj/documents/{document_id}/status")
    search = client.post("/api/projects/proj/documents/search", json={"query": "dog"})

    assert added.status_code == 200
    assert added.json()["file_type"] == "md"
    assert "content" not in added.json()
    assert [d["filename"] for d in listed.json()["documents"]] == ["guide.md"]
    assert [c["chunk_type"] for c in chunks.json()["chunks"]] == ["section", "section"]
    assert started.status_code == 202
    assert status.json()["embedding_count"] == 2
    assert search.json()["hits"][0]["content"] == "# Dogs\nDog walking."
    assert search.json()["hits"][0]["source_name"] == "guide.md"

    document = client.get(f"/api/projects/proj/documents/{document_id}")
    assert document.json()["is_vectorized"] is True

    deleted = client.delete(f"/api/projects/proj/documents/{document_id}")
    missing = client.get(f"/api/projects/proj/documents/{document_id}")
    assert deleted.status_code == 200
    assert missing.status_code == 404


def test_invalid_project_id_is_400(client: TestClient) -> None:
    response = client.get("/api/projects/a%5Cb/tables")

    assert response.status_code == 400


def test_cancel_endpoint_sets_flag(client: TestClient, service) -> None:
    response = client.post("/api/vectorize/pets/cancel")

    assert response.status_code == 200
    assert service.cancellations.is_requested("pets")


def test_progress_websocket_streams_events(client: TestClient) -> None:
    with client.websocket_connect("/ws/progress") as websocket:
        client.post("/api/projects/proj/tables/pets/vectorize", json={"columns": ["notes"]})
        events = []
        while True:
            event = websocket.receive_json()
            events.append(event)
            if event["status"] in {"completed", "cancelled", "error"}:
                break

    assert events[0]["status"] == "loading_model"
    assert events[-1] == {
        "sourceId": "pets",
        "sourceName": "pets",
        "totalUnits": 30,
        "processedUnits": 30,
        "status": "completed",
        "error": None,
    }


def test_ollama_status_reports_model(client: TestClient) -> None:
    response = client.get("/api/ollama/status")

    assert response.json() == {"connected": True, "version": None, "model": "fake-embed"}
