"""CLI tests for table, document and search commands."""

from __future__ import annotations

from pathlib import Path

import pytest
from rich.console import Console
from typer.testing import CliRunner

import duckbake.main as main_module
from duckbake.config import resolve_project_db_path
from duckbake.connections import ConnectionCache
from duckbake.service import DuckBakeService

from conftest import FakeEmbeddingClient, seed_table


@pytest.fixture()
def data_dir(tmp_path: Path, monkeypatch) -> str:
    data_dir = str(tmp_path / "data")
    cache = ConnectionCache()
    handle = cache.acquire("proj", resolve_project_db_path("proj", data_dir))
    seed_table(handle, "pets", [(i, f"pet {i}", ("cat", "dog")[i % 2]) for i in range(12)])
    cache.close_all()

    client = FakeEmbeddingClient()
    monkeypatch.setattr(main_module, "console", Console(width=200))
    monkeypatch.setattr(
        main_module,
        "build_service",
        lambda requested: DuckBakeService(data_dir=requested, embedding_client=client),
    )
    return data_dir


def _invoke(data_dir: str, *args: str):
    return CliRunner().invoke(main_module.app, ["--data-dir", data_dir, *args])


def test_tables_command_lists_user_tables(data_dir: str) -> None:
    result = _invoke(data_dir, "tables", "proj")

    assert result.exit_code == 0
    assert "pets" in result.stdout


def test_vectorize_then_search(data_dir: str) -> None:
    vectorized = _invoke(data_dir, "vectorize-table", "proj", "pets", "-c", "title", "-c", "notes")
    searched = _invoke(data_dir, "search", "proj", "pets", "dog", "--limit", "3")

    assert vectorized.exit_code == 0
    assert "completed" in vectorized.stdout
    assert "12/12" in vectorized.stdout
    assert searched.exit_code == 0
    assert "Results for" in searched.stdout
    assert "dog" in searched.stdout


def test_vectorize_defaults_to_text_columns(data_dir: str) -> None:
    result = _invoke(data_dir, "vectorize-table", "proj", "pets")
    tables = _invoke(data_dir, "tables", "proj")

    assert result.exit_code == 0
    assert "title+notes" in tables.stdout


def test_missing_table_exits_with_error_panel(data_dir: str) -> None:
    result = _invoke(data_dir, "vectorize-table", "proj", "nope", "-c", "title")

    assert result.exit_code == 1
    assert "Table not found: nope" in result.stdout


def test_search_without_embeddings_reports_no_results(data_dir: str) -> None:
    result = _invoke(data_dir, "search", "proj", "pets", "cat")

    assert result.exit_code == 0
    assert "No results." in result.stdout


def test_document_commands(data_dir: str, tmp_path: Path) -> None:
    doc = tmp_path / "notes.md"
    doc.write_text("# Fish\nFish swim.\n# Birds\nBirds sing.\n", encoding="utf-8")

    added = _invoke(data_dir, "add-document", "proj", str(doc))
    listed = _invoke(data_dir, "documents", "proj")

    assert added.exit_code == 0
    assert "Chunks: 2" in added.stdout

    service = DuckBakeService(data_dir=data_dir, embedding_client=FakeEmbeddingClient())
    try:
        document_id = service.list_documents("proj")[0]["id"]
    finally:
        service.close()

    vectorized = _invoke(data_dir, "vectorize-document", "proj", document_id)
    searched = _invoke(data_dir, "search-documents", "proj", "bird")
    removed = _invoke(data_dir, "remove", "proj", document_id, "--document", "--delete")

    assert listed.exit_code == 0
    assert "notes.md" in listed.stdout
    assert vectorized.exit_code == 0
    assert "completed" in vectorized.stdout
    assert searched.exit_code == 0
    assert "notes.md" in searched.stdout
    assert removed.exit_code == 0
    assert "Deleted document" in removed.stdout


def test_add_document_missing_file(data_dir: str, tmp_path: Path) -> None:
    result = _invoke(data_dir, "add-document", "proj", str(tmp_path / "absent.txt"))

    assert result.exit_code == 1
    assert "No such file" in result.stdout


def test_status_command(data_dir: str) -> None:
    result = _invoke(data_dir, "status")

    assert result.exit_code == 0
    assert "Connected" in result.stdout
    assert "fake-embed" in result.stdout


def test_remove_delete_requires_document_flag(data_dir: str) -> None:
    _invoke(data_dir, "vectorize-table", "proj", "pets", "-c", "notes")

    result = _invoke(data_dir, "remove", "proj", "pets", "--delete")
    tables = _invoke(data_dir, "tables", "proj")

    assert result.exit_code == 1
    assert "--delete only applies to documents" in result.stdout
    assert "notes" in tables.stdout.split("pets", 1)[1]
