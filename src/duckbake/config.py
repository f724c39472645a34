"""
Configuration helpers for project storage and the embedding service.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


DEFAULT_DATA_DIR = "~/.duckbake"
ENV_DATA_DIR = "DUCKBAKE_DATA_DIR"

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"
DEFAULT_EMBEDDING_TIMEOUT = 300.0
DEFAULT_KEEP_ALIVE = "10m"
DEFAULT_TABLE_BATCH_SIZE = 50
DEFAULT_DOCUMENT_BATCH_SIZE = 20


def resolve_data_dir(override_path: str | None = None) -> str:
    """
    Resolve the application data directory.

    Precedence:
    1) explicit override_path
    2) DUCKBAKE_DATA_DIR
    3) default path
    """
    raw_path = override_path or os.getenv(ENV_DATA_DIR) or DEFAULT_DATA_DIR
    resolved = Path(raw_path).expanduser().resolve()
    resolved.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def resolve_project_db_path(project_id: str, data_dir: str | None = None) -> str:
    """Return the DuckDB file backing a project."""
    if not project_id or "/" in project_id or "\\" in project_id:
        raise ValueError(f"Invalid project id: {project_id!r}")
    databases = Path(resolve_data_dir(data_dir)) / "databases"
    databases.mkdir(parents=True, exist_ok=True)
    return str(databases / f"{project_id}.duckdb")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = int(raw)
    if value <= 0:
        raise ValueError(f"{name} must be > 0")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = float(raw)
    if value <= 0:
        raise ValueError(f"{name} must be > 0")
    return value


@dataclass(frozen=True)
class EmbeddingSettings:
    """Settings for the local embedding service."""

    base_url: str = DEFAULT_OLLAMA_URL
    model: str = DEFAULT_EMBEDDING_MODEL
    timeout: float = DEFAULT_EMBEDDING_TIMEOUT
    keep_alive: str = DEFAULT_KEEP_ALIVE

    @classmethod
    def from_env(cls) -> "EmbeddingSettings":
        return cls(
            base_url=os.getenv("DUCKBAKE_OLLAMA_URL", DEFAULT_OLLAMA_URL).rstrip("/"),
            model=os.getenv("DUCKBAKE_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
            timeout=_env_float("DUCKBAKE_EMBEDDING_TIMEOUT", DEFAULT_EMBEDDING_TIMEOUT),
            keep_alive=os.getenv("DUCKBAKE_EMBEDDING_KEEP_ALIVE", DEFAULT_KEEP_ALIVE),
        )


@dataclass(frozen=True)
class BatchSettings:
    """Page sizes used by the vectorization pipeline."""

    table_batch_size: int = DEFAULT_TABLE_BATCH_SIZE
    document_batch_size: int = DEFAULT_DOCUMENT_BATCH_SIZE

    @classmethod
    def from_env(cls) -> "BatchSettings":
        return cls(
            table_batch_size=_env_int(
                "DUCKBAKE_TABLE_BATCH_SIZE", DEFAULT_TABLE_BATCH_SIZE
            ),
            document_batch_size=_env_int(
                "DUCKBAKE_DOCUMENT_BATCH_SIZE", DEFAULT_DOCUMENT_BATCH_SIZE
            ),
        )
