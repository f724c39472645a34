"""
Per-project DuckDB connection cache.

DuckDB does not allow several writable handles on the same file, so every
project gets exactly one connection, shared by all callers and serialized
behind a mutex.
"""

from __future__ import annotations

import threading
from pathlib import Path
from types import TracebackType

import duckdb
from loguru import logger

from .errors import ConnectionClosedError, StorageOpenError


class SharedConnection:
    """A DuckDB connection guarded by a mutex.

    Use as a context manager to hold the lock for one discrete step::

        with handle as conn:
            conn.execute("SELECT 1")
    """

    def __init__(self, project_id: str, db_path: str, conn: duckdb.DuckDBPyConnection) -> None:
        self.project_id = project_id
        self.db_path = db_path
        self._conn = conn
        self._lock = threading.RLock()
        self._closed = False
        self.schema_ready = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> duckdb.DuckDBPyConnection:
        self._lock.acquire()
        if self._closed:
            self._lock.release()
            raise ConnectionClosedError(
                f"Connection for project {self.project_id!r} has been closed"
            )
        return self._conn

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._lock.release()

    def close(self) -> None:
        """Close after any in-flight critical section has finished."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._conn.close()


class ConnectionCache:
    """Map project ids to their single shared connection."""

    def __init__(self) -> None:
        self._connections: dict[str, SharedConnection] = {}
        self._lock = threading.Lock()

    def acquire(self, project_id: str, db_path: str) -> SharedConnection:
        """Return the cached connection for a project, opening it if needed."""
        with self._lock:
            existing = self._connections.get(project_id)
            if existing is not None and not existing.closed:
                return existing

            resolved = str(Path(db_path).expanduser().resolve())
            try:
                Path(resolved).parent.mkdir(parents=True, exist_ok=True)
                conn = duckdb.connect(resolved)
            except (duckdb.Error, OSError) as exc:
                raise StorageOpenError(
                    f"Failed to open database for project {project_id!r} at {resolved}: {exc}",
                    {"project_id": project_id, "db_path": resolved},
                ) from exc

            handle = SharedConnection(project_id, resolved, conn)
            self._connections[project_id] = handle
            logger.debug(f"Opened DuckDB connection for project {project_id} at {resolved}")
            return handle

    def release(self, project_id: str) -> None:
        """Drop and close a project's connection. No-op if none is open."""
        with self._lock:
            handle = self._connections.pop(project_id, None)
        if handle is not None:
            handle.close()
            logger.debug(f"Closed DuckDB connection for project {project_id}")

    def close_all(self) -> None:
        with self._lock:
            handles = list(self._connections.values())
            self._connections.clear()
        for handle in handles:
            handle.close()

    def __contains__(self, project_id: object) -> bool:
        with self._lock:
            return project_id in self._connections

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)
