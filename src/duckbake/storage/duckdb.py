"""
DuckDB storage backend for embeddings, documents and chunks.

All state lives in the project's own DuckDB file, next to the user's tables,
in tables prefixed with ``_duckbake_``.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import duckdb
from loguru import logger

from ..connections import SharedConnection
from ..errors import DocumentNotFoundError, TableNotFoundError
from .base import (
    DocumentChunk,
    DocumentRecord,
    DocumentScope,
    DocumentSource,
    EmbeddingEntry,
    EmbeddingMatch,
    EmbeddingStatus,
    SearchScope,
    Source,
    TableSource,
)

INTERNAL_PREFIX = "_duckbake_"
EMBEDDINGS_TABLE = "_duckbake_embeddings"
DOCUMENTS_TABLE = "_duckbake_documents"
CHUNKS_TABLE = "_duckbake_document_chunks"

# Separator placed between column values when several columns are embedded together.
COLUMN_VALUE_SEPARATOR = " "

_EMBEDDINGS_DDL = (
    f"""
    CREATE TABLE IF NOT EXISTS {EMBEDDINGS_TABLE} (
        table_name VARCHAR NOT NULL,
        source_column VARCHAR NOT NULL,
        row_id BIGINT NOT NULL,
        content VARCHAR NOT NULL,
        embedding FLOAT[] NOT NULL,
        embedding_model VARCHAR NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (table_name, source_column, row_id)
    );
    """,
    f"""
    CREATE INDEX IF NOT EXISTS idx_embeddings_table
        ON {EMBEDDINGS_TABLE}(table_name, source_column);
    """,
)

# Chunks carry no FOREIGN KEY to documents; delete_document must remove chunks
# before their parent.
_DOCUMENTS_DDL = (
    f"""
    CREATE TABLE IF NOT EXISTS {DOCUMENTS_TABLE} (
        id VARCHAR PRIMARY KEY,
        project_id VARCHAR NOT NULL,
        filename VARCHAR NOT NULL,
        file_type VARCHAR NOT NULL,
        file_size BIGINT NOT NULL,
        page_count INTEGER,
        word_count INTEGER NOT NULL,
        title VARCHAR,
        author VARCHAR,
        content VARCHAR NOT NULL,
        uploaded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        is_vectorized BOOLEAN DEFAULT FALSE
    );
    """,
    f"""
    CREATE INDEX IF NOT EXISTS idx_documents_project
        ON {DOCUMENTS_TABLE}(project_id);
    """,
)

_CHUNKS_DDL = (
    f"""
    CREATE TABLE IF NOT EXISTS {CHUNKS_TABLE} (
        id VARCHAR PRIMARY KEY,
        document_id VARCHAR NOT NULL,
        chunk_index INTEGER NOT NULL,
        chunk_type VARCHAR NOT NULL,
        content VARCHAR NOT NULL,
        start_offset INTEGER NOT NULL,
        end_offset INTEGER NOT NULL,
        embedding FLOAT[],
        embedding_model VARCHAR
    );
    """,
    f"""
    CREATE INDEX IF NOT EXISTS idx_document_chunks_doc
        ON {CHUNKS_TABLE}(document_id);
    """,
)

# Current columns of each managed table, with the value used when a legacy
# layout is missing the column during a rebuild.
_EMBEDDINGS_COLUMNS: dict[str, str] = {
    "table_name": "''",
    "source_column": "''",
    "row_id": "0",
    "content": "''",
    "embedding": "[]::FLOAT[]",
    "embedding_model": "'unknown'",
    "created_at": "CURRENT_TIMESTAMP",
}
_DOCUMENTS_COLUMNS: dict[str, str] = {
    "id": "''",
    "project_id": "''",
    "filename": "''",
    "file_type": "'txt'",
    "file_size": "0",
    "page_count": "NULL::INTEGER",
    "word_count": "0",
    "title": "NULL::VARCHAR",
    "author": "NULL::VARCHAR",
    "content": "''",
    "uploaded_at": "CURRENT_TIMESTAMP",
    "is_vectorized": "FALSE",
}
_CHUNKS_COLUMNS: dict[str, str] = {
    "id": "''",
    "document_id": "''",
    "chunk_index": "0",
    "chunk_type": "'paragraph'",
    "content": "''",
    "start_offset": "0",
    "end_offset": "0",
    "embedding": "NULL::FLOAT[]",
    "embedding_model": "NULL::VARCHAR",
}


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


@contextmanager
def _transaction(conn: duckdb.DuckDBPyConnection) -> Iterator[duckdb.DuckDBPyConnection]:
    conn.begin()
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


class DuckDBStorage:
    """DuckDB-backed persistence for embeddings, documents and chunks.

    Every public method holds the shared connection's lock only for its own
    statements, so callers can interleave storage steps with slow network
    calls without blocking other users of the same project.
    """

    def __init__(
        self,
        handle: SharedConnection,
        *,
        project_id: str | None = None,
        initialize: bool = True,
    ) -> None:
        self._handle = handle
        self.project_id = project_id or handle.project_id
        if initialize:
            self.initialize()

    @property
    def db_path(self) -> str:
        return self._handle.db_path

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Create managed tables and repair legacy layouts once per connection."""
        with self._handle as conn:
            if self._handle.schema_ready:
                return
            self._repair_chunks_table(conn)
            self._repair_table(
                conn,
                table=EMBEDDINGS_TABLE,
                ddl=_EMBEDDINGS_DDL,
                columns=_EMBEDDINGS_COLUMNS,
                key=("table_name", "source_column", "row_id"),
                legacy_columns={"id"},
            )
            self._repair_table(
                conn,
                table=DOCUMENTS_TABLE,
                ddl=_DOCUMENTS_DDL,
                columns=_DOCUMENTS_COLUMNS,
                key=("id",),
            )
            for statement in (*_EMBEDDINGS_DDL, *_DOCUMENTS_DDL, *_CHUNKS_DDL):
                conn.execute(statement)
            self._handle.schema_ready = True

    def _repair_chunks_table(self, conn: duckdb.DuckDBPyConnection) -> None:
        row = conn.execute(
            """
            SELECT COUNT(*)
            FROM duckdb_constraints()
            WHERE table_name = ? AND constraint_type = 'FOREIGN KEY'
            """,
            [CHUNKS_TABLE],
        ).fetchone()
        has_foreign_key = bool(row and row[0])
        self._repair_table(
            conn,
            table=CHUNKS_TABLE,
            ddl=_CHUNKS_DDL,
            columns=_CHUNKS_COLUMNS,
            key=("id",),
            force=has_foreign_key,
        )

    def _repair_table(
        self,
        conn: duckdb.DuckDBPyConnection,
        *,
        table: str,
        ddl: tuple[str, ...],
        columns: dict[str, str],
        key: tuple[str, ...],
        legacy_columns: set[str] | None = None,
        force: bool = False,
    ) -> None:
        existing = self._table_columns(conn, table)
        if not existing:
            return
        missing = set(columns) - set(existing)
        legacy = set(existing) & (legacy_columns or set())
        if not (force or missing or legacy):
            return

        logger.warning(
            f"Rebuilding {table} (missing={sorted(missing)}, legacy={sorted(legacy)}, "
            f"foreign_key={force})"
        )
        select_list = ", ".join(
            name if name in existing else f"{fallback} AS {name}"
            for name, fallback in columns.items()
        )
        column_list = ", ".join(columns)
        backup = f"_repair{table}"
        with _transaction(conn):
            conn.execute(
                f"CREATE OR REPLACE TEMP TABLE {backup} AS SELECT {select_list} FROM {table}"
            )
            conn.execute(f"DROP TABLE {table}")
            for statement in ddl:
                conn.execute(statement)
            conn.execute(
                f"""
                INSERT INTO {table} ({column_list})
                SELECT {column_list}
                FROM {backup}
                QUALIFY row_number() OVER (PARTITION BY {", ".join(key)}) = 1
                """
            )
            conn.execute(f"DROP TABLE {backup}")

    @staticmethod
    def _table_columns(conn: duckdb.DuckDBPyConnection, table: str) -> list[str]:
        rows = conn.execute(
            """
            SELECT column_name
            FROM information_schema.columns
            WHERE table_schema = 'main' AND table_name = ?
            ORDER BY ordinal_position
            """,
            [table],
        ).fetchall()
        return [str(row[0]) for row in rows]

    @staticmethod
    def _table_exists(conn: duckdb.DuckDBPyConnection, table: str) -> bool:
        row = conn.execute(
            """
            SELECT COUNT(*)
            FROM information_schema.tables
            WHERE table_schema = 'main' AND table_name = ?
            """,
            [table],
        ).fetchone()
        return bool(row and row[0])

    def _require_user_table(self, conn: duckdb.DuckDBPyConnection, table: str) -> list[str]:
        if table.startswith(INTERNAL_PREFIX):
            raise TableNotFoundError(table)
        columns = self._table_columns(conn, table)
        if not columns:
            raise TableNotFoundError(table)
        return columns

    def _check_table_source(
        self, conn: duckdb.DuckDBPyConnection, source: TableSource
    ) -> None:
        table_columns = self._require_user_table(conn, source.table_name)
        row = conn.execute(
            """
            SELECT table_type
            FROM information_schema.tables
            WHERE table_schema = 'main' AND table_name = ?
            """,
            [source.table_name],
        ).fetchone()
        if row is None or row[0] != "BASE TABLE":
            raise ValueError(
                f"Only base tables can be vectorized; {source.table_name!r} is a view."
            )
        if not source.columns:
            raise ValueError("At least one column is required to vectorize a table.")
        unknown = [c for c in source.columns if c not in table_columns]
        if unknown:
            raise ValueError(
                f"Unknown column(s) for table {source.table_name!r}: {', '.join(unknown)}"
            )

    def validate_source(self, source: Source) -> None:
        """Raise if *source* cannot be vectorized, without touching stored embeddings."""
        if isinstance(source, DocumentSource):
            self.get_document(document_id=source.document_id)
            return
        with self._handle as conn:
            self._check_table_source(conn, source)

    # ------------------------------------------------------------------
    # User tables
    # ------------------------------------------------------------------

    def list_tables(self) -> list[dict[str, Any]]:
        with self._handle as conn:
            rows = conn.execute(
                """
                SELECT t.table_name, COUNT(c.column_name)
                FROM information_schema.tables t
                JOIN information_schema.columns c
                  ON c.table_schema = t.table_schema AND c.table_name = t.table_name
                WHERE t.table_schema = 'main'
                  AND t.table_type = 'BASE TABLE'
                  AND NOT starts_with(t.table_name, ?)
                GROUP BY t.table_name
                ORDER BY t.table_name
                """,
                [INTERNAL_PREFIX],
            ).fetchall()
            results: list[dict[str, Any]] = []
            for table_name, column_count in rows:
                count_row = conn.execute(
                    f"SELECT COUNT(*) FROM {quote_identifier(str(table_name))}"
                ).fetchone()
                vectorized_columns = self._vectorized_columns(conn, str(table_name))
                results.append(
                    {
                        "name": str(table_name),
                        "row_count": int(count_row[0]) if count_row else 0,
                        "column_count": int(column_count),
                        "is_vectorized": bool(vectorized_columns),
                        "vectorized_columns": vectorized_columns,
                    }
                )
            return results

    def get_text_columns(self, table_name: str) -> list[str]:
        with self._handle as conn:
            self._require_user_table(conn, table_name)
            rows = conn.execute(
                """
                SELECT column_name
                FROM information_schema.columns
                WHERE table_schema = 'main'
                  AND table_name = ?
                  AND (data_type LIKE '%VARCHAR%' OR data_type LIKE '%TEXT%'
                       OR data_type LIKE '%CHAR%')
                ORDER BY ordinal_position
                """,
                [table_name],
            ).fetchall()
            return [str(row[0]) for row in rows]

    # ------------------------------------------------------------------
    # Vectorization sources
    # ------------------------------------------------------------------

    def count_source_units(self, source: Source) -> int:
        with self._handle as conn:
            if isinstance(source, TableSource):
                self._require_user_table(conn, source.table_name)
                row = conn.execute(
                    f"SELECT COUNT(*) FROM {quote_identifier(source.table_name)}"
                ).fetchone()
            else:
                row = conn.execute(
                    f"SELECT COUNT(*) FROM {CHUNKS_TABLE} WHERE document_id = ?",
                    [source.document_id],
                ).fetchone()
            return int(row[0]) if row else 0

    def fetch_source_page(
        self, source: Source, *, limit: int, offset: int
    ) -> list[tuple[int | str, str]]:
        """Return (id, text) pairs in stable order for one batch."""
        with self._handle as conn:
            if isinstance(source, DocumentSource):
                rows = conn.execute(
                    f"""
                    SELECT id, content
                    FROM {CHUNKS_TABLE}
                    WHERE document_id = ?
                    ORDER BY chunk_index
                    LIMIT ? OFFSET ?
                    """,
                    [source.document_id, limit, offset],
                ).fetchall()
                return [(str(row[0]), str(row[1])) for row in rows]

            self._check_table_source(conn, source)
            combined = f" || '{COLUMN_VALUE_SEPARATOR}' || ".join(
                f"COALESCE(CAST({quote_identifier(c)} AS VARCHAR), '')" for c in source.columns
            )
            rows = conn.execute(
                f"""
                SELECT rowid, {combined} AS combined_text
                FROM {quote_identifier(source.table_name)}
                ORDER BY rowid
                LIMIT ? OFFSET ?
                """,
                [limit, offset],
            ).fetchall()
            return [(int(row[0]), str(row[1])) for row in rows]

    # ------------------------------------------------------------------
    # Embedding store
    # ------------------------------------------------------------------

    def upsert_embeddings(
        self, source: Source, entries: list[EmbeddingEntry], *, model: str
    ) -> int:
        """Write one batch in a single transaction. Return count written."""
        if not entries:
            return 0
        with self._handle as conn, _transaction(conn):
            if isinstance(source, TableSource):
                conn.executemany(
                    f"""
                    INSERT OR REPLACE INTO {EMBEDDINGS_TABLE}
                        (table_name, source_column, row_id, content, embedding,
                         embedding_model, created_at)
                    VALUES (?, ?, ?, ?, ?::FLOAT[], ?, now())
                    """,
                    [
                        (
                            source.table_name,
                            source.column_key,
                            int(entry.row_id),
                            entry.content,
                            entry.embedding,
                            model,
                        )
                        for entry in entries
                    ],
                )
            else:
                conn.executemany(
                    f"""
                    UPDATE {CHUNKS_TABLE}
                    SET embedding = ?::FLOAT[], embedding_model = ?
                    WHERE id = ? AND document_id = ?
                    """,
                    [
                        (entry.embedding, model, str(entry.row_id), source.document_id)
                        for entry in entries
                    ],
                )
        return len(entries)

    def remove_embeddings(self, source: Source) -> None:
        """Delete every embedding of a source. Missing tables are not an error."""
        with self._handle as conn:
            if isinstance(source, TableSource):
                if not self._table_exists(conn, EMBEDDINGS_TABLE):
                    return
                conn.execute(
                    f"DELETE FROM {EMBEDDINGS_TABLE} WHERE table_name = ?",
                    [source.table_name],
                )
                return

            if not self._table_exists(conn, CHUNKS_TABLE):
                return
            with _transaction(conn):
                conn.execute(
                    f"""
                    UPDATE {CHUNKS_TABLE}
                    SET embedding = NULL, embedding_model = NULL
                    WHERE document_id = ? AND embedding IS NOT NULL
                    """,
                    [source.document_id],
                )
                conn.execute(
                    f"UPDATE {DOCUMENTS_TABLE} SET is_vectorized = FALSE WHERE id = ?",
                    [source.document_id],
                )

    def search_embeddings(
        self,
        scope: SearchScope,
        query_embedding: list[float],
        *,
        limit: int = 10,
    ) -> list[EmbeddingMatch]:
        """Rank stored vectors in scope by cosine similarity, best first."""
        if not query_embedding:
            return []
        with self._handle as conn:
            if isinstance(scope, TableSource):
                if not self._table_exists(conn, EMBEDDINGS_TABLE):
                    return []
                sql = f"""
                    SELECT
                        row_id,
                        content,
                        list_cosine_similarity(embedding, ?::FLOAT[]) AS similarity
                    FROM {EMBEDDINGS_TABLE}
                    WHERE table_name = ?
                      AND len(embedding) = ?
                """
                params: list[Any] = [query_embedding, scope.table_name, len(query_embedding)]
                if scope.columns:
                    sql += " AND source_column = ?"
                    params.append(scope.column_key)
                sql += " ORDER BY similarity DESC, row_id ASC LIMIT ?"
                params.append(limit)
                rows = conn.execute(sql, params).fetchall()
                return [
                    EmbeddingMatch(
                        row_id=int(row[0]),
                        content=str(row[1]),
                        score=float(row[2]) if row[2] is not None else 0.0,
                        source_name=scope.table_name,
                    )
                    for row in rows
                ]

            sql = f"""
                SELECT
                    c.id,
                    c.content,
                    list_cosine_similarity(c.embedding, ?::FLOAT[]) AS similarity,
                    d.id,
                    d.filename
                FROM {CHUNKS_TABLE} c
                JOIN {DOCUMENTS_TABLE} d ON c.document_id = d.id
                WHERE d.project_id = ?
                  AND c.embedding IS NOT NULL
                  AND len(c.embedding) = ?
            """
            params = [query_embedding, scope.project_id, len(query_embedding)]
            if scope.document_id is not None:
                sql += " AND d.id = ?"
                params.append(scope.document_id)
            sql += " ORDER BY similarity DESC, c.id ASC LIMIT ?"
            params.append(limit)
            rows = conn.execute(sql, params).fetchall()
            return [
                EmbeddingMatch(
                    row_id=str(row[0]),
                    content=str(row[1]),
                    score=float(row[2]) if row[2] is not None else 0.0,
                    source_name=str(row[4]),
                    document_id=str(row[3]),
                )
                for row in rows
            ]

    def count_embeddings(self, scope: SearchScope) -> int:
        with self._handle as conn:
            if isinstance(scope, TableSource):
                if not self._table_exists(conn, EMBEDDINGS_TABLE):
                    return 0
                sql = f"SELECT COUNT(*) FROM {EMBEDDINGS_TABLE} WHERE table_name = ?"
                params: list[Any] = [scope.table_name]
                if scope.columns:
                    sql += " AND source_column = ?"
                    params.append(scope.column_key)
            else:
                sql = f"""
                    SELECT COUNT(*)
                    FROM {CHUNKS_TABLE} c
                    JOIN {DOCUMENTS_TABLE} d ON c.document_id = d.id
                    WHERE d.project_id = ? AND c.embedding IS NOT NULL
                """
                params = [scope.project_id]
                if scope.document_id is not None:
                    sql += " AND d.id = ?"
                    params.append(scope.document_id)
            row = conn.execute(sql, params).fetchone()
            return int(row[0]) if row else 0

    def embedding_status(self, source: Source) -> EmbeddingStatus:
        with self._handle as conn:
            if isinstance(source, TableSource):
                if not self._table_exists(conn, EMBEDDINGS_TABLE):
                    return EmbeddingStatus(source.source_id, False, [], 0, None)
                vectorized_columns = self._vectorized_columns(conn, source.table_name)
                row = conn.execute(
                    f"""
                    SELECT COUNT(*), arg_max(embedding_model, created_at)
                    FROM {EMBEDDINGS_TABLE}
                    WHERE table_name = ?
                    """,
                    [source.table_name],
                ).fetchone()
            else:
                vectorized_columns = []
                row = conn.execute(
                    f"""
                    SELECT COUNT(*), max(embedding_model)
                    FROM {CHUNKS_TABLE}
                    WHERE document_id = ? AND embedding IS NOT NULL
                    """,
                    [source.document_id],
                ).fetchone()

            count = int(row[0]) if row else 0
            model = str(row[1]) if row and row[1] is not None else None
            return EmbeddingStatus(
                source_id=source.source_id,
                is_vectorized=count > 0,
                vectorized_columns=vectorized_columns,
                embedding_count=count,
                embedding_model=model,
            )

    def _vectorized_columns(self, conn: duckdb.DuckDBPyConnection, table_name: str) -> list[str]:
        if not self._table_exists(conn, EMBEDDINGS_TABLE):
            return []
        rows = conn.execute(
            f"""
            SELECT DISTINCT source_column
            FROM {EMBEDDINGS_TABLE}
            WHERE table_name = ?
            ORDER BY source_column
            """,
            [table_name],
        ).fetchall()
        return [str(row[0]) for row in rows]

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def insert_document(self, document: DocumentRecord, chunks: list[DocumentChunk]) -> None:
        """Insert a document and its chunks in one transaction."""
        with self._handle as conn, _transaction(conn):
            conn.execute(
                f"""
                INSERT INTO {DOCUMENTS_TABLE} (
                    id, project_id, filename, file_type, file_size, page_count,
                    word_count, title, author, content, is_vectorized
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, FALSE)
                """,
                [
                    document.id,
                    document.project_id,
                    document.filename,
                    document.file_type,
                    document.file_size,
                    document.page_count,
                    document.word_count,
                    document.title,
                    document.author,
                    document.content,
                ],
            )
            if chunks:
                conn.executemany(
                    f"""
                    INSERT INTO {CHUNKS_TABLE} (
                        id, document_id, chunk_index, chunk_type, content,
                        start_offset, end_offset
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            chunk.id,
                            chunk.document_id,
                            chunk.chunk_index,
                            chunk.chunk_type,
                            chunk.content,
                            chunk.start_offset,
                            chunk.end_offset,
                        )
                        for chunk in chunks
                    ],
                )

    def list_documents(self, *, project_id: str | None = None) -> list[dict[str, Any]]:
        with self._handle as conn:
            rows = conn.execute(
                f"""
                SELECT d.id, d.filename, d.file_type, d.file_size, d.page_count,
                       d.word_count, d.is_vectorized, CAST(d.uploaded_at AS VARCHAR),
                       (SELECT COUNT(*) FROM {CHUNKS_TABLE} c WHERE c.document_id = d.id)
                FROM {DOCUMENTS_TABLE} d
                WHERE d.project_id = ?
                ORDER BY d.uploaded_at DESC, d.filename ASC
                """,
                [project_id or self.project_id],
            ).fetchall()
        return [
            {
                "id": str(row[0]),
                "filename": str(row[1]),
                "file_type": str(row[2]),
                "file_size": int(row[3]),
                "page_count": int(row[4]) if row[4] is not None else None,
                "word_count": int(row[5]),
                "is_vectorized": bool(row[6]),
                "uploaded_at": str(row[7] or ""),
                "chunk_count": int(row[8]),
            }
            for row in rows
        ]

    def get_document(self, *, document_id: str) -> DocumentRecord:
        with self._handle as conn:
            row = conn.execute(
                f"""
                SELECT id, project_id, filename, file_type, file_size, word_count,
                       content, title, author, page_count,
                       CAST(uploaded_at AS VARCHAR), is_vectorized
                FROM {DOCUMENTS_TABLE}
                WHERE id = ?
                LIMIT 1
                """,
                [document_id],
            ).fetchone()
        if row is None:
            raise DocumentNotFoundError(document_id)
        return DocumentRecord(
            id=str(row[0]),
            project_id=str(row[1]),
            filename=str(row[2]),
            file_type=str(row[3]),
            file_size=int(row[4]),
            word_count=int(row[5]),
            content=str(row[6]),
            title=row[7],
            author=row[8],
            page_count=int(row[9]) if row[9] is not None else None,
            uploaded_at=str(row[10] or ""),
            is_vectorized=bool(row[11]),
        )

    def get_document_chunks(
        self, *, document_id: str, limit: int | None = None
    ) -> list[DocumentChunk]:
        sql = f"""
            SELECT id, document_id, chunk_index, chunk_type, content,
                   start_offset, end_offset, embedding_model
            FROM {CHUNKS_TABLE}
            WHERE document_id = ?
            ORDER BY chunk_index
        """
        params: list[Any] = [document_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(max(limit, 0))
        with self._handle as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            DocumentChunk(
                id=str(row[0]),
                document_id=str(row[1]),
                chunk_index=int(row[2]),
                chunk_type=row[3],
                content=str(row[4]),
                start_offset=int(row[5]),
                end_offset=int(row[6]),
                embedding_model=row[7],
            )
            for row in rows
        ]

    def mark_document_vectorized(self, *, document_id: str) -> None:
        with self._handle as conn:
            conn.execute(
                f"UPDATE {DOCUMENTS_TABLE} SET is_vectorized = TRUE WHERE id = ?",
                [document_id],
            )

    def delete_document(self, *, document_id: str) -> None:
        """Delete a document. Its chunks are always removed first."""
        with self._handle as conn, _transaction(conn):
            conn.execute(
                f"DELETE FROM {CHUNKS_TABLE} WHERE document_id = ?", [document_id]
            )
            conn.execute(f"DELETE FROM {DOCUMENTS_TABLE} WHERE id = ?", [document_id])
