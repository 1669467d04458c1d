"""SQLite FTS5 storage for the codebase index."""

import contextlib
import logging
import os
import re
import sqlite3
import threading
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path

from codebase_index.errors import IndexEngineError
from codebase_index.models import Document, RestoreResult

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1"

# Searchable fields and their FTS5 column names
SEARCHABLE_COLUMNS = {"content": "content", "file_path": "file_path"}

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS documents (
        id TEXT PRIMARY KEY,
        file_path TEXT NOT NULL,
        content TEXT NOT NULL,
        language TEXT NOT NULL,
        start_line INTEGER NOT NULL,
        end_line INTEGER NOT NULL,
        chunk_index INTEGER NOT NULL,
        updated_at INTEGER NOT NULL
    );

    -- FTS5 for BM25 keyword search
    CREATE VIRTUAL TABLE IF NOT EXISTS documents_fts USING fts5(
        file_path,
        content,
        content='documents',
        content_rowid='rowid'
    );

    -- Triggers to keep FTS in sync
    CREATE TRIGGER IF NOT EXISTS documents_ai AFTER INSERT ON documents BEGIN
        INSERT INTO documents_fts(rowid, file_path, content)
        VALUES (new.rowid, new.file_path, new.content);
    END;

    CREATE TRIGGER IF NOT EXISTS documents_ad AFTER DELETE ON documents BEGIN
        INSERT INTO documents_fts(documents_fts, rowid, file_path, content)
        VALUES ('delete', old.rowid, old.file_path, old.content);
    END;

    CREATE TRIGGER IF NOT EXISTS documents_au AFTER UPDATE ON documents BEGIN
        INSERT INTO documents_fts(documents_fts, rowid, file_path, content)
        VALUES ('delete', old.rowid, old.file_path, old.content);
        INSERT INTO documents_fts(rowid, file_path, content)
        VALUES (new.rowid, new.file_path, new.content);
    END;

    -- Build metadata persisted alongside the documents
    CREATE TABLE IF NOT EXISTS metadata (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );
"""


def _connect_memory() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Initialize the database schema."""
    conn.executescript(_SCHEMA)
    conn.execute(
        "INSERT OR REPLACE INTO metadata (key, value) VALUES ('schema_version', ?)",
        (SCHEMA_VERSION,),
    )
    conn.commit()


def build_match_query(term: str, properties: Sequence[str]) -> str | None:
    """Turn free text into an FTS5 MATCH expression.

    Words are quoted and OR-ed so any term can match; the expression is
    restricted to the requested columns. Returns None when the text holds no
    searchable words.
    """
    tokens = _TOKEN_RE.findall(term)
    if not tokens:
        return None
    columns = []
    for prop in properties:
        if prop not in SEARCHABLE_COLUMNS:
            raise ValueError(f"Unsupported search property: {prop}")
        columns.append(SEARCHABLE_COLUMNS[prop])
    expression = " OR ".join(f'"{token}"' for token in tokens)
    return f"{{{' '.join(columns)}}} : ({expression})"


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        file_path=row["file_path"],
        content=row["content"],
        language=row["language"],
        start_line=row["start_line"],
        end_line=row["end_line"],
        chunk_index=row["chunk_index"],
        updated_at=row["updated_at"],
    )


class SqliteIndexEngine:
    """In-memory full-text store that persists to a single SQLite file."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._conn = _connect_memory()
        init_schema(self._conn)

    @contextlib.contextmanager
    def _guard(self, action: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
            except (sqlite3.Error, OSError) as exc:
                logger.error("Failed to %s: %s", action, exc)
                raise IndexEngineError(f"Failed to {action}: {exc}") from exc

    def insert_many(self, documents: Iterable[Document]) -> int:
        """Insert or replace documents. Returns the number written."""
        rows = [
            (
                doc.id,
                doc.file_path,
                doc.content,
                doc.language,
                doc.start_line,
                doc.end_line,
                doc.chunk_index,
                doc.updated_at,
            )
            for doc in documents
        ]
        if not rows:
            logger.debug("No documents to insert")
            return 0
        with self._guard("insert documents") as conn:
            # Delete first so the FTS delete trigger sees the old row
            conn.executemany("DELETE FROM documents WHERE id = ?", [(row[0],) for row in rows])
            conn.executemany(
                """
                INSERT INTO documents
                    (id, file_path, content, language, start_line, end_line, chunk_index, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            conn.commit()
        logger.info("Inserted %d documents into database", len(rows))
        return len(rows)

    def remove_many(self, ids: Iterable[str]) -> int:
        """Delete documents by id. Returns the number removed."""
        params = [(doc_id,) for doc_id in ids]
        if not params:
            return 0
        with self._guard("remove documents") as conn:
            # rowcount leaves out the rows written by the FTS delete trigger
            removed = conn.executemany("DELETE FROM documents WHERE id = ?", params).rowcount
            conn.commit()
        logger.info("Removed %d documents from database", removed)
        return removed

    def clear(self) -> None:
        """Drop all documents and metadata, keeping an empty usable schema."""
        with self._guard("clear database") as conn:
            conn.execute("DELETE FROM documents")
            conn.execute("DELETE FROM metadata WHERE key != 'schema_version'")
            conn.commit()
        logger.debug("Database cleared")

    def count(self) -> int:
        with self._guard("count documents") as conn:
            return conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]

    def get(self, doc_id: str) -> Document | None:
        with self._guard("get document") as conn:
            row = conn.execute("SELECT * FROM documents WHERE id = ?", (doc_id,)).fetchone()
        return _row_to_document(row) if row else None

    def ids(self) -> set[str]:
        with self._guard("list documents") as conn:
            return {row[0] for row in conn.execute("SELECT id FROM documents")}

    def search(
        self,
        term: str,
        properties: Sequence[str] = ("content", "file_path"),
        limit: int = 10,
        threshold: float = 0.0,
    ) -> tuple[list[tuple[Document, float]], int]:
        """BM25-ranked search.

        Returns ``(hits, total_matches)``. Scores are scaled to 0-1 against
        the best hit; hits below ``threshold`` are dropped. ``total_matches``
        counts every matching document before the limit is applied.
        """
        match = build_match_query(term, properties)
        if match is None or limit <= 0:
            return [], 0

        with self._guard("search") as conn:
            total = conn.execute(
                "SELECT COUNT(*) FROM documents_fts WHERE documents_fts MATCH ?", (match,)
            ).fetchone()[0]
            rows = conn.execute(
                """
                SELECT d.*, bm25(documents_fts) AS score
                FROM documents_fts
                JOIN documents d ON documents_fts.rowid = d.rowid
                WHERE documents_fts MATCH ?
                ORDER BY score, d.file_path, d.chunk_index
                LIMIT ?
                """,
                (match, limit),
            ).fetchall()

        # BM25 scores are negative (lower is better), so negate them
        raw = [(_row_to_document(row), -row["score"]) for row in rows]
        if not raw:
            return [], total
        best = max(score for _, score in raw)
        hits = [
            (doc, score / best if best > 0 else 1.0)
            for doc, score in raw
        ]
        return [(doc, score) for doc, score in hits if score >= threshold], total

    def set_metadata(self, key: str, value: str) -> None:
        with self._guard("write metadata") as conn:
            conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)", (key, value)
            )
            conn.commit()

    def get_metadata(self, key: str) -> str | None:
        with self._guard("read metadata") as conn:
            row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def persist(self, path: Path) -> None:
        """Write the whole index to ``path``, replacing it atomically."""
        tmp_path = path.with_name(f"{path.name}.tmp")
        with self._guard("persist database"):
            path.parent.mkdir(parents=True, exist_ok=True)
            with contextlib.suppress(FileNotFoundError):
                tmp_path.unlink()
            dest = sqlite3.connect(str(tmp_path))
            try:
                self._conn.backup(dest)
            finally:
                dest.close()
            os.replace(tmp_path, path)
        logger.info("Database persisted to: %s", path)

    def restore(self, path: Path) -> RestoreResult:
        """Load a persisted index, falling back to an empty engine on failure."""
        if not path.exists():
            logger.info("No persisted index at %s", path)
            return RestoreResult.FILE_MISSING

        restored = _connect_memory()
        try:
            source = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
            try:
                source.backup(restored)
            finally:
                source.close()
            version = restored.execute(
                "SELECT value FROM metadata WHERE key = 'schema_version'"
            ).fetchone()
            if version is None or version["value"] != SCHEMA_VERSION:
                raise sqlite3.DatabaseError(f"unsupported schema version: {version}")
            restored.execute("SELECT COUNT(*) FROM documents_fts").fetchone()
        except sqlite3.Error as exc:
            restored.close()
            logger.warning("Failed to restore database from %s: %s", path, exc)
            self._replace_connection(_connect_memory(), fresh=True)
            return RestoreResult.CORRUPT

        self._replace_connection(restored)
        logger.info("Database restored from: %s (%d documents)", path, self.count())
        return RestoreResult.RESTORED

    def _replace_connection(self, conn: sqlite3.Connection, fresh: bool = False) -> None:
        if fresh:
            init_schema(conn)
        with self._lock:
            old, self._conn = self._conn, conn
        old.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()
