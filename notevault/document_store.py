"""
Document store using SQLite.

Persistent backend for the note index. One scalar row per note, keyed by
its vault-relative path, plus:
- note_tags: one row per (note, tag)
- note_metadata: one row per custom frontmatter key, JSON-encoded value
- notes_fts: FTS5 index over title, body, tags and frontmatter values

The store is a query cache: Vault.initialize() rebuilds it from the vault
on every start. A database written with a different schema version is
dropped and recreated rather than migrated.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .errors import StorageInitializationError
from .filters import (
    ARCHIVE_PREFIX,
    query_terms,
    split_path_pattern,
    validate_filters,
    validate_limit,
)
from .types import (
    DEFAULT_WEIGHTS,
    Document,
    NoteMetadata,
    SearchFilters,
    date_key,
    properties_text,
    recency_key,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
DB_FILENAME = "notes.db"

# Upper bound on FTS terms taken from one query
MAX_QUERY_TERMS = 32

# Keep IN (...) lists under SQLite's host parameter limit
_IN_CHUNK = 500

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS notes (
        path TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        body TEXT NOT NULL,
        excerpt TEXT,
        created TEXT,
        modified TEXT,
        type TEXT NOT NULL,
        status TEXT NOT NULL,
        category TEXT NOT NULL,
        path_lower TEXT NOT NULL,
        recency TEXT NOT NULL DEFAULT '',
        modified_date TEXT
    );

    CREATE TABLE IF NOT EXISTS note_tags (
        note_path TEXT NOT NULL,
        tag TEXT NOT NULL,
        tag_lower TEXT NOT NULL,
        PRIMARY KEY (note_path, tag)
    );

    CREATE TABLE IF NOT EXISTS note_metadata (
        note_path TEXT NOT NULL,
        key TEXT NOT NULL,
        value TEXT,
        PRIMARY KEY (note_path, key)
    );

    CREATE INDEX IF NOT EXISTS idx_notes_modified ON notes(modified DESC);
    CREATE INDEX IF NOT EXISTS idx_notes_modified_date ON notes(modified_date);
    CREATE INDEX IF NOT EXISTS idx_notes_recency ON notes(recency DESC, path);
    CREATE INDEX IF NOT EXISTS idx_notes_type ON notes(type);
    CREATE INDEX IF NOT EXISTS idx_notes_status ON notes(status);
    CREATE INDEX IF NOT EXISTS idx_notes_category ON notes(category);
    CREATE INDEX IF NOT EXISTS idx_note_tags_tag ON note_tags(tag_lower);
    CREATE INDEX IF NOT EXISTS idx_note_tags_path ON note_tags(note_path);

    CREATE VIRTUAL TABLE IF NOT EXISTS notes_fts USING fts5(
        path UNINDEXED,
        title,
        body,
        tags,
        properties,
        tokenize = 'porter unicode61'
    );
"""

_TABLES = ("notes", "note_tags", "note_metadata", "notes_fts")

_NOTE_COLUMNS = (
    "n.path, n.title, n.body, n.excerpt, n.created, n.modified, "
    "n.type, n.status, n.category"
)


def _like_escape(value: str) -> str:
    """Escape LIKE wildcards so ``value`` matches literally (ESCAPE '\\')."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_fts_query(terms: list[str]) -> str:
    """FTS5 MATCH expression: each term quoted, any term may match.

    Raw user input never reaches MATCH, so punctuation and FTS operators
    in a query cannot raise syntax errors.
    """
    quoted = ['"' + t.replace('"', '""') + '"' for t in terms[:MAX_QUERY_TERMS]]
    return " OR ".join(quoted)


def _chunks(items: list[str], size: int) -> Iterator[list[str]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class DocumentStore:
    """
    SQLite-backed store for indexed notes.

    Every public method is serialized by a lock; writes run inside a
    single ``BEGIN IMMEDIATE`` transaction so a reader never observes a
    partially updated note.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        weights: Optional[dict[str, float]] = None,
        archive_prefix: str = ARCHIVE_PREFIX,
    ):
        """
        Args:
            db_path: Path to SQLite database file
            weights: Relative field weights for bm25 ranking
            archive_prefix: Lowercase path prefix hidden unless include_archive
        """
        self._db_path = Path(db_path)
        self._weights = {**DEFAULT_WEIGHTS, **(weights or {})}
        self._archive_prefix = archive_prefix.lower()
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._db_path

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def initialize(self) -> None:
        """
        Open the database and create the schema if needed.

        Raises:
            StorageInitializationError: If the file cannot be created or
                opened, or SQLite was built without FTS5
        """
        with self._lock:
            if self._conn is None:
                self._conn = self._connect()
            try:
                self._create_schema(self._conn)
            except sqlite3.Error as e:
                self._conn.close()
                self._conn = None
                raise StorageInitializationError(
                    f"Cannot prepare note database {self._db_path}: {e}"
                ) from e

    def _connect(self) -> sqlite3.Connection:
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            # isolation_level=None gives us manual transaction control
            conn = sqlite3.connect(
                str(self._db_path), check_same_thread=False,
                isolation_level=None,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
        except (OSError, sqlite3.Error) as e:
            raise StorageInitializationError(
                f"Cannot open note database {self._db_path}: {e}"
            ) from e
        return conn

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        if version not in (0, SCHEMA_VERSION):
            logger.info(
                "Note database schema v%d differs from v%d, rebuilding",
                version, SCHEMA_VERSION,
            )
            for table in _TABLES:
                conn.execute(f"DROP TABLE IF EXISTS {table}")
        conn.executescript(_SCHEMA)
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    def _db(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("DocumentStore is not initialized")
        return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._db()
            # BEGIN IMMEDIATE takes the write lock up front
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def clear(self) -> None:
        """Delete every note and all associated rows."""
        with self._transaction() as conn:
            for table in _TABLES:
                conn.execute(f"DELETE FROM {table}")

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def upsert(self, doc: Document) -> None:
        """
        Insert or replace a note.

        All previous rows for the path (scalar, tags, metadata, FTS) are
        deleted and rewritten in one transaction.
        """
        with self._transaction() as conn:
            self._write(conn, doc)

    def upsert_batch(self, docs: list[Document]) -> None:
        """Upsert many notes in a single transaction."""
        if not docs:
            return
        with self._transaction() as conn:
            for doc in docs:
                self._write(conn, doc)
        logger.debug("Upserted %d notes into %s", len(docs), self._db_path)

    def replace_all(self, docs: list[Document]) -> None:
        """Clear and reload in one transaction; a failure keeps the old contents."""
        with self._transaction() as conn:
            for table in _TABLES:
                conn.execute(f"DELETE FROM {table}")
            for doc in docs:
                self._write(conn, doc)
        logger.debug("Replaced contents of %s with %d notes", self._db_path, len(docs))

    def _write(self, conn: sqlite3.Connection, doc: Document) -> None:
        meta = doc.metadata
        path = doc.path

        old = conn.execute("SELECT rowid FROM notes WHERE path = ?", (path,)).fetchone()
        if old is not None:
            conn.execute("DELETE FROM notes_fts WHERE rowid = ?", (old[0],))
        conn.execute("DELETE FROM note_tags WHERE note_path = ?", (path,))
        conn.execute("DELETE FROM note_metadata WHERE note_path = ?", (path,))
        conn.execute("DELETE FROM notes WHERE path = ?", (path,))

        cursor = conn.execute("""
            INSERT INTO notes
            (path, title, body, excerpt, created, modified, type, status,
             category, path_lower, recency, modified_date)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            path, doc.title, doc.body, doc.excerpt,
            meta.created, meta.modified, meta.type, meta.status, meta.category,
            path.lower(), recency_key(doc), date_key(meta.modified),
        ))
        rowid = cursor.lastrowid

        conn.executemany("""
            INSERT OR IGNORE INTO note_tags (note_path, tag, tag_lower)
            VALUES (?, ?, ?)
        """, [(path, tag, tag.lower()) for tag in meta.tags])

        conn.executemany("""
            INSERT INTO note_metadata (note_path, key, value)
            VALUES (?, ?, ?)
        """, [
            (path, key, json.dumps(value, ensure_ascii=False))
            for key, value in meta.extra.items()
        ])

        conn.execute("""
            INSERT INTO notes_fts (rowid, path, title, body, tags, properties)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (rowid, path, doc.title, doc.body, " ".join(meta.tags), properties_text(doc)))

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, path: str) -> Optional[Document]:
        """Get a note by its vault-relative path."""
        with self._lock:
            rows = self._db().execute(
                f"SELECT {_NOTE_COLUMNS} FROM notes n WHERE n.path = ?", (path,)
            ).fetchall()
            docs = self._hydrate(rows)
        return docs[0] if docs else None

    def get_all(self) -> list[Document]:
        with self._lock:
            rows = self._db().execute(
                f"SELECT {_NOTE_COLUMNS} FROM notes n ORDER BY n.path"
            ).fetchall()
            return self._hydrate(rows)

    def count(self) -> int:
        with self._lock:
            return self._db().execute("SELECT COUNT(*) FROM notes").fetchone()[0]

    def search(
        self,
        text: str = "",
        filters: Optional[SearchFilters] = None,
    ) -> list[Document]:
        """
        Full-text search combined with structural filters.

        With text, results are ordered by bm25 relevance, then recency.
        Without text, by recency only.

        Raises:
            QueryError: If a filter value is malformed
        """
        filters = validate_filters(filters)
        sql, params = self._build_search(query_terms(text), filters)
        with self._lock:
            rows = self._db().execute(sql, params).fetchall()
            return self._hydrate(rows)

    def _build_search(
        self, terms: list[str], filters: SearchFilters
    ) -> tuple[str, list]:
        columns = _NOTE_COLUMNS
        joins: list[str] = []
        conditions: list[str] = []
        params: list = []

        if filters.tags:
            tag_conditions = []
            for tag in filters.tags:
                lowered = tag.lower()
                tag_conditions.append("(tag_lower = ? OR tag_lower LIKE ? ESCAPE '\\')")
                params.extend([lowered, _like_escape(lowered + "/") + "%"])
            joins.append(
                "JOIN (SELECT DISTINCT note_path FROM note_tags WHERE "
                + " OR ".join(tag_conditions)
                + ") nt ON nt.note_path = n.path"
            )

        if terms:
            w = self._weights
            columns += (
                f", bm25(notes_fts, 0.0, {float(w['title'])}, {float(w['content'])}, "
                f"{float(w['tags'])}, {float(w['frontmatter'])}) AS relevance"
            )
            joins.append("JOIN notes_fts ON notes_fts.rowid = n.rowid")
            conditions.append("notes_fts MATCH ?")
            params.append(build_fts_query(terms))

        if filters.path_pattern:
            needle, is_prefix = split_path_pattern(filters.path_pattern)
            conditions.append("n.path_lower LIKE ? ESCAPE '\\'")
            if is_prefix:
                params.append(_like_escape(needle) + "%")
            else:
                params.append("%" + _like_escape(needle) + "%")

        if not filters.include_archive:
            conditions.append("n.path_lower NOT LIKE ? ESCAPE '\\'")
            params.append(_like_escape(self._archive_prefix) + "%")

        for column in ("type", "status", "category"):
            value = getattr(filters, column)
            if value:
                conditions.append(f"n.{column} = ?")
                params.append(value)

        if filters.date_from:
            conditions.append("n.modified_date >= ?")
            params.append(filters.date_from)
        if filters.date_to:
            conditions.append("n.modified_date <= ?")
            params.append(filters.date_to)

        sql = f"SELECT {columns} FROM notes n"
        if joins:
            sql += " " + " ".join(joins)
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        if terms:
            sql += " ORDER BY relevance, n.recency DESC, n.path"
        else:
            sql += " ORDER BY n.recency DESC, n.path"
        sql += " LIMIT ?"
        params.append(filters.limit)
        return sql, params

    def get_by_tag(self, tag: str) -> list[Document]:
        """Notes tagged ``tag`` or any tag below it, most recent first."""
        lowered = tag.lower()
        with self._lock:
            rows = self._db().execute(f"""
                SELECT {_NOTE_COLUMNS} FROM notes n
                JOIN (
                    SELECT DISTINCT note_path FROM note_tags
                    WHERE tag_lower = ? OR tag_lower LIKE ? ESCAPE '\\'
                ) nt ON nt.note_path = n.path
                ORDER BY n.recency DESC, n.path
            """, (lowered, _like_escape(lowered + "/") + "%")).fetchall()
            return self._hydrate(rows)

    def get_recent(self, limit: int) -> list[Document]:
        """Most recent notes by modified date, falling back to created."""
        validate_limit(limit)
        with self._lock:
            rows = self._db().execute(f"""
                SELECT {_NOTE_COLUMNS} FROM notes n
                ORDER BY n.recency DESC, n.path
                LIMIT ?
            """, (limit,)).fetchall()
            return self._hydrate(rows)

    def list_tags(self) -> list[str]:
        with self._lock:
            cursor = self._db().execute(
                "SELECT DISTINCT tag FROM note_tags ORDER BY tag"
            )
            return [row["tag"] for row in cursor]

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    def _hydrate(self, rows: list[sqlite3.Row]) -> list[Document]:
        """Attach tags and custom metadata to note rows, preserving row order."""
        if not rows:
            return []
        conn = self._db()
        paths = [row["path"] for row in rows]
        tags: dict[str, list[str]] = {p: [] for p in paths}
        extra: dict[str, dict] = {p: {} for p in paths}

        for chunk in _chunks(paths, _IN_CHUNK):
            placeholders = ",".join("?" * len(chunk))
            for row in conn.execute(f"""
                SELECT note_path, tag FROM note_tags
                WHERE note_path IN ({placeholders})
                ORDER BY rowid
            """, chunk):
                tags[row["note_path"]].append(row["tag"])
            for row in conn.execute(f"""
                SELECT note_path, key, value FROM note_metadata
                WHERE note_path IN ({placeholders})
                ORDER BY rowid
            """, chunk):
                try:
                    value = json.loads(row["value"])
                except (json.JSONDecodeError, TypeError):
                    value = row["value"]
                extra[row["note_path"]][row["key"]] = value

        return [
            Document(
                path=row["path"],
                title=row["title"],
                body=row["body"],
                excerpt=row["excerpt"] or "",
                metadata=NoteMetadata(
                    created=row["created"],
                    modified=row["modified"],
                    tags=tags[row["path"]],
                    type=row["type"],
                    status=row["status"],
                    category=row["category"],
                    extra=extra[row["path"]],
                ),
            )
            for row in rows
        ]
