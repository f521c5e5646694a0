from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from .doc import ChapterDoc

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS books (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    author TEXT,
    file_path TEXT NOT NULL,
    cover_path TEXT,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_books_file_path ON books(file_path);

CREATE TABLE IF NOT EXISTS reading_progress (
    book_id INTEGER PRIMARY KEY REFERENCES books(id) ON DELETE CASCADE,
    global_offset INTEGER NOT NULL DEFAULT 0,
    last_read_at TEXT NOT NULL,
    sync_status INTEGER NOT NULL DEFAULT 0
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database:
    """SQLite connection factory; every ``connect()`` block is one transaction."""

    def __init__(self, db_path: Path, busy_timeout_ms: int = 10000) -> None:
        self.db_path = db_path
        self.busy_timeout_ms = busy_timeout_ms

    def initialize(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
            )
            fresh = cursor.fetchone() is None
            conn.executescript(SCHEMA_SQL)
            if fresh:
                conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, _now()),
                )
                logger.info("Created database schema v%d at %s", SCHEMA_VERSION, self.db_path)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.busy_timeout_ms / 1000,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


@dataclass
class Book:
    id: int
    title: str
    author: str
    file_path: str
    cover_path: str
    content: ChapterDoc
    created_at: str
    updated_at: str


@dataclass
class ReadingProgress:
    book_id: int
    global_offset: int
    last_read_at: str
    sync_status: int = 0


def _row_to_book(row: sqlite3.Row) -> Book:
    return Book(
        id=row["id"],
        title=row["title"],
        author=row["author"] or "",
        file_path=row["file_path"],
        cover_path=row["cover_path"] or "",
        content=ChapterDoc.loads(row["content"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class BookStore:
    """
    Repository for books and their reading progress.

    Constructed once with a :class:`Database` handle. Rows are always read and
    replaced whole; ``sqlite3.Error`` propagates to callers unchanged.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def insert(
        self,
        title: str,
        author: str,
        file_path: str,
        cover_path: str,
        content: ChapterDoc,
    ) -> int:
        with self.db.connect() as conn:
            return self._insert(conn, title, author, file_path, cover_path, content)

    def find_by_path(self, path: str) -> Book | None:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM books WHERE file_path = ? ORDER BY id LIMIT 1", (path,)
            ).fetchone()
        return _row_to_book(row) if row else None

    def find_by_id(self, book_id: int) -> Book | None:
        with self.db.connect() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        return _row_to_book(row) if row else None

    def list_all(self) -> list[Book]:
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM books ORDER BY updated_at DESC, id DESC"
            ).fetchall()
        return [_row_to_book(row) for row in rows]

    def update(self, book_id: int, title: str, author: str, content: ChapterDoc) -> None:
        with self.db.connect() as conn:
            self._update(conn, book_id, title, author, content)

    def delete(self, book_id: int) -> bool:
        with self.db.connect() as conn:
            conn.execute("DELETE FROM reading_progress WHERE book_id = ?", (book_id,))
            cursor = conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
            return cursor.rowcount > 0

    def upsert_progress(self, book_id: int, global_offset: int) -> None:
        with self.db.connect() as conn:
            self._upsert_progress(conn, book_id, global_offset)

    def find_progress(self, book_id: int) -> ReadingProgress | None:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM reading_progress WHERE book_id = ?", (book_id,)
            ).fetchone()
        if row is None:
            return None
        return ReadingProgress(
            book_id=row["book_id"],
            global_offset=row["global_offset"],
            last_read_at=row["last_read_at"],
            sync_status=row["sync_status"],
        )

    def save_import(
        self,
        title: str,
        author: str,
        file_path: str,
        content: ChapterDoc,
        cover_path: str = "",
    ) -> tuple[int, bool]:
        """
        Insert a new book or replace the content of the one at ``file_path``.

        Re-imports reset reading progress to offset 0 in the same transaction.
        Returns ``(book_id, created)``.
        """
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT id FROM books WHERE file_path = ? ORDER BY id LIMIT 1", (file_path,)
            ).fetchone()
            if row is None:
                book_id = self._insert(conn, title, author, file_path, cover_path, content)
                return book_id, True
            book_id = row["id"]
            self._update(conn, book_id, title, author, content)
            self._upsert_progress(conn, book_id, 0)
            return book_id, False

    @staticmethod
    def _insert(
        conn: sqlite3.Connection,
        title: str,
        author: str,
        file_path: str,
        cover_path: str,
        content: ChapterDoc,
    ) -> int:
        now = _now()
        cursor = conn.execute(
            """
            INSERT INTO books (title, author, file_path, cover_path, content, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (title, author, file_path, cover_path, content.dumps(), now, now),
        )
        return int(cursor.lastrowid)

    @staticmethod
    def _update(
        conn: sqlite3.Connection,
        book_id: int,
        title: str,
        author: str,
        content: ChapterDoc,
    ) -> None:
        conn.execute(
            "UPDATE books SET title = ?, author = ?, content = ?, updated_at = ? WHERE id = ?",
            (title, author, content.dumps(), _now(), book_id),
        )

    @staticmethod
    def _upsert_progress(conn: sqlite3.Connection, book_id: int, global_offset: int) -> None:
        conn.execute(
            """
            INSERT INTO reading_progress (book_id, global_offset, last_read_at)
            VALUES (?, ?, ?)
            ON CONFLICT(book_id) DO UPDATE SET
                global_offset = excluded.global_offset,
                last_read_at = excluded.last_read_at
            """,
            (book_id, int(global_offset), _now()),
        )


def open_store(db_path: Path) -> BookStore:
    db = Database(db_path)
    db.initialize()
    return BookStore(db)


__all__ = [
    "Book",
    "BookStore",
    "Database",
    "ReadingProgress",
    "SCHEMA_VERSION",
    "open_store",
]
