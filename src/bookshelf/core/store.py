"""SQLite-backed store for the user's book records."""

from __future__ import annotations

import sqlite3
from collections.abc import Mapping
from datetime import datetime, timezone

import structlog
from pydantic import ValidationError

from .errors import BookValidationError
from .models import Book
from .schemas import BookCreate, BookFields, BookUpdate

log = structlog.get_logger()

# Column order matches the Book dataclass fields after id/title/created_at.
_OPTIONAL_COLUMNS = (
    "author",
    "year_read",
    "rating",
    "notes",
    "cover_url",
    "cover_data",
    "isbn",
    "publisher",
    "published_date",
    "description",
)
_SEARCH_FIELDS = ("title", "author", "isbn", "publisher", "description")
_SELECT = "SELECT id, title, created_at, " + ", ".join(_OPTIONAL_COLUMNS) + " FROM books"


def _validate(model: type[BookFields], data: Mapping) -> BookFields:
    if not isinstance(data, Mapping):
        raise BookValidationError("Invalid book data: expected a JSON object")
    try:
        return model.model_validate(dict(data))
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise BookValidationError("Invalid book data", errors) from e


class BookStore:
    """Keep book records in a local SQLite database.

    ``database`` may be a file path or ``":memory:"``.
    """

    def __init__(self, database: str = ":memory:") -> None:
        self.database = database
        # FastAPI's test client drives the app from a worker thread.
        self._conn = sqlite3.connect(database, check_same_thread=False)
        self._conn.execute(
            """CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                author TEXT,
                year_read INTEGER,
                rating INTEGER,
                notes TEXT,
                cover_url TEXT,
                cover_data TEXT,
                isbn TEXT,
                publisher TEXT,
                published_date TEXT,
                description TEXT,
                created_at TEXT NOT NULL
            )"""
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    def create(self, data: Mapping) -> Book:
        """Validate ``data`` and insert it as a new book."""
        fields = _validate(BookCreate, data).model_dump()
        created_at = datetime.now(timezone.utc).isoformat()
        columns = ("title", *_OPTIONAL_COLUMNS, "created_at")
        values = [fields["title"], *(fields[c] for c in _OPTIONAL_COLUMNS), created_at]
        cur = self._conn.execute(
            f"INSERT INTO books ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})",
            values,
        )
        self._conn.commit()
        log.info("book_created", id=cur.lastrowid, title=fields["title"])
        return self.get(cur.lastrowid)

    def all(self) -> list[Book]:
        """Return every book, newest first."""
        rows = self._conn.execute(_SELECT + " ORDER BY created_at DESC, id DESC").fetchall()
        return [self._row_to_book(row) for row in rows]

    def get(self, book_id: int) -> Book | None:
        row = self._conn.execute(_SELECT + " WHERE id = ?", (book_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_book(row)

    def update(self, book_id: int, data: Mapping) -> Book | None:
        """Merge the supplied fields into an existing book.

        Fields absent from ``data`` keep their current values. Returns None
        when no book has ``book_id``.
        """
        changes = _validate(BookUpdate, data).model_dump(exclude_unset=True)
        if self.get(book_id) is None:
            return None
        if changes:
            assignments = ", ".join(f"{column} = ?" for column in changes)
            self._conn.execute(
                f"UPDATE books SET {assignments} WHERE id = ?",
                (*changes.values(), book_id),
            )
            self._conn.commit()
        log.info("book_updated", id=book_id, fields=sorted(changes))
        return self.get(book_id)

    def delete(self, book_id: int) -> bool:
        cur = self._conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        self._conn.commit()
        deleted = cur.rowcount > 0
        log.info("book_deleted", id=book_id, deleted=deleted)
        return deleted

    def search(self, query: str) -> list[Book]:
        """Case-insensitive substring match over title, author, isbn,
        publisher and description."""
        if not query or not query.strip():
            return []
        needle = query.strip().casefold()
        matches = [
            book
            for book in self.all()
            if any(needle in (getattr(book, f) or "").casefold() for f in _SEARCH_FIELDS)
        ]
        log.debug("book_search", query=query, matches=len(matches))
        return matches

    @staticmethod
    def _row_to_book(row: tuple) -> Book:
        book_id, title, created_at, *rest = row
        return Book(id=book_id, title=title, created_at=created_at, **dict(zip(_OPTIONAL_COLUMNS, rest)))
