"""Data models for book records and external metadata."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Book:
    id: int
    title: str
    created_at: str
    author: str | None = None
    year_read: int | None = None
    rating: int | None = None
    notes: str | None = None
    cover_url: str | None = None
    cover_data: str | None = None
    isbn: str | None = None
    publisher: str | None = None
    published_date: str | None = None
    description: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "yearRead": self.year_read,
            "rating": self.rating,
            "notes": self.notes,
            "coverUrl": self.cover_url,
            "coverData": self.cover_data,
            "isbn": self.isbn,
            "publisher": self.publisher,
            "publishedDate": self.published_date,
            "description": self.description,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Book:
        """Build a Book from its wire (camelCase) representation."""
        return cls(
            id=data["id"],
            title=data["title"],
            created_at=data.get("createdAt") or "",
            author=data.get("author"),
            year_read=data.get("yearRead"),
            rating=data.get("rating"),
            notes=data.get("notes"),
            cover_url=data.get("coverUrl"),
            cover_data=data.get("coverData"),
            isbn=data.get("isbn"),
            publisher=data.get("publisher"),
            published_date=data.get("publishedDate"),
            description=data.get("description"),
        )


@dataclass
class ExternalBook:
    id: str
    title: str = "Unknown Title"
    author: str = "Unknown Author"
    cover_url: str = ""
    isbn: str = ""
    publisher: str = ""
    published_date: str = ""
    description: str = ""
    authors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "coverUrl": self.cover_url,
            "isbn": self.isbn,
            "publisher": self.publisher,
            "publishedDate": self.published_date,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ExternalBook:
        author = data.get("author") or ""
        known = author and author != "Unknown Author"
        return cls(
            id=data["id"],
            title=data.get("title") or "Unknown Title",
            author=author or "Unknown Author",
            cover_url=data.get("coverUrl", ""),
            isbn=data.get("isbn", ""),
            publisher=data.get("publisher", ""),
            published_date=data.get("publishedDate", ""),
            description=data.get("description", ""),
            authors=author.split(", ") if known else [],
        )


@dataclass
class SearchResult:
    books: list[ExternalBook] = field(default_factory=list)
    total_items: int = 0

    def to_dict(self) -> dict:
        return {
            "books": [b.to_dict() for b in self.books],
            "totalItems": self.total_items,
        }


@dataclass
class BookInfo:
    """Title/author guess derived from cover text."""

    title: str = ""
    author: str = ""

    def to_dict(self) -> dict:
        return {"title": self.title, "author": self.author}


@dataclass
class RecognitionResult:
    book_info: BookInfo
    cover_data: str
    raw_text: str
    success: bool = True

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "bookInfo": self.book_info.to_dict(),
            "coverData": self.cover_data,
            "rawText": self.raw_text,
        }


@dataclass
class ImageSearchResult:
    books: list[Book]
    extracted_info: BookInfo
    raw_text: str
    success: bool = True

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "books": [b.to_dict() for b in self.books],
            "extractedInfo": {**self.extracted_info.to_dict(), "rawText": self.raw_text},
        }
