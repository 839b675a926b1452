"""Exception types shared by the store, the HTTP layer and the services."""

from __future__ import annotations


class BookshelfError(Exception):
    """Base class for all bookshelf errors."""


class BookValidationError(BookshelfError):
    """Book input was malformed or out of range."""

    def __init__(self, message: str, errors: list | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class BookNotFoundError(BookshelfError):
    def __init__(self, book_id: int) -> None:
        super().__init__(f"Book {book_id} not found")
        self.book_id = book_id


class TransientError(BookshelfError):
    """Network failure, timeout or 5xx response. Safe to retry."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ClientError(BookshelfError):
    """4xx response. Never retried."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamUnavailable(BookshelfError):
    """External metadata API could not be reached after retries."""


class UpstreamError(BookshelfError):
    """External metadata API rejected the request."""


class RecognitionFailure(BookshelfError):
    """The OCR engine could not read the image."""
