"""FastAPI web application for Bookshelf."""

from __future__ import annotations

import os
from datetime import datetime, timezone

import structlog
import uvicorn
from dotenv import load_dotenv
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from ..core.config import Settings
from ..core.errors import (
    BookNotFoundError,
    BookValidationError,
    RecognitionFailure,
    UpstreamError,
    UpstreamUnavailable,
)
from ..core.metadata import MetadataClient
from ..core.recognition import CoverRecognizer, tesseract_engine
from ..core.store import BookStore

load_dotenv()

log = structlog.get_logger()

VERSION = "0.1.0"
COVER_FIELD = "cover"

router = APIRouter()


class UploadRejected(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def _store(request: Request) -> BookStore:
    return request.app.state.store


def _parse_id(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise BookValidationError("Invalid book ID") from None


async def _read_cover(request: Request) -> tuple[bytes, str]:
    """Return (content, content_type) of the uploaded cover image."""
    max_bytes = request.app.state.settings.max_upload_bytes
    content_length = request.headers.get("content-length")
    if content_length and not content_length.isdigit():
        raise UploadRejected("Invalid Content-Length header", 400)
    # Multipart framing adds a little on top of the file itself.
    if content_length and int(content_length) > max_bytes + 64 * 1024:
        raise UploadRejected(f"File too large (max {max_bytes // (1024 * 1024)}MB).", 413)

    form = await request.form()
    upload = form.get(COVER_FIELD)
    if not isinstance(upload, UploadFile):
        raise UploadRejected("No file uploaded", 400)

    content_type = upload.content_type or ""
    if not content_type.startswith("image/"):
        raise UploadRejected("Only image uploads are accepted", 400)

    content = await upload.read()
    if len(content) > max_bytes:
        raise UploadRejected(f"File too large (max {max_bytes // (1024 * 1024)}MB).", 413)
    if not content:
        raise UploadRejected("No file uploaded", 400)
    return content, content_type


@router.get("/health")
async def health(request: Request):
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
        "environment": request.app.state.settings.environment,
    }


@router.get("/api/books")
async def list_books(request: Request):
    return [book.to_dict() for book in _store(request).all()]


@router.get("/api/books/search/text")
async def search_books(request: Request, q: str | None = None):
    if not q:
        return JSONResponse({"message": "Search query is required"}, status_code=400)
    return [book.to_dict() for book in _store(request).search(q)]


@router.get("/api/books/{book_id}")
async def get_book(request: Request, book_id: str):
    book_id = _parse_id(book_id)
    book = _store(request).get(book_id)
    if book is None:
        raise BookNotFoundError(book_id)
    return book.to_dict()


@router.post("/api/books")
async def create_book(request: Request):
    body = await _json_body(request)
    book = _store(request).create(body)
    return JSONResponse(book.to_dict(), status_code=201)


@router.put("/api/books/{book_id}")
async def update_book(request: Request, book_id: str):
    book_id = _parse_id(book_id)
    body = await _json_body(request)
    book = _store(request).update(book_id, body)
    if book is None:
        raise BookNotFoundError(book_id)
    return book.to_dict()


@router.delete("/api/books/{book_id}")
async def delete_book(request: Request, book_id: str):
    book_id = _parse_id(book_id)
    if not _store(request).delete(book_id):
        raise BookNotFoundError(book_id)
    return {"message": "Book deleted successfully"}


@router.post("/api/books/ocr")
async def process_cover(request: Request):
    content, content_type = await _read_cover(request)
    result = await request.app.state.recognizer.recognize(content, content_type)
    log.info(
        "cover_processed",
        size=len(content),
        title=result.book_info.title,
        author=result.book_info.author,
    )
    return result.to_dict()


@router.post("/api/books/search/image")
async def search_by_image(request: Request):
    content, _ = await _read_cover(request)
    result = await request.app.state.recognizer.search_store(content, _store(request))
    return result.to_dict()


@router.get("/api/external/books")
async def search_external(request: Request, q: str | None = None):
    if not q:
        return JSONResponse({"message": "Search query is required"}, status_code=400)
    result = await request.app.state.metadata.search(q)
    return result.to_dict()


@router.get("/api/external/books/isbn/{isbn}")
async def lookup_isbn(request: Request, isbn: str):
    book = await request.app.state.metadata.lookup_isbn(isbn.strip().replace("-", ""))
    if book is None:
        return JSONResponse({"message": "Book not found with provided ISBN"}, status_code=404)
    return book.to_dict()


async def _json_body(request: Request):
    try:
        return await request.json()
    except ValueError:
        raise BookValidationError("Invalid book data: body is not valid JSON") from None


def _error(message: str, status_code: int, **extra) -> JSONResponse:
    return JSONResponse({"message": message, **extra}, status_code=status_code)


async def _validation_error(request: Request, exc: BookValidationError):
    log.info("validation_error", path=request.url.path, error=str(exc))
    return _error(str(exc), 400, errors=exc.errors)


async def _not_found(request: Request, exc: BookNotFoundError):
    return _error("Book not found", 404)


async def _upload_rejected(request: Request, exc: UploadRejected):
    return _error(str(exc), exc.status_code)


async def _recognition_failed(request: Request, exc: RecognitionFailure):
    log.error("recognition_failed", path=request.url.path, error=str(exc))
    return _error("Error processing image", 500, error=str(exc))


async def _upstream_unavailable(request: Request, exc: UpstreamUnavailable):
    return _error(str(exc), 503)


async def _upstream_error(request: Request, exc: UpstreamError):
    return _error(str(exc), 502)


async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


def create_app(
    settings: Settings | None = None,
    store: BookStore | None = None,
    metadata: MetadataClient | None = None,
    recognizer: CoverRecognizer | None = None,
) -> FastAPI:
    """Build the application; collaborators default to ones built from settings."""
    settings = settings or Settings.from_env()
    if store is None:
        store = BookStore(settings.database)
    if metadata is None:
        metadata = MetadataClient(
            api_url=settings.google_books_url,
            api_key=settings.google_books_api_key,
            timeout=settings.metadata_timeout,
        )
    if recognizer is None:
        engine = tesseract_engine(settings.ocr_lang, settings.tesseract_cmd)
        recognizer = CoverRecognizer(engine, metadata)

    app = FastAPI(title="Bookshelf", version=VERSION, docs_url=None, redoc_url=None)
    app.state.settings = settings
    app.state.store = store
    app.state.metadata = metadata
    app.state.recognizer = recognizer

    app.middleware("http")(security_headers)
    app.add_exception_handler(BookValidationError, _validation_error)
    app.add_exception_handler(BookNotFoundError, _not_found)
    app.add_exception_handler(UploadRejected, _upload_rejected)
    app.add_exception_handler(RecognitionFailure, _recognition_failed)
    app.add_exception_handler(UpstreamUnavailable, _upstream_unavailable)
    app.add_exception_handler(UpstreamError, _upstream_error)
    app.include_router(router)

    log.info("app_created", database=settings.database, environment=settings.environment)
    return app


def main():
    port = int(os.environ.get("PORT", "8000"))
    is_dev = os.environ.get("ENV", "dev") == "dev"
    uvicorn.run(
        "bookshelf.web.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=port,
        reload=is_dev,
    )
