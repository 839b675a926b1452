"""Typed client for the bookshelf HTTP API.

This is what a presentation layer talks to: every call goes through the
retrying RequestFacade, GET responses are cached until a mutation
invalidates them, and recommendations are computed locally from the
user's books and Google Books searches proxied by the server.
"""

from __future__ import annotations

import random
from collections.abc import Mapping
from urllib.parse import urlencode

import httpx
import structlog

from ..core.errors import BookshelfError, ClientError
from ..core.http import RequestFacade, RetryPolicy
from ..core.models import (
    Book,
    BookInfo,
    ExternalBook,
    ImageSearchResult,
    RecognitionResult,
    SearchResult,
)
from ..core.recommend import RecommendationEngine
from .cache import ResponseCache

log = structlog.get_logger()

BOOKS_PATH = "/api/books"
EXTERNAL_PATH = "/api/external/books"
# Google Books results expire; book records are invalidated on mutation.
EXTERNAL_TTL_SECONDS = 300.0
DEFAULT_BASE_URL = "http://localhost:8000"


class BookshelfClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
        cache: ResponseCache | None = None,
        policy: RetryPolicy | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.http = RequestFacade(base_url, policy=policy, transport=transport)
        self.cache = cache if cache is not None else ResponseCache()
        self.recommender = RecommendationEngine(self._external_books, rng=rng)

    async def _get_json(
        self, path: str, params: dict | None = None, ttl_seconds: float | None = None
    ):
        key = f"{path}?{urlencode(params)}" if params else path
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        resp = await self.http.send("GET", path, params=params)
        data = resp.json()
        self.cache.put(key, data, ttl_seconds)
        return data

    def invalidate_books(self) -> None:
        """Forget cached book listings, lookups and searches."""
        self.cache.invalidate(BOOKS_PATH)

    # Book records

    async def list_books(self) -> list[Book]:
        return [Book.from_dict(b) for b in await self._get_json(BOOKS_PATH)]

    async def get_book(self, book_id: int) -> Book:
        return Book.from_dict(await self._get_json(f"{BOOKS_PATH}/{book_id}"))

    async def create_book(self, fields: Mapping) -> Book:
        resp = await self.http.send("POST", BOOKS_PATH, dict(fields))
        self.invalidate_books()
        return Book.from_dict(resp.json())

    async def update_book(self, book_id: int, fields: Mapping) -> Book:
        resp = await self.http.send("PUT", f"{BOOKS_PATH}/{book_id}", dict(fields))
        self.invalidate_books()
        return Book.from_dict(resp.json())

    async def delete_book(self, book_id: int) -> str:
        resp = await self.http.send("DELETE", f"{BOOKS_PATH}/{book_id}")
        self.invalidate_books()
        return resp.json()["message"]

    async def search_books(self, query: str) -> list[Book]:
        data = await self._get_json(f"{BOOKS_PATH}/search/text", {"q": query})
        return [Book.from_dict(b) for b in data]

    # Cover images

    async def process_cover(
        self, content: bytes, filename: str, content_type: str
    ) -> RecognitionResult:
        resp = await self.http.upload_file(
            f"{BOOKS_PATH}/ocr", content, filename, content_type
        )
        data = resp.json()
        return RecognitionResult(
            book_info=BookInfo(**data["bookInfo"]),
            cover_data=data["coverData"],
            raw_text=data["rawText"],
            success=data["success"],
        )

    async def search_by_image(
        self, content: bytes, filename: str, content_type: str
    ) -> ImageSearchResult:
        resp = await self.http.upload_file(
            f"{BOOKS_PATH}/search/image", content, filename, content_type
        )
        data = resp.json()
        extracted = data["extractedInfo"]
        return ImageSearchResult(
            books=[Book.from_dict(b) for b in data["books"]],
            extracted_info=BookInfo(title=extracted["title"], author=extracted["author"]),
            raw_text=extracted.get("rawText", ""),
            success=data["success"],
        )

    # Google Books

    async def _external_books(self, query: str) -> list[ExternalBook]:
        data = await self._get_json(EXTERNAL_PATH, {"q": query}, EXTERNAL_TTL_SECONDS)
        return [ExternalBook.from_dict(b) for b in data.get("books", [])]

    async def search_external(self, query: str) -> SearchResult:
        """Search Google Books through the server.

        Failures are logged and reported as an empty result.
        """
        try:
            data = await self._get_json(EXTERNAL_PATH, {"q": query}, EXTERNAL_TTL_SECONDS)
        except BookshelfError as e:
            log.warning("external_search_failed", query=query, error=str(e))
            return SearchResult()
        books = [ExternalBook.from_dict(b) for b in data.get("books", [])]
        return SearchResult(books=books, total_items=data.get("totalItems") or len(books))

    async def lookup_isbn(self, isbn: str) -> ExternalBook | None:
        try:
            data = await self._get_json(
                f"{EXTERNAL_PATH}/isbn/{isbn}", ttl_seconds=EXTERNAL_TTL_SECONDS
            )
        except ClientError as e:
            if e.status_code == 404:
                return None
            raise
        return ExternalBook.from_dict(data)

    async def recommendations(self, refresh: bool = False) -> list[ExternalBook]:
        """Suggest books; ``refresh`` drops cached Google Books results first."""
        if refresh:
            self.cache.invalidate(EXTERNAL_PATH)
        return await self.recommender.recommend(await self.list_books())
