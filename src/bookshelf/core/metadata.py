"""Search the Google Books API and normalize its volumes."""

from __future__ import annotations

import httpx
import structlog

from .config import DEFAULT_GOOGLE_BOOKS_URL
from .errors import ClientError, TransientError, UpstreamError, UpstreamUnavailable
from .http import RequestFacade, RetryPolicy
from .models import ExternalBook, SearchResult

log = structlog.get_logger()

# Google Books requests retry only on network errors and timeouts, with a
# fixed one second pause.
METADATA_RETRY = RetryPolicy(
    max_retries=2, base_delay=1.0, backoff=1.0, retry_server_errors=False
)


def normalize_volume(item: dict) -> ExternalBook:
    """Map a Google Books volume to an ExternalBook."""
    info = item.get("volumeInfo") or {}
    authors = [a for a in info.get("authors") or [] if a]

    isbn = ""
    for identifier in info.get("industryIdentifiers") or []:
        if identifier.get("type") in ("ISBN_13", "ISBN_10"):
            isbn = identifier.get("identifier", "")
            break

    return ExternalBook(
        id=str(item.get("id", "")),
        title=info.get("title") or "Unknown Title",
        author=", ".join(authors) if authors else "Unknown Author",
        cover_url=(info.get("imageLinks") or {}).get("thumbnail", ""),
        isbn=isbn,
        publisher=info.get("publisher", ""),
        published_date=info.get("publishedDate", ""),
        description=info.get("description", ""),
        authors=authors,
    )


class MetadataClient:
    """Queries Google Books by free text or ISBN.

    Raises UpstreamUnavailable when the API cannot be reached after retries
    (or answers 5xx) and UpstreamError when it rejects the query.
    """

    def __init__(
        self,
        api_url: str = DEFAULT_GOOGLE_BOOKS_URL,
        api_key: str = "",
        timeout: float = 10.0,
        policy: RetryPolicy = METADATA_RETRY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout
        self.http = RequestFacade(policy=policy, transport=transport)

    async def _volumes(self, query: str, max_results: int) -> dict:
        params: dict = {"q": query, "maxResults": max_results}
        if self.api_key:
            params["key"] = self.api_key
        try:
            resp = await self.http.send("GET", self.api_url, params=params, timeout=self.timeout)
        except TransientError as e:
            log.error("google_books_unavailable", query=query, error=str(e))
            raise UpstreamUnavailable(
                "Unable to reach Google Books API after multiple attempts"
            ) from e
        except ClientError as e:
            log.error("google_books_rejected", query=query, status=e.status_code, error=str(e))
            raise UpstreamError(f"Google Books API rejected the query: {e}") from e

        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError("Google Books API returned invalid JSON") from e

    async def search(self, query: str, max_results: int = 10) -> SearchResult:
        data = await self._volumes(query, max_results)
        books = [normalize_volume(item) for item in data.get("items") or []]
        log.debug("google_books_search", query=query, results=len(books))
        return SearchResult(books=books, total_items=data.get("totalItems") or len(books))

    async def lookup_isbn(self, isbn: str) -> ExternalBook | None:
        """Return the first volume matching ``isbn``, or None."""
        result = await self.search(f"isbn:{isbn}", max_results=1)
        if not result.books:
            log.debug("google_books_isbn_miss", isbn=isbn)
            return None
        return result.books[0]
