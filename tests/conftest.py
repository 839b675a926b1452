"""Shared fixtures: in-memory store, fake Google Books, fake OCR."""

import httpx
import pytest
from fastapi.testclient import TestClient

from bookshelf.core.config import Settings
from bookshelf.core.errors import RecognitionFailure
from bookshelf.core.http import RetryPolicy
from bookshelf.core.metadata import MetadataClient
from bookshelf.core.recognition import CoverRecognizer
from bookshelf.core.store import BookStore
from bookshelf.web.app import create_app

NO_WAIT = RetryPolicy(max_retries=2, base_delay=0, backoff=1, retry_server_errors=False)


def volume(volume_id, title, authors=None, isbn=None, **info):
    """Build a Google Books volume item."""
    data = {"title": title, **info}
    if authors is not None:
        data["authors"] = authors
    if isbn:
        data["industryIdentifiers"] = [{"type": "ISBN_13", "identifier": isbn}]
    return {"id": volume_id, "volumeInfo": data}


class FakeGoogleBooks:
    """Answers Google Books volume queries from a dict of query -> items.

    Records every query it receives. Queries listed in ``failing`` answer
    with a network error.
    """

    def __init__(self, responses=None, default=None, failing=()):
        self.responses = responses or {}
        self.default = default or []
        self.failing = set(failing)
        self.queries = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        query = request.url.params.get("q", "")
        self.queries.append(query)
        if query in self.failing:
            raise httpx.ConnectError("connection refused", request=request)
        items = self.responses.get(query, self.default)
        return httpx.Response(200, json={"totalItems": len(items), "items": items})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def client(self) -> MetadataClient:
        return MetadataClient(
            api_url="https://books.test/volumes", policy=NO_WAIT, transport=self.transport()
        )


class FakeOcr:
    """OCR engine returning canned text, or failing when ``text`` is None."""

    def __init__(self, text="Dune\nFrank Herbert"):
        self.text = text
        self.calls = 0

    def __call__(self, content: bytes) -> str:
        self.calls += 1
        if self.text is None:
            raise RecognitionFailure("tesseract crashed")
        return self.text


@pytest.fixture
def store():
    book_store = BookStore(":memory:")
    yield book_store
    book_store.close()


@pytest.fixture
def google():
    return FakeGoogleBooks()


@pytest.fixture
def ocr():
    return FakeOcr()


@pytest.fixture
def app(store, google, ocr):
    metadata = google.client()
    return create_app(
        settings=Settings(),
        store=store,
        metadata=metadata,
        recognizer=CoverRecognizer(ocr, metadata),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
