"""Tests for the API client and its response cache."""

import asyncio
import random

import httpx
import pytest

from bookshelf.client.cache import ResponseCache
from bookshelf.client.service import BookshelfClient
from bookshelf.core.errors import ClientError
from bookshelf.core.http import RetryPolicy

from conftest import volume

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def api_client(app, **kwargs):
    return BookshelfClient(
        "http://testserver",
        transport=httpx.ASGITransport(app=app),
        policy=RetryPolicy(base_delay=0),
        **kwargs,
    )


class TestResponseCache:
    def test_put_get(self):
        cache = ResponseCache()
        cache.put("/api/books", [1])
        assert cache.get("/api/books") == [1]
        assert "/api/books" in cache
        assert cache.get("/missing") is None

    def test_invalidate_prefix(self):
        cache = ResponseCache()
        cache.put("/api/books", [])
        cache.put("/api/books/1", {})
        cache.put("/api/books/search/text?q=dune", [])
        cache.put("/api/external/books?q=dune", {})
        assert cache.invalidate("/api/books") == 3
        assert len(cache) == 1
        assert cache.get("/api/external/books?q=dune") == {}

    def test_ttl_expiry(self):
        cache = ResponseCache(ttl_seconds=0)
        cache.put("k", "v")
        # monotonic() may not advance between calls; force the entry to be old.
        cache._entries["k"] = ("v", cache._entries["k"][1] - 1)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self):
        cache = ResponseCache()
        cache.put("/api/books", [])
        cache.put("/api/external/books?q=dune", {}, ttl_seconds=60)
        value, expires_at = cache._entries["/api/external/books?q=dune"]
        cache._entries["/api/external/books?q=dune"] = (value, expires_at - 61)
        assert cache.get("/api/external/books?q=dune") is None
        assert cache.get("/api/books") == []

    def test_clear(self):
        cache = ResponseCache()
        cache.put("a", 1)
        cache.clear()
        assert len(cache) == 0


class TestBookshelfClient:
    def test_crud_round(self, app):
        client = api_client(app)

        async def scenario():
            created = await client.create_book({"title": "Dune", "author": "Frank Herbert"})
            fetched = await client.get_book(created.id)
            updated = await client.update_book(created.id, {"rating": 4})
            listed = await client.list_books()
            message = await client.delete_book(created.id)
            return created, fetched, updated, listed, message

        created, fetched, updated, listed, message = asyncio.run(scenario())
        assert fetched == created
        assert updated.rating == 4
        assert updated.author == "Frank Herbert"
        assert [b.id for b in listed] == [created.id]
        assert message == "Book deleted successfully"

    def test_mutation_invalidates_cached_list(self, app):
        client = api_client(app)

        async def scenario():
            first = await client.list_books()
            await client.create_book({"title": "Emma"})
            second = await client.list_books()
            return first, second

        first, second = asyncio.run(scenario())
        assert first == []
        assert [b.title for b in second] == ["Emma"]

    def test_list_served_from_cache(self, app, store):
        client = api_client(app)

        async def scenario():
            await client.list_books()
            # Written behind the client's back, so the cached listing is kept.
            store.create({"title": "Hidden"})
            return await client.list_books()

        assert asyncio.run(scenario()) == []

    def test_validation_error_surfaces(self, app):
        client = api_client(app)
        with pytest.raises(ClientError) as excinfo:
            asyncio.run(client.create_book({"title": ""}))
        assert excinfo.value.status_code == 400
        assert str(excinfo.value) == "Invalid book data"

    def test_missing_book(self, app):
        client = api_client(app)
        with pytest.raises(ClientError) as excinfo:
            asyncio.run(client.get_book(404))
        assert excinfo.value.status_code == 404

    def test_search_books(self, app, store):
        store.create({"title": "Dune", "description": "Desert planet"})
        client = api_client(app)
        results = asyncio.run(client.search_books("DESERT"))
        assert [b.title for b in results] == ["Dune"]

    def test_process_cover(self, app, ocr):
        ocr.text = "The Hobbit\nby J.R.R. Tolkien\nAllen & Unwin"
        client = api_client(app)
        result = asyncio.run(client.process_cover(PNG, "hobbit.png", "image/png"))
        assert result.book_info.title == "The Hobbit"
        assert result.book_info.author == "J.R.R. Tolkien"
        assert result.cover_data.startswith("data:image/png;base64,")

    def test_search_by_image(self, app, store, ocr):
        store.create({"title": "Dune", "author": "Frank Herbert"})
        ocr.text = "Dune\nFrank Herbert"
        client = api_client(app)
        result = asyncio.run(client.search_by_image(PNG, "dune.jpg", "image/jpeg"))
        assert [b.title for b in result.books] == ["Dune"]
        assert result.extracted_info.author == "Frank Herbert"

    def test_search_external(self, app, google):
        google.responses["kindred"] = [volume("k1", "Kindred", ["Octavia E. Butler"])]
        client = api_client(app)
        result = asyncio.run(client.search_external("kindred"))
        assert [b.title for b in result.books] == ["Kindred"]
        assert result.books[0].authors == ["Octavia E. Butler"]

    def test_search_external_degrades_to_empty(self, app, google):
        google.failing.add("kindred")
        client = api_client(app)
        result = asyncio.run(client.search_external("kindred"))
        assert result.books == []
        assert result.total_items == 0

    def test_lookup_isbn_missing(self, app):
        client = api_client(app)
        assert asyncio.run(client.lookup_isbn("0000000000")) is None

    def test_recommendations_exclude_owned(self, app, store, google):
        store.create({"title": "Dune", "author": "Frank Herbert"})
        google.default = [volume("d1", "Dune", ["Frank Herbert"]), volume("h1", "Hyperion", ["Dan Simmons"])]
        client = api_client(app)
        results = asyncio.run(client.recommendations())
        assert [r.title for r in results] == ["Hyperion"]

    def test_recommendations_empty_collection(self, app, google):
        google.default = [volume(str(i), f"Classic {i}") for i in range(8)]
        client = api_client(app, rng=random.Random(1))
        results = asyncio.run(client.recommendations())
        assert len(results) == 6
        assert len(google.queries) == 1

    def test_external_results_cached_with_expiry(self, app, google):
        google.responses["kindred"] = [volume("k1", "Kindred", ["Octavia E. Butler"])]
        client = api_client(app)

        async def scenario():
            await client.search_external("kindred")
            await client.search_external("kindred")

        asyncio.run(scenario())
        assert google.queries == ["kindred"]
        _, expires_at = client.cache._entries["/api/external/books?q=kindred"]
        assert expires_at is not None

    def test_refresh_recommendations_refetches(self, app, store, google):
        store.create({"title": "Dune", "author": "Frank Herbert"})
        google.default = [volume("h1", "Hyperion", ["Dan Simmons"])]
        client = api_client(app)

        async def scenario():
            await client.recommendations()
            first = len(google.queries)
            await client.recommendations()
            assert len(google.queries) == first
            results = await client.recommendations(refresh=True)
            assert len(google.queries) == 2 * first
            return results

        assert [r.title for r in asyncio.run(scenario())] == ["Hyperion"]
