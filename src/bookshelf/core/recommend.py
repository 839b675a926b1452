"""Suggest books from Google Books based on the user's collection."""

from __future__ import annotations

import asyncio
import random
from collections import Counter
from collections.abc import Awaitable, Callable, Sequence

import structlog

from .models import Book, ExternalBook

log = structlog.get_logger()

MAX_RECOMMENDATIONS = 6
DEFAULT_QUERIES = ("best sellers fiction", "award winning books", "classic literature")
STOP_WORDS = frozenset(
    ["about", "after", "before", "their", "there", "these", "those", "where", "which"]
)

Search = Callable[[str], Awaitable[list[ExternalBook]]]


def top_authors(books: Sequence[Book], limit: int = 2) -> list[str]:
    """Most frequent authors; ties keep first-seen order."""
    counts = Counter(book.author for book in books if book.author)
    return [author for author, _ in counts.most_common(limit)]


def title_keywords(books: Sequence[Book], limit: int = 3) -> list[str]:
    words = [
        word.lower()
        for book in books
        for word in book.title.split()
        if len(word) > 4
    ]
    counts = Counter(word for word in words if word not in STOP_WORDS)
    return [word for word, _ in counts.most_common(limit)]


def most_recent(books: Sequence[Book], limit: int = 2) -> list[Book]:
    return sorted(books, key=lambda b: (b.created_at or "", b.id), reverse=True)[:limit]


class RecommendationEngine:
    """Derive up to six suggestions from authors, title keywords and recent reads.

    ``search`` runs a Google Books query and returns normalized results; any
    exception it raises turns that one query into an empty result.
    """

    def __init__(self, search: Search, rng: random.Random | None = None) -> None:
        self.search = search
        self.rng = rng or random.Random()

    async def _query(self, query: str) -> list[ExternalBook]:
        try:
            return await self.search(query)
        except Exception as e:
            log.warning("recommendation_query_failed", query=query, error=str(e))
            return []

    async def _by_author(self, books: Sequence[Book]) -> list[ExternalBook]:
        authors = top_authors(books)
        results = await asyncio.gather(*(self._query(f'inauthor:"{a}"') for a in authors))
        return [book for result in results for book in result]

    async def _by_keyword(self, books: Sequence[Book]) -> list[ExternalBook]:
        keywords = title_keywords(books)
        if not keywords:
            return []
        return await self._query(" ".join(keywords))

    async def _by_recent(self, books: Sequence[Book]) -> list[ExternalBook]:
        queries = []
        for book in most_recent(books):
            query = book.title
            if book.author:
                # Look for similar books by other writers.
                query = f'{book.title} -inauthor:"{book.author}"'
            queries.append(query)
        results = await asyncio.gather(*(self._query(q) for q in queries))
        return [book for result in results for book in result]

    async def _isolated(
        self,
        name: str,
        heuristic: Callable[[Sequence[Book]], Awaitable[list[ExternalBook]]],
        books: Sequence[Book],
    ) -> list[ExternalBook]:
        try:
            return await heuristic(books)
        except Exception as e:
            log.warning("recommendation_heuristic_failed", heuristic=name, error=str(e))
            return []

    async def defaults(self, exclude: frozenset[str] = frozenset()) -> list[ExternalBook]:
        """Popular books from one randomly chosen fixed query.

        Titles in ``exclude`` are dropped before the cut to six.
        """
        query = self.rng.choice(DEFAULT_QUERIES)
        try:
            results = await self.search(query)
        except Exception as e:
            log.warning("default_recommendations_failed", query=query, error=str(e))
            return []
        return [book for book in results if book.title not in exclude][:MAX_RECOMMENDATIONS]

    async def recommend(self, owned: Sequence[Book]) -> list[ExternalBook]:
        if not owned:
            return await self.defaults()

        batches = await asyncio.gather(
            self._isolated("author", self._by_author, owned),
            self._isolated("keyword", self._by_keyword, owned),
            self._isolated("recent", self._by_recent, owned),
        )

        unique: dict[str, ExternalBook] = {}
        for batch in batches:
            for book in batch:
                unique[book.id] = book

        owned_titles = frozenset(book.title for book in owned)
        candidates = [book for book in unique.values() if book.title not in owned_titles]
        log.info(
            "recommendations",
            owned=len(owned),
            candidates=len(unique),
            kept=len(candidates),
        )
        if not candidates:
            return await self.defaults(exclude=owned_titles)
        return candidates[:MAX_RECOMMENDATIONS]
