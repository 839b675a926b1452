"""Read book covers: OCR, title/author guess, metadata enrichment."""

from __future__ import annotations

import asyncio
import base64
import io
import re
from collections.abc import Callable

import pytesseract
import structlog
from PIL import Image

from .errors import RecognitionFailure, UpstreamError, UpstreamUnavailable
from .metadata import MetadataClient
from .models import BookInfo, ImageSearchResult, RecognitionResult
from .store import BookStore

log = structlog.get_logger()

# Takes raw image bytes, returns the recognized text.
OcrEngine = Callable[[bytes], str]

_AUTHOR_MARKER = re.compile(r"by |author:", re.IGNORECASE)


def parse_cover_text(raw_text: str) -> BookInfo:
    """Guess title and author from OCR text.

    The first non-empty line is the title. The author is the first later
    line containing "by " or "author:" (marker removed), or the second
    line when no marker is present.
    """
    lines = [line.strip() for line in raw_text.splitlines() if line.strip()]
    if not lines:
        return BookInfo()

    title = lines[0]
    author = ""
    for line in lines[1:]:
        lowered = line.lower()
        if "by " in lowered or "author:" in lowered:
            author = _AUTHOR_MARKER.sub("", line, count=1).strip()
            break

    if not author and len(lines) > 1:
        author = lines[1]

    return BookInfo(title=title, author=author)


def tesseract_engine(lang: str = "eng", tesseract_cmd: str = "") -> OcrEngine:
    """Build an OCR engine backed by the Tesseract binary."""
    if tesseract_cmd:
        pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def recognize(content: bytes) -> str:
        try:
            with Image.open(io.BytesIO(content)) as image:
                return pytesseract.image_to_string(image, lang=lang)
        except (pytesseract.TesseractError, Image.DecompressionBombError, OSError) as e:
            raise RecognitionFailure(f"Could not read text from image: {e}") from e

    return recognize


def data_url(content: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(content).decode('ascii')}"


class CoverRecognizer:
    """Turn an uploaded cover photo into a book guess.

    OCR failures raise RecognitionFailure. Metadata lookups are best-effort:
    when Google Books is unreachable the OCR guess is returned as is.
    """

    def __init__(self, engine: OcrEngine, metadata: MetadataClient | None = None) -> None:
        self.engine = engine
        self.metadata = metadata

    async def extract_text(self, content: bytes) -> str:
        try:
            text = await asyncio.to_thread(self.engine, content)
        except RecognitionFailure as e:
            log.error("ocr_failed", size=len(content), error=str(e))
            raise
        except Exception as e:
            log.exception("ocr_failed", size=len(content), error=str(e))
            raise RecognitionFailure(f"Could not read text from image: {e}") from e
        log.debug("ocr_complete", size=len(content), chars=len(text))
        return text

    async def enrich(self, info: BookInfo) -> BookInfo:
        """Fill empty fields of ``info`` from the best Google Books match.

        Values read from the cover take precedence; the lookup only fills
        gaps.
        """
        if not info.title or self.metadata is None:
            return info
        try:
            result = await self.metadata.search(info.title, max_results=1)
        except (UpstreamUnavailable, UpstreamError) as e:
            log.warning("cover_enrichment_failed", title=info.title, error=str(e))
            return info

        if not result.books:
            return info
        match = result.books[0]
        enriched = BookInfo(
            title=info.title or match.title,
            author=info.author or (match.authors[0] if match.authors else ""),
        )
        log.debug("cover_enriched", ocr=info.to_dict(), enriched=enriched.to_dict())
        return enriched

    async def recognize(self, content: bytes, content_type: str) -> RecognitionResult:
        raw_text = await self.extract_text(content)
        info = await self.enrich(parse_cover_text(raw_text))
        return RecognitionResult(
            book_info=info,
            cover_data=data_url(content, content_type),
            raw_text=raw_text,
        )

    async def search_store(self, content: bytes, store: BookStore) -> ImageSearchResult:
        """Search the user's books using the title (or author) on the cover."""
        raw_text = await self.extract_text(content)
        info = parse_cover_text(raw_text)
        books = store.search(info.title or info.author)
        log.info("image_search", title=info.title, author=info.author, matches=len(books))
        return ImageSearchResult(books=books, extracted_info=info, raw_text=raw_text)
