"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_GOOGLE_BOOKS_URL = "https://www.googleapis.com/books/v1/volumes"
MAX_UPLOAD_BYTES = 5 * 1024 * 1024


@dataclass(frozen=True)
class Settings:
    database: str = ":memory:"
    google_books_url: str = DEFAULT_GOOGLE_BOOKS_URL
    google_books_api_key: str = ""
    metadata_timeout: float = 10.0
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    ocr_lang: str = "eng"
    tesseract_cmd: str = ""
    environment: str = "dev"

    @classmethod
    def from_env(cls) -> Settings:
        database = os.environ.get("BOOKSHELF_DB", "")
        if not database:
            data_dir = Path(os.environ.get("DATA_DIR", ".data"))
            data_dir.mkdir(parents=True, exist_ok=True)
            database = str(data_dir / "bookshelf.db")

        return cls(
            database=database,
            google_books_url=os.environ.get("GOOGLE_BOOKS_URL", DEFAULT_GOOGLE_BOOKS_URL),
            google_books_api_key=os.environ.get("GOOGLE_BOOKS_API_KEY", ""),
            metadata_timeout=float(os.environ.get("METADATA_TIMEOUT", "10")),
            max_upload_bytes=int(os.environ.get("MAX_UPLOAD_BYTES", MAX_UPLOAD_BYTES)),
            ocr_lang=os.environ.get("OCR_LANG", "eng"),
            tesseract_cmd=os.environ.get("TESSERACT_CMD", ""),
            environment=os.environ.get("ENV", "dev"),
        )
