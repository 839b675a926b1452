"""Pydantic input models for creating and updating book records."""

from __future__ import annotations

import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MIN_YEAR_READ = 1900


class BookFields(BaseModel):
    """Optional book fields shared by create and update payloads.

    Accepts camelCase keys (``yearRead``) as sent by the web client as well
    as the snake_case attribute names. Unknown keys such as ``id`` or
    ``createdAt`` are ignored.
    """

    author: str | None = None
    year_read: int | None = None
    rating: int | None = Field(default=None, ge=1, le=5)
    notes: str | None = None
    cover_url: str | None = None
    cover_data: str | None = None
    isbn: str | None = None
    publisher: str | None = None
    published_date: str | None = None
    description: str | None = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("year_read")
    @classmethod
    def check_year_read(cls, value: int | None) -> int | None:
        if value is None:
            return value
        current = datetime.date.today().year
        if not MIN_YEAR_READ <= value <= current:
            raise ValueError(f"yearRead must be between {MIN_YEAR_READ} and {current}")
        return value


class BookCreate(BookFields):
    title: str

    @field_validator("title")
    @classmethod
    def check_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be empty")
        return value


class BookUpdate(BookFields):
    """Partial update; only fields present in the payload are applied."""

    title: str | None = None

    @field_validator("title")
    @classmethod
    def check_title(cls, value: str | None) -> str:
        # An explicit null title would leave the record without one.
        if value is None or not value.strip():
            raise ValueError("title must not be empty")
        return value.strip()
