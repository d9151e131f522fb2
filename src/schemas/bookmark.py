"""Pydantic schemas for bookmark records, drafts and change events."""
import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Any RFC 3986 scheme followed by "://" (e.g. "https://", "ftp://", "git+ssh://")
SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://")
DEFAULT_SCHEME = "https://"

BookmarkId = int | str


def normalize_url(url: str) -> str:
    """
    Normalize a user-entered URL so it always carries a scheme.

    Args:
        url: The URL as typed (e.g. "google.com" or "http://example.com").

    Returns:
        The trimmed URL, prefixed with https:// when no scheme is present.
    """
    trimmed = url.strip()
    if SCHEME_PATTERN.match(trimmed):
        return trimmed
    return f"{DEFAULT_SCHEME}{trimmed}"


class Bookmark(BaseModel):
    """
    Canonical bookmark record as stored remotely.

    Frozen so snapshots handed to the shell can't be mutated. Extra columns
    returned by the store are ignored.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: BookmarkId
    title: str
    url: str
    user_id: str
    created_at: datetime

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_user_id(cls, v: Any) -> Any:
        """User ids may arrive as UUID strings or integers depending on the schema."""
        if isinstance(v, int):
            return str(v)
        return v


class BookmarkCreate(BaseModel):
    """Fields sent to the store when inserting a bookmark."""

    title: str = Field(min_length=1)
    url: str = Field(min_length=1)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        """Trim surrounding whitespace from the title."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("Title cannot be empty")
        return stripped

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str) -> str:
        """Normalize the URL so it always has a scheme."""
        if not v.strip():
            raise ValueError("URL cannot be empty")
        return normalize_url(v)


class BookmarkDraft(BaseModel):
    """
    Mutable input state of the bookmark creation form.

    Only cleared after the store has accepted an insert, so a failed submit
    leaves the typed values in place for a retry.
    """

    title: str = ""
    url: str = ""

    @property
    def is_complete(self) -> bool:
        """Both fields contain something other than whitespace."""
        return bool(self.title.strip()) and bool(self.url.strip())

    def clear(self) -> None:
        """Reset both fields."""
        self.title = ""
        self.url = ""

    def to_create(self) -> BookmarkCreate:
        """Build the insert payload from the current input."""
        return BookmarkCreate(title=self.title, url=self.url)


class BookmarkInserted(BaseModel):
    """A bookmark row was inserted remotely."""

    model_config = ConfigDict(frozen=True)

    record: Bookmark


class BookmarkUpdated(BaseModel):
    """A bookmark row was updated remotely."""

    model_config = ConfigDict(frozen=True)

    record: Bookmark


class BookmarkDeleted(BaseModel):
    """
    A bookmark row was deleted remotely.

    Delete notifications often carry only the primary key, so the id is the
    only field.
    """

    model_config = ConfigDict(frozen=True)

    id: BookmarkId


ChangeEvent = BookmarkInserted | BookmarkUpdated | BookmarkDeleted
