"""Schemas for the authenticated identity and its persisted session."""
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


class Identity(BaseModel):
    """
    The authenticated principal whose bookmarks are visible.

    Built from the auth service's user object. Display fields come from
    user_metadata and may be missing for password-only accounts.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    email: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None

    @model_validator(mode="before")
    @classmethod
    def extract_metadata(cls, data: Any) -> Any:
        """Flatten user_metadata into display_name and avatar_url."""
        if not isinstance(data, dict):
            return data
        metadata = data.get("user_metadata") or {}
        result = dict(data)
        result.setdefault(
            "display_name", metadata.get("full_name") or metadata.get("name"),
        )
        result.setdefault("avatar_url", metadata.get("avatar_url"))
        return result

    @property
    def label(self) -> str:
        """Best available human-readable name."""
        return self.display_name or self.email or self.id


class AuthSession(BaseModel):
    """Tokens returned by a sign-in, persisted between process activations."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"
    expires_at: int | None = None
    user: Identity | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        """True when the access token's expiry time has passed."""
        if self.expires_at is None:
            return False
        now = now or datetime.now(UTC)
        return now.timestamp() >= self.expires_at
