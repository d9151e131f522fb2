"""Application configuration using pydantic-settings."""
from pathlib import Path

from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Required settings and the environment variable names accepted for each
REQUIRED_ENV_VARS = {
    "supabase_url": ("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"),
    "supabase_anon_key": ("SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"),
}


class ConfigurationError(Exception):
    """
    Raised when required settings are missing or invalid.

    Fatal at startup: no store connection may be created once this is raised.
    """

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        self.missing = missing or []
        super().__init__(message)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Backend service - both values are required, the NEXT_PUBLIC_ names are
    # accepted so an existing web frontend .env can be reused as-is
    supabase_url: str = Field(
        validation_alias=AliasChoices(*REQUIRED_ENV_VARS["supabase_url"]),
    )
    supabase_anon_key: str = Field(
        validation_alias=AliasChoices(*REQUIRED_ENV_VARS["supabase_anon_key"]),
    )

    bookmarks_table: str = Field(default="bookmarks", validation_alias="BOOKMARKS_TABLE")

    # Transport timeout for REST/auth calls, in seconds
    request_timeout: float = Field(default=30.0, validation_alias="STORE_REQUEST_TIMEOUT")
    realtime_heartbeat_interval: float = Field(
        default=25.0, validation_alias="REALTIME_HEARTBEAT_INTERVAL",
    )

    session_file: Path = Field(
        default=Path("~/.smart-bookmarks/session.json"),
        validation_alias="SESSION_FILE",
    )
    log_level: str = Field(default="WARNING", validation_alias="LOG_LEVEL")

    @field_validator("supabase_url", "supabase_anon_key")
    @classmethod
    def check_not_blank(cls, v: str) -> str:
        """Reject empty values so a blank line in .env counts as missing."""
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("supabase_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the service URL so paths can be appended directly."""
        return v.rstrip("/")

    @field_validator("session_file")
    @classmethod
    def expand_session_file(cls, v: Path) -> Path:
        """Expand ~ in the session file path."""
        return v.expanduser()

    @property
    def rest_url(self) -> str:
        """Base URL of the REST (PostgREST) API."""
        return f"{self.supabase_url}/rest/v1"

    @property
    def auth_url(self) -> str:
        """Base URL of the auth API."""
        return f"{self.supabase_url}/auth/v1"

    @property
    def realtime_url(self) -> str:
        """Websocket URL of the realtime service."""
        if self.supabase_url.startswith("https://"):
            base = "wss://" + self.supabase_url.removeprefix("https://")
        elif self.supabase_url.startswith("http://"):
            base = "ws://" + self.supabase_url.removeprefix("http://")
        else:
            base = self.supabase_url
        return f"{base}/realtime/v1/websocket?apikey={self.supabase_anon_key}&vsn=1.0.0"


def load_settings(**overrides: object) -> Settings:
    """
    Load settings, converting validation failures into ConfigurationError.

    Args:
        **overrides: Explicit values passed through to Settings (mainly for tests).

    Returns:
        The validated Settings instance.

    Raises:
        ConfigurationError: If a required setting is missing or invalid.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        missing = []
        for error in e.errors():
            field = str(error["loc"][0]).lower() if error["loc"] else ""
            for name, env_names in REQUIRED_ENV_VARS.items():
                if field == name or field in {n.lower() for n in env_names}:
                    missing.append(env_names[0])
        if not missing:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
        missing = sorted(set(missing))
        raise ConfigurationError(
            f"Missing required settings: {', '.join(missing)}. "
            "Set them in the environment or in a .env file in the working directory "
            "(NEXT_PUBLIC_SUPABASE_URL and NEXT_PUBLIC_SUPABASE_ANON_KEY are also accepted), "
            "then restart. Both values are shown in your project's API settings.",
            missing=missing,
        ) from e
