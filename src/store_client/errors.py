"""
Error parsing for calls to the remote store.

REST, auth and transport failures are all reduced to a StoreError carrying a
semantic category, so callers can log and branch on one type regardless of
which backend service produced the failure.
"""

from typing import Any, Literal

import httpx

ErrorCategory = Literal[
    "auth",         # 401 - Invalid or expired token
    "forbidden",    # 403 - Access denied (e.g. row level security)
    "not_found",    # 404 - Table or resource not found
    "validation",   # 400/422 - Rejected payload
    "conflict",     # 409 - Unique constraint violation
    "unavailable",  # Transport failure or timeout, no response
    "internal",     # 5xx or unexpected errors
]


class StoreError(Exception):
    """A call to the remote store failed."""

    def __init__(
        self,
        category: ErrorCategory,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.category = category
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def __repr__(self) -> str:
        return f"StoreError(category={self.category!r}, message={self.message!r})"


def parse_http_error(  # noqa: PLR0911
    e: httpx.HTTPStatusError,
    entity_type: str = "",
) -> StoreError:
    """
    Parse an HTTP status error into a StoreError.

    Args:
        e: The HTTP status error from httpx
        entity_type: Type of entity (e.g., "bookmark") for error messages

    Returns:
        StoreError with category, message, and the response status code
    """
    status = e.response.status_code
    detail = _extract_message(e)

    if status == 401:
        return StoreError("auth", detail or "Invalid or expired token", status)

    if status == 403:
        return StoreError("forbidden", detail or "Access denied", status)

    if status == 404:
        msg = f"{entity_type.title()} not found" if entity_type else "Not found"
        return StoreError("not_found", detail or msg, status)

    if status == 409:
        return StoreError("conflict", detail or "Conflicting row already exists", status)

    if status in (400, 422):
        return StoreError("validation", detail or "Validation error", status)

    return StoreError("internal", f"API error {status}", status)


def from_transport_error(e: httpx.TransportError) -> StoreError:
    """Wrap a connection failure or timeout."""
    return StoreError("unavailable", f"Store unreachable: {e.__class__.__name__}")


def _extract_message(e: httpx.HTTPStatusError) -> str:
    """
    Extract a human-readable message from an error body.

    PostgREST returns {"message", "details", "hint", "code"}; the auth service
    returns {"error_description"} or {"msg"}. Anything else yields "".
    """
    try:
        body: Any = e.response.json()
    except ValueError:
        return ""
    if not isinstance(body, dict):
        return ""
    for key in ("message", "error_description", "msg", "error"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    return ""
