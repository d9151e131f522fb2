"""Shared exceptions for service layer operations."""


class InvalidStateError(Exception):
    """
    Raised when an operation is invalid for the collection's current state.

    Used for lifecycle misuse, e.g. activating a collection twice or
    submitting a bookmark before an identity has been activated.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
