"""
Persistence of the signed-in session between process activations.

The session is stored as JSON in a single file owned by the current user.
Missing or unreadable files mean "not signed in" rather than an error.
"""

import logging
import os
from pathlib import Path

from pydantic import ValidationError

from schemas.session import AuthSession

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when signing in fails."""

    pass


class SessionStorage:
    """Reads and writes the AuthSession file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> AuthSession | None:
        """
        Load the stored session.

        Returns:
            The session, or None if there is no usable session file.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Could not read session file %s: %s", self.path, e)
            return None
        try:
            return AuthSession.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring corrupt session file %s", self.path)
            return None

    def save(self, session: AuthSession) -> None:
        """
        Write the session, readable only by the owner.

        The file is created with mode 0600 and moved into place, so the
        tokens are never on disk with wider permissions.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.unlink(missing_ok=True)
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(session.model_dump_json())
        os.replace(tmp_path, self.path)

    def clear(self) -> None:
        """Delete the session file if present."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
