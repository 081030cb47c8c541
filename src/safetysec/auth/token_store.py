"""
Session token file.

Keeps the current session token on disk so a new process can resume the
session.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional

from loguru import logger

TOKEN_KEY = "session_token"


class TokenStore:
    """
    Owner-only JSON file holding one session token.

    Writes go through a temporary file and an atomic rename, so a reader
    never sees a half-written token. Unreadable content is removed.
    """

    def __init__(self, token_file: Path):
        """
        Initialize token store.

        Args:
            token_file: JSON file holding the session token
        """
        self.token_file = Path(token_file)

    def load(self) -> Optional[str]:
        """
        Stored token, or None.

        A file that does not hold a token string is deleted.
        """
        try:
            data = json.loads(self.token_file.read_text())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Discarding unreadable session file {self.token_file}: {e}")
            self.clear()
            return None

        token = data.get(TOKEN_KEY) if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            logger.warning(f"Discarding session file without a token: {self.token_file}")
            self.clear()
            return None
        return token

    def save(self, token: str) -> bool:
        """
        Replace the stored token.

        Returns:
            False if the file could not be written; the session then only
            lasts for this process
        """
        directory = self.token_file.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=".session-")
        except OSError as e:
            logger.error(f"Failed to save session token: {e}")
            return False

        try:
            with os.fdopen(fd, "w") as f:
                json.dump({TOKEN_KEY: token}, f)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.token_file)
        except OSError as e:
            logger.error(f"Failed to save session token: {e}")
            Path(tmp_name).unlink(missing_ok=True)
            return False

        logger.debug(f"Session token saved to {self.token_file}")
        return True

    def clear(self) -> None:
        """Delete the stored token, if any."""
        try:
            self.token_file.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to clear session token: {e}")
