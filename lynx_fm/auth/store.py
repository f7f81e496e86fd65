"""
Credential store.

Sole reader and writer of the on-disk session file. Writes go to a
temporary file in the same directory which then replaces the target, so a
crash mid-write leaves the previous session intact.
"""

import json
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Optional

from lynx_fm.exceptions import StorageError
from .session import Session

logger = logging.getLogger(__name__)


class CredentialStore:
    """JSON file persistence for Session."""

    def __init__(self, path: Path, legacy_path: Optional[Path] = None):
        """
        Initialize the store.

        Args:
            path: Session file location
            legacy_path: File written by older clients, read only while
                path does not exist yet
        """
        self.path = Path(path)
        self.legacy_path = Path(legacy_path) if legacy_path else None

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Session:
        """
        Load the persisted session.

        Returns:
            The stored Session, or an empty one if nothing was ever saved

        Raises:
            StorageError: If the file exists but cannot be read or parsed
        """
        path = self.path
        if not path.exists():
            if self.legacy_path is not None and self.legacy_path.exists():
                logger.info(f"Reading session from legacy file {self.legacy_path}")
                path = self.legacy_path
            else:
                logger.debug(f"No session file at {self.path}")
                return Session()

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StorageError(f"Session file is not valid UTF-8 JSON: {e}", path)
        except OSError as e:
            raise StorageError(f"Failed to read session file: {e.strerror or e}", path)

        if not isinstance(data, dict):
            raise StorageError("Session file does not contain a JSON object", path)

        return Session.from_dict(data)

    def save(self, session: Session) -> None:
        """
        Atomically persist the session.

        Raises:
            StorageError: If the file cannot be written
        """
        directory = self.path.parent
        tmp_name: Optional[str] = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(session.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            if os.name == "posix":
                os.chmod(tmp_name, stat.S_IRUSR | stat.S_IWUSR)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise StorageError(f"Failed to write session file: {e.strerror or e}", self.path)
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug(f"Could not remove temporary file {tmp_name}")

        logger.debug(f"Saved session to {self.path}")

    def clear(self) -> Session:
        """
        Remove all tokens from the stored session, keeping endpoint settings.

        Returns:
            The cleared Session
        """
        cleared = self.load().without_tokens()
        self.save(cleared)
        logger.info("Cleared stored tokens")
        return cleared
