"""Local persistent key-value storage backed by files in a directory."""
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


class LocalStorage:
    """
    String key-value storage where each key lives in its own file.

    Writes go through a temporary file and an atomic rename so a crash
    never leaves a half-written value behind.
    """

    SAFE_KEY = re.compile(r'[^A-Za-z0-9._-]')

    def __init__(self, directory: Union[str, Path]):
        """
        Initialize storage rooted at a directory.

        Args:
            directory: Directory holding one file per key; created on demand
        """
        self.directory = Path(directory)

    def get(self, key: str) -> Optional[str]:
        """
        Read a value.

        Args:
            key: Storage key

        Returns:
            Stored string or None if the key is absent

        Raises:
            OSError: If the file exists but cannot be read
        """
        path = self._path(key)
        try:
            return path.read_text(encoding='utf-8')
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        """
        Write a value, replacing any previous one.

        Raises:
            OSError: If the value cannot be written
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)

        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix='.tmp-')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as handle:
                handle.write(value)
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.debug(f"Stored {len(value)} characters under key {key}")

    def remove(self, key: str) -> None:
        """Delete a value; removing an absent key is a no-op."""
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass

    def _path(self, key: str) -> Path:
        return self.directory / f"{self.SAFE_KEY.sub('_', key)}.json"
