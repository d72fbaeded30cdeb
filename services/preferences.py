"""Notification preferences persisted in local storage."""
import json
import logging
import threading
from dataclasses import asdict, dataclass, fields

from storage.local_storage import LocalStorage

logger = logging.getLogger(__name__)


@dataclass
class Preferences:
    notify_on_join: bool = True
    notify_on_cancellation: bool = True


class NotificationPreferences:
    """Loads and saves the user's notification toggles."""

    STORAGE_KEY = 'notification_preferences'

    def __init__(self, storage: LocalStorage):
        self.storage = storage
        self._lock = threading.Lock()
        self._preferences = self._load()

    @property
    def preferences(self) -> Preferences:
        with self._lock:
            return Preferences(**asdict(self._preferences))

    def set_preference(self, name: str, value: bool) -> Preferences:
        """
        Change one toggle and persist the result.

        Args:
            name: Preference name, e.g. 'notify_on_join'
            value: New value

        Returns:
            The updated preferences

        Raises:
            KeyError: If the preference name is unknown
        """
        known = {f.name for f in fields(Preferences)}
        if name not in known:
            raise KeyError(name)

        with self._lock:
            setattr(self._preferences, name, bool(value))
            payload = json.dumps(asdict(self._preferences))

        try:
            self.storage.set(self.STORAGE_KEY, payload)
        except OSError as e:
            logger.warning(f"Failed to persist notification preferences: {e}")

        return self.preferences

    def _load(self) -> Preferences:
        try:
            stored = self.storage.get(self.STORAGE_KEY)
            parsed = json.loads(stored) if stored else {}
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load notification preferences: {e}")
            return Preferences()

        if not isinstance(parsed, dict):
            return Preferences()

        known = {f.name for f in fields(Preferences)}
        values = {key: bool(value) for key, value in parsed.items() if key in known}
        return Preferences(**values)
