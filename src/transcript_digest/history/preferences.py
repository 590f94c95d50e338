"""
Key/value user preferences stored next to the history.

Values are strings; setting a key replaces its value and refreshes its
updated_at timestamp.
"""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from ..exceptions import StoreError
from .store import write_json_atomic

logger = logging.getLogger(__name__)

# Preferences read by the language detection endpoint
DEFAULT_LANGUAGE_KEY = "default_language"
AUTO_DETECT_KEY = "auto_detect"


class PreferenceStore:
    """Preferences kept in memory."""

    def __init__(self):
        self._entries: Dict[str, Dict[str, str]] = {}
        self._lock = threading.Lock()

    def get_all(self) -> Dict[str, str]:
        """Get every preference as a key to value mapping."""
        with self._lock:
            return {key: entry["value"] for key, entry in self._entries.items()}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            return entry["value"] if entry else None

    def set(self, key: str, value: str) -> None:
        """Insert or replace a preference."""
        if not key:
            raise ValueError("Preference key must not be empty")
        with self._lock:
            entries = dict(self._entries)
            entries[key] = {"value": str(value), "updated_at": datetime.now().isoformat()}
            self._save(entries)
            self._entries = entries

    def delete(self, key: str) -> bool:
        """Delete a preference; returns False if it was not set."""
        with self._lock:
            if key not in self._entries:
                return False
            entries = {k: v for k, v in self._entries.items() if k != key}
            self._save(entries)
            self._entries = entries
            return True

    def clear(self) -> None:
        with self._lock:
            self._save({})
            self._entries = {}
        logger.info("Cleared user preferences")

    def _save(self, entries: Dict[str, Dict[str, str]]) -> None:
        pass


class JsonPreferenceStore(PreferenceStore):
    """Preferences kept in a single JSON file."""

    def __init__(self, path: str = "preferences.json"):
        """
        Initialize the store and load existing preferences.

        Args:
            path: JSON file holding the preferences

        Raises:
            StoreError: If an existing file cannot be read
        """
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._entries = self._load()

    def _load(self) -> Dict[str, Dict[str, str]]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to read preferences {self.path}: {e}") from e
        try:
            return {
                key: {"value": str(entry["value"]), "updated_at": entry.get("updated_at", "")}
                for key, entry in data.items()
            }
        except (AttributeError, KeyError, TypeError) as e:
            raise StoreError(f"Invalid preferences file {self.path}: {e}") from e

    def _save(self, entries: Dict[str, Dict[str, str]]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            write_json_atomic(self.path, entries)
        except OSError as e:
            raise StoreError(f"Failed to save preferences: {e}") from e
