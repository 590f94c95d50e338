"""
Record stores for the job history.

A store keeps HistoryRecords by id and supports insert-or-replace, lookup,
deletion and iteration. Two stores are provided:
- JsonHistoryStore: one JSON file per record in a history directory
- InMemoryHistoryStore: a dictionary, for tests and ephemeral servers

Iteration order is storage order: directory listing order for the JSON
store, insertion order for the in-memory store.
"""

import json
import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from ..exceptions import StoreError
from ..models import HistoryRecord

logger = logging.getLogger(__name__)

RECORD_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON next to path and move it into place, so readers never see a partial file."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class HistoryStore:
    """Interface of a history record store."""

    def put(self, record: HistoryRecord) -> None:
        """Insert a record or replace the record with the same id."""
        raise NotImplementedError

    def get(self, record_id: str) -> Optional[HistoryRecord]:
        """Get a record by id, or None if it does not exist."""
        raise NotImplementedError

    def delete(self, record_id: str) -> bool:
        """Delete a record; returns False if it did not exist."""
        raise NotImplementedError

    def iter_records(self) -> Iterator[HistoryRecord]:
        """Iterate all records in storage order."""
        raise NotImplementedError

    def clear(self) -> None:
        """Delete every record."""
        raise NotImplementedError


class InMemoryHistoryStore(HistoryStore):
    """History store backed by a dictionary."""

    def __init__(self):
        self._records: Dict[str, HistoryRecord] = {}
        self._lock = threading.Lock()

    def put(self, record: HistoryRecord) -> None:
        with self._lock:
            self._records[record.id] = record

    def get(self, record_id: str) -> Optional[HistoryRecord]:
        with self._lock:
            return self._records.get(record_id)

    def delete(self, record_id: str) -> bool:
        with self._lock:
            return self._records.pop(record_id, None) is not None

    def iter_records(self) -> Iterator[HistoryRecord]:
        with self._lock:
            records = list(self._records.values())
        return iter(records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


class JsonHistoryStore(HistoryStore):
    """History store keeping one JSON file per record."""

    def __init__(self, history_dir: str = "history"):
        """
        Initialize the store.

        Args:
            history_dir: Directory holding the record files
        """
        self.history_dir = Path(history_dir)
        self._lock = threading.Lock()
        try:
            self.history_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create history directory {self.history_dir}: {e}") from e

    def put(self, record: HistoryRecord) -> None:
        path = self._record_path(record.id)
        with self._lock:
            try:
                write_json_atomic(path, record.to_dict())
            except (OSError, TypeError, ValueError) as e:
                raise StoreError(f"Failed to save record {record.id}: {e}") from e

    def get(self, record_id: str) -> Optional[HistoryRecord]:
        path = self._record_path(record_id)
        with self._lock:
            if not path.exists():
                return None
            return self._load(path)

    def delete(self, record_id: str) -> bool:
        path = self._record_path(record_id)
        with self._lock:
            if not path.exists():
                return False
            try:
                path.unlink()
            except OSError as e:
                raise StoreError(f"Failed to delete record {record_id}: {e}") from e
        return True

    def iter_records(self) -> Iterator[HistoryRecord]:
        with self._lock:
            try:
                paths = [p for p in self.history_dir.iterdir() if p.suffix == ".json"]
            except OSError as e:
                raise StoreError(f"Failed to list history directory {self.history_dir}: {e}") from e
            records = [self._load(path) for path in paths]
        return iter(records)

    def clear(self) -> None:
        with self._lock:
            try:
                for path in self.history_dir.glob("*.json"):
                    path.unlink()
            except OSError as e:
                raise StoreError(f"Failed to clear history: {e}") from e

    def _record_path(self, record_id: str) -> Path:
        if not RECORD_ID_PATTERN.match(record_id or ""):
            raise StoreError(f"Invalid record id: {record_id!r}")
        return self.history_dir / f"{record_id}.json"

    def _load(self, path: Path) -> HistoryRecord:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return HistoryRecord.from_dict(json.load(f))
        except (OSError, json.JSONDecodeError, KeyError, TypeError) as e:
            raise StoreError(f"Failed to read history record {path.name}: {e}") from e
