"""
Session storage backends.

Key-value save/load contract used to persist serialized sessions. The core
only needs ``save(key, records)`` and ``load(key)``; everything else about
where the bytes live belongs to the backend.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import json
import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

Records = List[Dict[str, Any]]


class StorageError(Exception):
    """Base exception for storage operations."""

    def __init__(self, message: str, original_error: Optional[Exception] = None, **kwargs):
        super().__init__(message)
        self.original_error = original_error
        self.metadata = kwargs


class BaseSessionStorage(ABC):
    """Abstract key-value storage for serialized sessions."""

    @abstractmethod
    def save(self, key: str, records: Records) -> None:
        """Store ``records`` under ``key``, replacing any previous value."""
        pass

    @abstractmethod
    def load(self, key: str) -> Optional[Records]:
        """Return the records stored under ``key`` or None."""
        pass


class InMemorySessionStorage(BaseSessionStorage):
    """Process-local storage, mostly useful for tests."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def save(self, key: str, records: Records) -> None:
        # Round-trip through JSON so callers cannot mutate what was saved
        self._data[key] = json.dumps(records)

    def load(self, key: str) -> Optional[Records]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None


class JsonFileSessionStorage(BaseSessionStorage):
    """Stores each key as a JSON document inside one file."""

    def __init__(self, path: str):
        self.path = Path(path)

    def _read_all(self) -> Dict[str, Records]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Could not read {self.path}: {e}", original_error=e)

        if not isinstance(data, dict):
            raise StorageError(f"Unexpected content in {self.path}")
        return data

    def save(self, key: str, records: Records) -> None:
        try:
            data = self._read_all()
        except StorageError as e:
            # The atomic replace below rewrites the unreadable file
            logger.warning(f"Discarding unreadable storage file: {e}")
            data = {}
        data[key] = records

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StorageError(f"Could not write {self.path}: {e}", original_error=e)

        logger.debug(f"Saved {len(records)} records under '{key}' to {self.path}")

    def load(self, key: str) -> Optional[Records]:
        return self._read_all().get(key)


def create_session_storage(backend: str, path: Optional[str] = None) -> Optional[BaseSessionStorage]:
    """Build the storage named in configuration."""
    if backend == "memory":
        return InMemorySessionStorage()
    if backend == "json":
        if not path:
            raise StorageError("A file path is required for the json storage backend")
        return JsonFileSessionStorage(path)
    if backend == "none":
        return None
    raise StorageError(f"Unknown storage backend: {backend}")
