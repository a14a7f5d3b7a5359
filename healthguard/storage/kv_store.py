"""Key-value storage port holding serialized blobs under fixed string keys."""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from ..utils.errors import StorageError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """
    Minimal storage port used by the claim session state.

    Values are opaque strings; callers own serialization.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""


class InMemoryStore(KeyValueStore):
    """Process-local store; one instance per browser session, or per test."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class JsonFileStore(KeyValueStore):
    """
    Durable store backed by a single JSON object on disk.

    The file is re-read on every access so clearing it externally takes
    effect immediately. Writes go to a temporary file in the same directory
    and are moved into place with os.replace. Writers in other processes
    race with last-write-wins semantics.
    """

    def __init__(self, path: str = "data/claims_store.json"):
        """
        Initialize JsonFileStore.

        Args:
            path: Location of the JSON file; parent directories are created on first write
        """
        self.path = Path(path)
        self._lock = threading.Lock()
        logger.info(f"Initialized JsonFileStore: path={self.path}")

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StorageError.corrupted(str(self.path), e) from e
        if not isinstance(data, dict):
            raise StorageError.corrupted(
                str(self.path), ValueError(f"expected an object, found {type(data).__name__}")
            )
        return data

    def _load_for_write(self) -> Dict[str, str]:
        try:
            return self._load()
        except StorageError as e:
            logger.warning(f"Overwriting unreadable store file: {e}")
            return {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except Exception as e:
            logger.error(f"Failed to write store file {self.path}: {str(e)}")
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise IOError(f"Failed to write store file: {str(e)}") from e

    def get(self, key: str) -> Optional[str]:
        """
        Raises:
            StorageError: If the backing file is not a readable JSON object
        """
        with self._lock:
            value = self._load().get(key)
        if value is not None and not isinstance(value, str):
            raise StorageError.corrupted(key, ValueError("stored value is not a string"))
        return value

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load_for_write()
            data[key] = value
            self._write(data)
        logger.debug(f"Stored {len(value)} characters under '{key}'")

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load_for_write()
            if key in data:
                del data[key]
                self._write(data)
