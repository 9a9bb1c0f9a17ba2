"""
Key-value stores for router state.

The router persists three string entries (designated field index, source
table id, processed identity set). Anything that can get/set/delete-all
strings can hold them; tests use the in-memory store, deployments a JSON
document on a StorageBackend.
"""
import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

from storage.base import StorageBackend

logger = logging.getLogger(__name__)

KEY_DESIGNATED_FIELD_INDEX = "designated_field_index"
KEY_SOURCE_TABLE_ID = "source_table_id"
KEY_PROCESSED_IDENTITIES = "processed_identities"


class KeyValueStoreError(Exception):
    """The backing store could not be read or written."""


class KeyValueStore(ABC):
    """String-to-string store with a delete-everything operation."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value for key, or None if unset."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete_all(self) -> None:
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store, mainly for tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete_all(self) -> None:
        with self._lock:
            self._data.clear()

    def snapshot(self) -> Dict[str, str]:
        """Copy of the current contents."""
        with self._lock:
            return dict(self._data)


class StorageKeyValueStore(KeyValueStore):
    """
    Key-value store kept as a single JSON object on a StorageBackend.

    Every call reads the whole document; every mutation rewrites it. The
    document is small (three keys) apart from the processed identity list.
    """

    def __init__(self, storage: StorageBackend, path: str = "state/router_state.json"):
        """
        Args:
            storage: Backend holding the document
            path: Relative path of the JSON document
        """
        self.storage = storage
        self.path = path
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, str]:
        try:
            if not self.storage.exists(self.path):
                return {}
            raw = self.storage.read_bytes(self.path)
        except Exception as e:
            raise KeyValueStoreError(f"Cannot read {self.path}: {e}") from e

        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise KeyValueStoreError(f"Corrupt state document {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise KeyValueStoreError(f"State document {self.path} is not a JSON object")
        return data

    def _save(self, data: Dict[str, str]) -> None:
        try:
            self.storage.write_bytes(json.dumps(data, indent=2).encode("utf-8"), self.path)
        except Exception as e:
            raise KeyValueStoreError(f"Cannot write {self.path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._load().get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def delete_all(self) -> None:
        with self._lock:
            try:
                self.storage.delete(self.path)
            except Exception as e:
                raise KeyValueStoreError(f"Cannot delete {self.path}: {e}") from e
        logger.info(f"Cleared state document {self.storage.get_full_path(self.path)}")
