"""Storage backends: bytes, tables and key-value state."""
from storage.base import LocalStorage, S3Storage, StorageBackend
from storage.kv_store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    KeyValueStoreError,
    StorageKeyValueStore,
)
from storage.tables import (
    InMemoryTableBackend,
    ParquetTableBackend,
    RowData,
    TableBackend,
    TableNotFoundError,
    TextStyle,
    load_csv_table,
)

__all__ = [
    "LocalStorage",
    "S3Storage",
    "StorageBackend",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "KeyValueStoreError",
    "StorageKeyValueStore",
    "InMemoryTableBackend",
    "ParquetTableBackend",
    "RowData",
    "TableBackend",
    "TableNotFoundError",
    "TextStyle",
    "load_csv_table",
]
