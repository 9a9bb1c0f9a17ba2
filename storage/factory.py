"""Build storage, table and key-value backends from configuration."""
import logging
from typing import TYPE_CHECKING

from storage.base import LocalStorage, S3Storage, StorageBackend
from storage.kv_store import KeyValueStore, StorageKeyValueStore
from storage.tables import ParquetTableBackend, TableBackend

if TYPE_CHECKING:
    from config.config import HermesConfig, StorageLayerConfig

logger = logging.getLogger(__name__)


def create_storage_backend(layer_config: "StorageLayerConfig") -> StorageBackend:
    """
    Create a byte storage backend for a storage layer config.

    Args:
        layer_config: StorageLayerConfig with backend type and location

    Returns:
        LocalStorage or S3Storage
    """
    if layer_config.backend == "local":
        return LocalStorage(layer_config.base_dir)

    if layer_config.backend == "s3":
        s3 = layer_config.s3
        if s3 is None or not s3.bucket:
            raise ValueError("S3 backend selected but storage.s3.bucket is not set")
        return S3Storage(
            bucket=s3.bucket,
            region=s3.region,
            aws_access_key_id=s3.aws_access_key_id,
            aws_secret_access_key=s3.aws_secret_access_key,
            aws_session_token=s3.aws_session_token,
            endpoint_url=s3.endpoint_url,
            prefix=s3.prefix,
        )

    raise ValueError(f"Unknown storage backend: {layer_config.backend}")


def create_table_backend(config: "HermesConfig", storage: StorageBackend) -> TableBackend:
    return ParquetTableBackend(storage, tables_dir=config.paths.tables_dir)


def create_kv_store(config: "HermesConfig", storage: StorageBackend) -> KeyValueStore:
    return StorageKeyValueStore(storage, path=config.paths.state_file)
