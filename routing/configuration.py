"""
Persistence of the routing configuration in the key-value store.

Two string entries hold the configuration: the source table id and the
designated field index. Both must be present for a configuration to exist.
"""
import logging
from typing import Optional

from pydantic import ValidationError

from config.config import RoutingConfig
from routing.errors import ConfigurationMissing, ConfigurationUnavailable
from storage.kv_store import (
    KEY_DESIGNATED_FIELD_INDEX,
    KEY_SOURCE_TABLE_ID,
    KeyValueStore,
    KeyValueStoreError,
)

logger = logging.getLogger(__name__)


class RoutingConfigRepository:
    """Load/save/clear the RoutingConfig."""

    def __init__(self, kv_store: KeyValueStore):
        self.kv_store = kv_store

    def load(self) -> Optional[RoutingConfig]:
        """
        Load the current configuration.

        Returns:
            RoutingConfig, or None if no (complete, valid) configuration is stored

        Raises:
            ConfigurationUnavailable: If the key-value store cannot be read
        """
        try:
            source_table_id = self.kv_store.get(KEY_SOURCE_TABLE_ID)
            field_index = self.kv_store.get(KEY_DESIGNATED_FIELD_INDEX)
        except KeyValueStoreError as e:
            raise ConfigurationUnavailable(f"Cannot read routing configuration: {e}") from e

        if not source_table_id or not field_index:
            return None

        try:
            return RoutingConfig(
                source_table_id=source_table_id,
                designated_field_index=int(field_index),
            )
        except (ValueError, ValidationError) as e:
            logger.warning(f"Ignoring invalid stored routing configuration: {e}")
            return None

    def require(self) -> RoutingConfig:
        """
        Load the configuration or fail.

        Raises:
            ConfigurationMissing: If nothing usable is stored
            ConfigurationUnavailable: If the key-value store cannot be read
        """
        config = self.load()
        if config is None:
            raise ConfigurationMissing(
                "Routing is not configured. Run setup with a source table and field index first."
            )
        return config

    def save(self, config: RoutingConfig) -> None:
        try:
            self.kv_store.set(KEY_DESIGNATED_FIELD_INDEX, str(config.designated_field_index))
            self.kv_store.set(KEY_SOURCE_TABLE_ID, config.source_table_id)
        except KeyValueStoreError as e:
            raise ConfigurationUnavailable(f"Cannot write routing configuration: {e}") from e

    def clear(self) -> None:
        """Remove every stored entry (configuration and processed set)."""
        try:
            self.kv_store.delete_all()
        except KeyValueStoreError as e:
            raise ConfigurationUnavailable(f"Cannot clear routing state: {e}") from e
