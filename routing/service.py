"""
Router Service
==============

User-facing operations around the routing core:

- setup: choose source table + designated field (probe first, persist after)
- run_existing: bulk-route a range of existing rows via the BatchDriver
- on_record_added: single-record event path (best-effort, never raises RoutingError)
- show_configuration: read-only view of the current setup
- reset: clear the processed set and the configuration

Usage:
    service = RouterService(table_backend, kv_store)
    service.setup(source_table_id, designated_field_index=3)
    routed = service.run_existing()
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from config.config import RoutingConfig, RoutingSettings
from routing.batch import BatchDriver
from routing.configuration import RoutingConfigRepository
from routing.engine import RoutingEngine
from routing.enums import RoutingOutcome
from routing.errors import (
    ConfigurationMissing,
    RoutingError,
    SourceNotFormCompatible,
)
from routing.locks import SourceLockRegistry
from routing.partition_store import PartitionStore
from routing.probe import probe_source
from routing.tracker import ProcessedSetTracker
from storage.kv_store import KeyValueStore
from storage.tables import TableBackend

logger = logging.getLogger(__name__)


class RouterService:
    """Wires the routing core to a table backend and a key-value store."""

    def __init__(
        self,
        table_backend: TableBackend,
        kv_store: KeyValueStore,
        settings: Optional[RoutingSettings] = None,
    ):
        """
        Args:
            table_backend: Host of the source and partition tables
            kv_store: Holds configuration and the processed set
            settings: Batch tuning (defaults: 20 per chunk, 1s pause)
        """
        self.settings = settings or RoutingSettings()
        self.table_backend = table_backend
        self.configuration = RoutingConfigRepository(kv_store)
        self.tracker = ProcessedSetTracker(kv_store)
        self.partition_store = PartitionStore(table_backend)
        self.locks = SourceLockRegistry()
        self.engine = RoutingEngine(table_backend, self.tracker, self.partition_store, self.locks)
        self.batch_driver = BatchDriver(
            self.engine,
            self.tracker,
            batch_size=self.settings.batch_size,
            pause_seconds=self.settings.batch_pause_seconds,
        )

    # =========================================================================
    # Setup / configuration
    # =========================================================================

    def setup(
        self,
        source_table_id: str,
        designated_field_index: int,
        has_submit_trigger: bool = False,
    ) -> RoutingConfig:
        """
        Validate and persist the routing configuration.

        Nothing is persisted unless every check passes.

        Raises:
            ValueError: Unknown table or field index outside the header
            SourceNotFormCompatible: The table failed the capability probe
        """
        if not self.table_backend.table_exists(source_table_id):
            raise ValueError(f"Source table not found: {source_table_id}")

        header_width = self.table_backend.last_column_index(source_table_id)
        if designated_field_index < 1 or designated_field_index > header_width:
            raise ValueError(
                f"Field index {designated_field_index} outside 1..{header_width} "
                f"for table {source_table_id}"
            )

        if not probe_source(self.table_backend, source_table_id, has_submit_trigger):
            raise SourceNotFormCompatible(
                f"Table {self.table_backend.get_table_name(source_table_id)!r} does not look "
                f"like a form response table"
            )

        config = RoutingConfig(
            source_table_id=source_table_id,
            designated_field_index=designated_field_index,
        )
        self.configuration.save(config)
        logger.info(
            f"Routing configured: table={source_table_id} field={designated_field_index} "
            f"({self.table_backend.read_header(source_table_id).value_at(designated_field_index)!r})"
        )
        return config

    def require_configuration(self) -> RoutingConfig:
        """Raises ConfigurationMissing when not set up."""
        return self.configuration.require()

    def show_configuration(self) -> Optional[Dict[str, Any]]:
        """
        Describe the current configuration.

        Returns:
            Dict with table, field and processed count, or None when not set up
        """
        config = self.configuration.load()
        if config is None:
            return None

        info: Dict[str, Any] = {
            "source_table_id": config.source_table_id,
            "designated_field_index": config.designated_field_index,
            "source_table_name": None,
            "designated_field_name": None,
            "processed_count": self.tracker.processed_count(),
        }
        if self.table_backend.table_exists(config.source_table_id):
            info["source_table_name"] = self.table_backend.get_table_name(config.source_table_id)
            header = self.table_backend.read_header(config.source_table_id)
            info["designated_field_name"] = header.value_at(config.designated_field_index)
        return info

    def reset(self) -> None:
        """Clear the processed set and the configuration."""
        self.tracker.reset()
        self.configuration.clear()
        logger.info("Router reset: processed set and configuration cleared")

    # =========================================================================
    # Routing
    # =========================================================================

    def run_existing(
        self,
        first_position: Optional[int] = None,
        last_position: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> int:
        """
        Route existing source rows in batches.

        Args:
            first_position: Default: settings.first_data_position (row after the header)
            last_position: Default: the source table's last occupied row

        Returns:
            Number of records routed

        Raises:
            ConfigurationMissing: Not set up
            TrackerUnavailable: Processed set unavailable
        """
        config = self.configuration.require()
        first = first_position or self.settings.first_data_position
        last = last_position or self.table_backend.last_row_index(config.source_table_id)

        if last < first:
            logger.info(f"No rows to route (positions {first}-{last})")
            return 0

        return self.batch_driver.drive_batch(config, first, last, batch_size)

    def route_position(self, position: int) -> RoutingOutcome:
        """Route one record, raising on failure."""
        return self.engine.route(position, self.configuration.require())

    def on_record_added(self, position: int) -> Optional[RoutingOutcome]:
        """
        Event handler for a newly appended source row.

        Best-effort: any RoutingError is logged and suppressed, since the
        record can be picked up again by run_existing.

        Returns:
            RoutingOutcome, or None if routing failed or is not configured
        """
        try:
            outcome = self.route_position(position)
        except ConfigurationMissing:
            logger.warning(f"Row {position} arrived but routing is not configured")
            return None
        except RoutingError as e:
            logger.error(f"Row {position}: routing failed: {e}")
            return None

        logger.info(f"Row {position}: {outcome}")
        return outcome

    def list_partitions(self):
        config = self.configuration.require()
        return self.partition_store.list_partitions(config.source_table_id)
