"""
Routing Engine
==============

Routes one source record into the partition named after its designated field:

    identity -> already processed? -> read key -> normalize -> get/create
    partition -> read full row -> append -> mark processed

The record is marked processed only after the append succeeds, so a failed
record stays eligible for the next pass. Empty designated fields are skipped
without marking, so the record is retried once the field is filled in.
"""

from __future__ import annotations

import logging
from typing import Optional

from config.config import RoutingConfig
from routing.enums import RoutingOutcome
from routing.errors import RecordReadFailure, RecordRoutingFailure
from routing.locks import SourceLockRegistry
from routing.partition_store import PartitionStore
from routing.tracker import ProcessedSetTracker
from shared.partitioning import RecordIdentity, is_empty_key_value, normalize_partition_key
from storage.tables import RowData, TableBackend

logger = logging.getLogger(__name__)


class RoutingEngine:
    """
    Stateless orchestrator over the tracker and the partition store.

    Holds the per-source lock for the whole routing of a record.
    """

    def __init__(
        self,
        table_backend: TableBackend,
        tracker: ProcessedSetTracker,
        partition_store: PartitionStore,
        locks: Optional[SourceLockRegistry] = None,
    ):
        self.table_backend = table_backend
        self.tracker = tracker
        self.partition_store = partition_store
        self.locks = locks or SourceLockRegistry()

    def _read_row(self, config: RoutingConfig, position: int) -> RowData:
        try:
            return self.table_backend.read_row(config.source_table_id, position)
        except Exception as e:
            raise RecordReadFailure(
                f"Could not read row {position} of {config.source_table_id}: {e}",
                position=position,
            ) from e

    def route(self, position: int, config: RoutingConfig) -> RoutingOutcome:
        """
        Route the record at `position` of the configured source table.

        Args:
            position: 1-based row position in the source table
            config: Source table and designated field

        Returns:
            RoutingOutcome

        Raises:
            TrackerUnavailable: If the processed set cannot be read or written
            RecordRoutingFailure: If this record could not be read, or its
                partition created or appended to (record stays unprocessed)
        """
        identity = RecordIdentity(config.source_table_id, position)

        with self.locks.for_source(config.source_table_id):
            if self.tracker.is_processed(identity):
                logger.debug(f"Row {position}: already processed")
                return RoutingOutcome.SKIPPED_ALREADY_PROCESSED

            record = self._read_row(config, position)
            raw_value = record.value_at(config.designated_field_index)
            if is_empty_key_value(raw_value):
                logger.debug(f"Row {position}: designated field empty, skipping")
                return RoutingOutcome.SKIPPED_EMPTY_KEY

            key = normalize_partition_key(raw_value)
            try:
                handle = self.partition_store.get_or_create(key, config.source_table_id)
                self.partition_store.append(handle, record)
            except RecordRoutingFailure as e:
                if e.position is None:
                    e.position = position
                raise

            self.tracker.mark_processed(identity)

        logger.debug(f"Row {position}: routed to {key!r}")
        return RoutingOutcome.ROUTED
