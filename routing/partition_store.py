"""
Partition Store
===============

Maps partition keys to destination tables. A partition is created lazily the
first time a key is seen, with the source table's header row (values, text
styles, backgrounds) copied verbatim as its row 1. The header is frozen at that
moment; later schema changes in the source are not propagated.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import List

from routing.errors import AppendFailure, PartitionCreationFailure
from routing.probe import FORM_URL_METADATA_KEY
from storage.tables import RowData, TableBackend

logger = logging.getLogger(__name__)

# Table metadata keys that mark a table as a source rather than a partition
SOURCE_METADATA_KEYS = ("source_file", FORM_URL_METADATA_KEY)


@dataclass(frozen=True)
class PartitionHandle:
    """Resolved partition: its key (= table name) and table id."""
    key: str
    table_id: str
    created: bool = False


class PartitionStore:
    """
    Creates and appends to partition tables.

    get_or_create and append are read-then-write sequences; both run under
    the store's lock so two routings of the same new key cannot both create
    the table and two appends cannot pick the same next row.
    """

    def __init__(self, table_backend: TableBackend):
        self.table_backend = table_backend
        self._lock = threading.RLock()

    def get_or_create(self, key: str, source_table_id: str) -> PartitionHandle:
        """
        Return the partition named `key`, creating it if needed.

        An existing partition left without a header (its creation was
        interrupted after the table was made) gets the source header written
        before it is returned.

        Args:
            key: Normalized partition key (used as the table name)
            source_table_id: Table whose header becomes the partition's schema

        Raises:
            PartitionCreationFailure: If the table cannot be found or created
        """
        with self._lock:
            try:
                table_id = self.table_backend.find_table_by_name(key)
                if table_id is not None:
                    if table_id == source_table_id:
                        raise PartitionCreationFailure(
                            f"Partition key {key!r} names the source table itself",
                            partition_key=key,
                        )
                    if self.table_backend.last_row_index(table_id) > 0:
                        return PartitionHandle(key=key, table_id=table_id)
                    logger.warning(f"Partition {key!r} ({table_id}) has no header, writing it")
                    header = self.table_backend.read_header(source_table_id)
                    created = False
                else:
                    header = self.table_backend.read_header(source_table_id)
                    table_id = self.table_backend.create_table(key)
                    created = True

                self.table_backend.write_row(table_id, 1, header)
            except PartitionCreationFailure:
                raise
            except Exception as e:
                raise PartitionCreationFailure(
                    f"Could not create partition {key!r}: {e}", partition_key=key,
                ) from e

        if created:
            logger.info(f"Created partition {key!r} ({table_id}) with {header.width} header columns")
        return PartitionHandle(key=key, table_id=table_id, created=created)

    def append(self, handle: PartitionHandle, record: RowData) -> int:
        """
        Append a record after the partition's last occupied row.

        Cells beyond the partition's header width are dropped.

        Returns:
            Position the record was written at

        Raises:
            AppendFailure: If the write fails
        """
        with self._lock:
            try:
                width = self.table_backend.last_column_index(handle.table_id)
                if width and record.width > width:
                    record = record.truncate(width)
                position = self.table_backend.last_row_index(handle.table_id) + 1
                self.table_backend.write_row(handle.table_id, position, record)
            except Exception as e:
                raise AppendFailure(
                    f"Could not append to partition {handle.key!r}: {e}", partition_key=handle.key,
                ) from e

        logger.debug(f"Appended record to {handle.key!r} at row {position}")
        return position

    def list_partitions(self, source_table_id: str) -> List[dict]:
        """
        Partition tables with their data row counts.

        Skips the configured source and any table carrying source metadata
        (an imported CSV or a form response table).
        """
        partitions = []
        for table in self.table_backend.list_tables():
            if table["id"] == source_table_id:
                continue
            metadata = self.table_backend.get_table_metadata(table["id"])
            if any(k in metadata for k in SOURCE_METADATA_KEYS):
                continue
            last_row = self.table_backend.last_row_index(table["id"])
            partitions.append({
                "key": table["name"],
                "table_id": table["id"],
                "rows": max(0, last_row - 1),
            })
        return sorted(partitions, key=lambda p: p["key"])
