"""
Table backends for Hermes.

A table is a named grid of rows addressed by 1-based position. Row 1 is the
header (schema); every row carries its cell values together with per-cell text
style and background colour so formatting survives routing.

Backends:
- InMemoryTableBackend: dict-backed, used by tests and embedding callers
- ParquetTableBackend: one Parquet file per table on a StorageBackend
  (local directory or S3), plus a JSON catalog of table names

Parquet layout (tables/<table_id>.parquet):
    position        Int64          1-based row position
    values          List[Utf8]     JSON-encoded cell values (keeps str/int/float/bool/None)
    styles          List[Utf8]     JSON-encoded TextStyle per cell, null for no style
    backgrounds     List[Utf8]     background colour per cell, null for none
    occupied_width  Int64          index of the last non-empty value (0 = blank row)
"""
from __future__ import annotations

import io
import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import polars as pl

from storage.base import StorageBackend

logger = logging.getLogger(__name__)


class TableNotFoundError(LookupError):
    """No table with the given id exists."""


# =============================================================================
# Row model
# =============================================================================

@dataclass(frozen=True)
class TextStyle:
    """Text formatting of a single cell."""
    bold: bool = False
    italic: bool = False
    underline: bool = False
    strikethrough: bool = False
    font_family: Optional[str] = None
    font_size: Optional[int] = None
    font_color: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextStyle":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


@dataclass
class RowData:
    """
    Cell values of one row plus their formatting.

    styles and backgrounds are aligned with values: shorter lists are padded
    with None and longer ones are cut, so all three always have equal length.
    """
    values: List[Any]
    styles: List[Optional[TextStyle]] = field(default_factory=list)
    backgrounds: List[Optional[str]] = field(default_factory=list)

    def __post_init__(self):
        self.values = list(self.values)
        width = len(self.values)
        self.styles = (list(self.styles) + [None] * width)[:width]
        self.backgrounds = (list(self.backgrounds) + [None] * width)[:width]

    @property
    def width(self) -> int:
        return len(self.values)

    @property
    def occupied_width(self) -> int:
        """1-based index of the last non-empty value, 0 if the row is blank."""
        for idx in range(len(self.values), 0, -1):
            if not _is_blank(self.values[idx - 1]):
                return idx
        return 0

    def truncate(self, width: int) -> "RowData":
        """Copy limited to the first `width` cells."""
        return RowData(
            values=self.values[:width],
            styles=self.styles[:width],
            backgrounds=self.backgrounds[:width],
        )

    def padded(self, width: int) -> "RowData":
        """Copy extended with empty cells up to `width`."""
        missing = max(0, width - self.width)
        return RowData(
            values=self.values + [None] * missing,
            styles=self.styles + [None] * missing,
            backgrounds=self.backgrounds + [None] * missing,
        )

    def value_at(self, index: int) -> Any:
        """Value at a 1-based column index, None when out of range."""
        if index < 1 or index > len(self.values):
            return None
        return self.values[index - 1]


# =============================================================================
# Backend contract
# =============================================================================

class TableBackend(ABC):
    """
    Abstract table host.

    Positions and column indexes are 1-based. "Last" row/column means the last
    one holding a non-empty value; blank rows do not count.
    """

    @abstractmethod
    def create_table(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        """
        Create an empty table.

        Args:
            name: Unique table name
            metadata: Free-form attributes (e.g. originating form_url)

        Returns:
            New table id

        Raises:
            ValueError: If a table with that name already exists
        """
        pass

    @abstractmethod
    def find_table_by_name(self, name: str) -> Optional[str]:
        """Return the id of the table called `name`, or None."""
        pass

    @abstractmethod
    def get_table_name(self, table_id: str) -> str:
        pass

    @abstractmethod
    def get_table_metadata(self, table_id: str) -> Dict[str, Any]:
        pass

    @abstractmethod
    def list_tables(self) -> List[Dict[str, str]]:
        """List tables as dicts with keys: id, name."""
        pass

    @abstractmethod
    def last_row_index(self, table_id: str) -> int:
        pass

    @abstractmethod
    def last_column_index(self, table_id: str) -> int:
        pass

    @abstractmethod
    def _read_stored_row(self, table_id: str, position: int) -> Optional[RowData]:
        """Row as stored, or None if nothing was ever written there."""
        pass

    @abstractmethod
    def write_row(self, table_id: str, position: int, row: RowData) -> None:
        """Write (replace) the row at `position`."""
        pass

    def table_exists(self, table_id: str) -> bool:
        return any(t["id"] == table_id for t in self.list_tables())

    def read_row(self, table_id: str, position: int) -> RowData:
        """
        Read a row, padded or cut to the table's last column.

        Raises:
            TableNotFoundError: If the table does not exist
        """
        width = self.last_column_index(table_id)
        row = self._read_stored_row(table_id, position) or RowData(values=[])
        return row.padded(width).truncate(width)

    def read_header(self, table_id: str) -> RowData:
        return self.read_row(table_id, 1)

    def append_row(self, table_id: str, row: RowData) -> int:
        """Write `row` after the last occupied row and return its position."""
        position = self.last_row_index(table_id) + 1
        self.write_row(table_id, position, row)
        return position


# =============================================================================
# In-memory backend
# =============================================================================

@dataclass
class _MemoryTable:
    name: str
    metadata: Dict[str, Any]
    rows: Dict[int, RowData] = field(default_factory=dict)


class InMemoryTableBackend(TableBackend):
    """Dict-backed tables."""

    def __init__(self):
        self._tables: Dict[str, _MemoryTable] = {}
        self._lock = threading.RLock()

    def _get(self, table_id: str) -> _MemoryTable:
        try:
            return self._tables[table_id]
        except KeyError:
            raise TableNotFoundError(table_id) from None

    def create_table(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        with self._lock:
            if self.find_table_by_name(name) is not None:
                raise ValueError(f"Table already exists: {name}")
            table_id = uuid.uuid4().hex[:12]
            self._tables[table_id] = _MemoryTable(name=name, metadata=dict(metadata or {}))
            return table_id

    def find_table_by_name(self, name: str) -> Optional[str]:
        with self._lock:
            for table_id, table in self._tables.items():
                if table.name == name:
                    return table_id
        return None

    def get_table_name(self, table_id: str) -> str:
        return self._get(table_id).name

    def get_table_metadata(self, table_id: str) -> Dict[str, Any]:
        return dict(self._get(table_id).metadata)

    def list_tables(self) -> List[Dict[str, str]]:
        with self._lock:
            return [{"id": tid, "name": t.name} for tid, t in self._tables.items()]

    def table_exists(self, table_id: str) -> bool:
        return table_id in self._tables

    def last_row_index(self, table_id: str) -> int:
        with self._lock:
            occupied = [p for p, row in self._get(table_id).rows.items() if row.occupied_width]
        return max(occupied, default=0)

    def last_column_index(self, table_id: str) -> int:
        with self._lock:
            rows = list(self._get(table_id).rows.values())
        return max((row.occupied_width for row in rows), default=0)

    def _read_stored_row(self, table_id: str, position: int) -> Optional[RowData]:
        with self._lock:
            return self._get(table_id).rows.get(position)

    def write_row(self, table_id: str, position: int, row: RowData) -> None:
        if position < 1:
            raise ValueError(f"Row positions are 1-based, got {position}")
        with self._lock:
            self._get(table_id).rows[position] = RowData(
                values=row.values, styles=row.styles, backgrounds=row.backgrounds,
            )


# =============================================================================
# Parquet backend
# =============================================================================

_ROW_SCHEMA = {
    "position": pl.Int64,
    "values": pl.List(pl.Utf8),
    "styles": pl.List(pl.Utf8),
    "backgrounds": pl.List(pl.Utf8),
    "occupied_width": pl.Int64,
}

CATALOG_FILE = "_catalog.json"


class ParquetTableBackend(TableBackend):
    """
    Tables persisted as Parquet files through a StorageBackend.

    Each write rewrites the table file; tables here are spreadsheet-sized,
    not warehouse-sized.
    """

    def __init__(self, storage: StorageBackend, tables_dir: str = "tables"):
        """
        Args:
            storage: Storage backend (local or S3)
            tables_dir: Directory (relative to storage root) for table files
        """
        self.storage = storage
        self.tables_dir = tables_dir
        self._lock = threading.RLock()

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    @property
    def _catalog_path(self) -> str:
        return self.storage.join_path(self.tables_dir, CATALOG_FILE)

    def _table_path(self, table_id: str) -> str:
        return self.storage.join_path(self.tables_dir, f"{table_id}.parquet")

    def _load_catalog(self) -> Dict[str, Dict[str, Any]]:
        if not self.storage.exists(self._catalog_path):
            return {}
        return json.loads(self.storage.read_bytes(self._catalog_path).decode("utf-8"))

    def _save_catalog(self, catalog: Dict[str, Dict[str, Any]]) -> None:
        self.storage.write_bytes(json.dumps(catalog, indent=2).encode("utf-8"), self._catalog_path)

    def _entry(self, table_id: str) -> Dict[str, Any]:
        entry = self._load_catalog().get(table_id)
        if entry is None:
            raise TableNotFoundError(table_id)
        return entry

    def create_table(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        with self._lock:
            catalog = self._load_catalog()
            if any(entry["name"] == name for entry in catalog.values()):
                raise ValueError(f"Table already exists: {name}")
            table_id = uuid.uuid4().hex[:12]
            catalog[table_id] = {"name": name, "metadata": dict(metadata or {})}
            self._save_catalog(catalog)

        logger.debug(f"Created table {name!r} ({table_id}) at {self.storage.get_full_path(self._table_path(table_id))}")
        return table_id

    def find_table_by_name(self, name: str) -> Optional[str]:
        for table_id, entry in self._load_catalog().items():
            if entry["name"] == name:
                return table_id
        return None

    def get_table_name(self, table_id: str) -> str:
        return self._entry(table_id)["name"]

    def get_table_metadata(self, table_id: str) -> Dict[str, Any]:
        return dict(self._entry(table_id).get("metadata", {}))

    def list_tables(self) -> List[Dict[str, str]]:
        return [{"id": tid, "name": entry["name"]} for tid, entry in self._load_catalog().items()]

    # -------------------------------------------------------------------------
    # Rows
    # -------------------------------------------------------------------------

    def _load_rows(self, table_id: str) -> pl.DataFrame:
        self._entry(table_id)
        path = self._table_path(table_id)
        if not self.storage.exists(path):
            return pl.DataFrame(schema=_ROW_SCHEMA)
        return pl.read_parquet(io.BytesIO(self.storage.read_bytes(path)))

    def _save_rows(self, table_id: str, df: pl.DataFrame) -> None:
        buffer = io.BytesIO()
        df.write_parquet(buffer, compression="zstd")
        self.storage.write_bytes(buffer.getvalue(), self._table_path(table_id))

    def last_row_index(self, table_id: str) -> int:
        df = self._load_rows(table_id).filter(pl.col("occupied_width") > 0)
        if df.is_empty():
            return 0
        return int(df["position"].max())

    def last_column_index(self, table_id: str) -> int:
        df = self._load_rows(table_id)
        if df.is_empty():
            return 0
        return int(df["occupied_width"].max())

    def _read_stored_row(self, table_id: str, position: int) -> Optional[RowData]:
        df = self._load_rows(table_id).filter(pl.col("position") == position)
        if df.is_empty():
            return None
        return _decode_row(df.row(0, named=True))

    def write_row(self, table_id: str, position: int, row: RowData) -> None:
        if position < 1:
            raise ValueError(f"Row positions are 1-based, got {position}")
        with self._lock:
            existing = self._load_rows(table_id).filter(pl.col("position") != position)
            new_row = pl.DataFrame([_encode_row(position, row)], schema=_ROW_SCHEMA)
            self._save_rows(table_id, pl.concat([existing, new_row]).sort("position"))


def _encode_row(position: int, row: RowData) -> Dict[str, Any]:
    return {
        "position": position,
        "values": [json.dumps(v) for v in row.values],
        "styles": [json.dumps(s.to_dict()) if s is not None else None for s in row.styles],
        "backgrounds": list(row.backgrounds),
        "occupied_width": row.occupied_width,
    }


def _decode_row(record: Dict[str, Any]) -> RowData:
    return RowData(
        values=[json.loads(v) for v in record["values"] or []],
        styles=[
            TextStyle.from_dict(json.loads(s)) if s is not None else None
            for s in record["styles"] or []
        ],
        backgrounds=list(record["backgrounds"] or []),
    )


# =============================================================================
# CSV import
# =============================================================================

def load_csv_table(
    backend: TableBackend,
    csv_path: Union[str, Path],
    name: Optional[str] = None,
    form_url: Optional[str] = None,
) -> str:
    """
    Import a CSV file as a new table (header in row 1).

    All columns are read as strings; empty fields become empty cells.

    Args:
        backend: Destination table backend
        csv_path: CSV file to import
        name: Table name (default: file stem)
        form_url: Originating form, recorded in table metadata

    Returns:
        New table id
    """
    csv_path = Path(csv_path)
    df = pl.read_csv(csv_path, infer_schema_length=0)

    metadata: Dict[str, Any] = {"source_file": str(csv_path)}
    if form_url:
        metadata["form_url"] = form_url

    table_id = backend.create_table(name or csv_path.stem, metadata=metadata)
    header_style = TextStyle(bold=True)
    backend.write_row(table_id, 1, RowData(values=df.columns, styles=[header_style] * df.width))
    for offset, values in enumerate(df.rows()):
        backend.write_row(table_id, offset + 2, RowData(values=list(values)))

    logger.info(f"Imported {df.height} rows from {csv_path} into table {table_id}")
    return table_id
