"""
Pytest configuration and fixtures for all tests.
"""
import sys
from pathlib import Path

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.config import RoutingConfig, RoutingSettings
from routing.service import RouterService
from storage.kv_store import InMemoryKeyValueStore
from storage.tables import InMemoryTableBackend, RowData, TextStyle


FORM_HEADER = ["Timestamp", "Email Address", "Department"]


@pytest.fixture
def temp_dir(tmp_path):
    """
    Provide a temporary directory for tests.

    This wraps pytest's built-in tmp_path fixture.
    """
    return tmp_path


@pytest.fixture
def backend():
    """Empty in-memory table backend."""
    return InMemoryTableBackend()


@pytest.fixture
def kv_store():
    """Empty in-memory key-value store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def header_row():
    """Form-style header with formatting."""
    return RowData(
        values=list(FORM_HEADER),
        styles=[TextStyle(bold=True, font_color="#ffffff")] * 3,
        backgrounds=["#4285f4", "#4285f4", "#0b8043"],
    )


@pytest.fixture
def source_table(backend, header_row):
    """
    Form response table with three records:

        2: t1, a@x.com, Sales
        3: t2, b@x.com, Ops
        4: t3, c@x.com, Sales
    """
    table_id = backend.create_table("Form Responses 1")
    backend.write_row(table_id, 1, header_row)
    backend.write_row(table_id, 2, RowData(
        values=["t1", "a@x.com", "Sales"],
        styles=[None, TextStyle(italic=True), None],
        backgrounds=[None, None, "#f4cccc"],
    ))
    backend.write_row(table_id, 3, RowData(values=["t2", "b@x.com", "Ops"]))
    backend.write_row(table_id, 4, RowData(
        values=["t3", "c@x.com", "Sales"],
        backgrounds=["#fff2cc", None, None],
    ))
    return table_id


@pytest.fixture
def routing_config(source_table):
    """Route the source table by Department (column 3)."""
    return RoutingConfig(source_table_id=source_table, designated_field_index=3)


@pytest.fixture
def settings():
    """Routing settings without inter-chunk pauses."""
    return RoutingSettings(batch_size=20, batch_pause_seconds=0.0)


@pytest.fixture
def service(backend, kv_store, settings):
    """Router service over the in-memory backends (not configured yet)."""
    return RouterService(backend, kv_store, settings=settings)


@pytest.fixture
def configured_service(service, source_table):
    """Router service set up on the source table, field 3."""
    service.setup(source_table, 3)
    return service
