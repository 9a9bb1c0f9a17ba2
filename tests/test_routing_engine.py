"""
Unit Tests for the Routing Engine
=================================

Idempotency, empty-key retry, schema propagation, ordering and failure
semantics of RoutingEngine.route.
"""

import threading

import pytest

from routing.engine import RoutingEngine
from routing.enums import RoutingOutcome
from routing.errors import AppendFailure, RecordReadFailure, TrackerUnavailable
from routing.partition_store import PartitionStore
from routing.tracker import ProcessedSetTracker
from shared.partitioning import RecordIdentity
from storage.kv_store import InMemoryKeyValueStore, KeyValueStoreError
from storage.tables import RowData


@pytest.fixture
def tracker(kv_store):
    return ProcessedSetTracker(kv_store)


@pytest.fixture
def engine(backend, tracker):
    return RoutingEngine(backend, tracker, PartitionStore(backend))


class FlakyAppendStore(PartitionStore):
    """Partition store whose first `failures` appends fail."""

    def __init__(self, table_backend, failures=1):
        super().__init__(table_backend)
        self.failures = failures

    def append(self, handle, record):
        if self.failures > 0:
            self.failures -= 1
            raise AppendFailure("simulated append failure", partition_key=handle.key)
        return super().append(handle, record)


class TestRouting:
    """Tests for the happy path."""

    def test_routes_to_new_partition(self, engine, backend, routing_config):
        """Test first record of a key creates its partition."""
        assert engine.route(2, routing_config) is RoutingOutcome.ROUTED

        sales = backend.find_table_by_name("Sales")
        assert sales is not None
        assert backend.last_row_index(sales) == 2
        assert backend.read_row(sales, 2).values == ["t1", "a@x.com", "Sales"]

    def test_idempotent(self, engine, backend, routing_config):
        """Test routing the same record twice adds exactly one row."""
        assert engine.route(2, routing_config) is RoutingOutcome.ROUTED
        assert engine.route(2, routing_config) is RoutingOutcome.SKIPPED_ALREADY_PROCESSED

        sales = backend.find_table_by_name("Sales")
        assert backend.last_row_index(sales) == 2

    def test_already_processed_is_read_only(self, engine, backend, tracker, routing_config):
        """Test a processed identity triggers no partition work."""
        tracker.mark_processed(RecordIdentity(routing_config.source_table_id, 2))
        assert engine.route(2, routing_config) is RoutingOutcome.SKIPPED_ALREADY_PROCESSED
        assert backend.find_table_by_name("Sales") is None

    def test_schema_propagation(self, engine, backend, header_row, routing_config):
        """Test partition header equals the source header, formatting included."""
        engine.route(3, routing_config)

        header = backend.read_header(backend.find_table_by_name("Ops"))
        assert header.values == header_row.values
        assert header.styles == header_row.styles
        assert header.backgrounds == header_row.backgrounds

    def test_record_formatting_copied(self, engine, backend, source_table, routing_config):
        """Test routed row keeps its per-cell style and background."""
        engine.route(2, routing_config)

        source_row = backend.read_row(source_table, 2)
        routed_row = backend.read_row(backend.find_table_by_name("Sales"), 2)
        assert routed_row.styles == source_row.styles
        assert routed_row.backgrounds == source_row.backgrounds

    def test_order_preserved_within_partition(self, engine, backend, source_table, routing_config):
        """Test P1 < P2 < P3 with the same key land in that order."""
        for position, stamp in ((5, "t4"), (6, "t5"), (7, "t6")):
            backend.write_row(source_table, position, RowData(values=[stamp, "z@x.com", "Legal"]))

        for position in (5, 6, 7):
            engine.route(position, routing_config)

        legal = backend.find_table_by_name("Legal")
        stamps = [backend.read_row(legal, p).values[0] for p in (2, 3, 4)]
        assert stamps == ["t4", "t5", "t6"]

    def test_key_normalized(self, engine, backend, source_table, routing_config):
        """Test the partition is named after the normalized key."""
        backend.write_row(source_table, 5, RowData(values=["t4", "q@x.com", "A/B*Test?"]))
        engine.route(5, routing_config)
        assert backend.find_table_by_name("A B Test") is not None


class TestEmptyKey:
    """Tests for records without a designated field value."""

    def test_empty_key_skipped_and_not_tracked(self, engine, backend, tracker, source_table, routing_config):
        """Test empty key returns SKIPPED_EMPTY_KEY and leaves the record retryable."""
        backend.write_row(source_table, 5, RowData(values=["t4", "d@x.com", ""]))

        assert engine.route(5, routing_config) is RoutingOutcome.SKIPPED_EMPTY_KEY
        assert not tracker.is_processed(RecordIdentity(source_table, 5))

        backend.write_row(source_table, 5, RowData(values=["t4", "d@x.com", "Finance"]))
        assert engine.route(5, routing_config) is RoutingOutcome.ROUTED
        assert backend.find_table_by_name("Finance") is not None

    def test_missing_cell_is_empty(self, engine, backend, source_table, routing_config):
        """Test a short row (no designated cell) counts as empty."""
        backend.write_row(source_table, 5, RowData(values=["t4"]))
        assert engine.route(5, routing_config) is RoutingOutcome.SKIPPED_EMPTY_KEY

    @pytest.mark.parametrize("value", [0, 0.0, False])
    def test_falsy_key_skipped_and_not_tracked(self, engine, backend, tracker, source_table, routing_config, value):
        """Test zero and False count as empty and create no partition."""
        backend.write_row(source_table, 5, RowData(values=["t4", "d@x.com", value]))

        assert engine.route(5, routing_config) is RoutingOutcome.SKIPPED_EMPTY_KEY
        assert not tracker.is_processed(RecordIdentity(source_table, 5))
        assert [t["name"] for t in backend.list_tables()] == ["Form Responses 1"]

        backend.write_row(source_table, 5, RowData(values=["t4", "d@x.com", "Legal"]))
        assert engine.route(5, routing_config) is RoutingOutcome.ROUTED

    def test_whitespace_key_routes_to_fallback(self, engine, backend, source_table, routing_config):
        """Test a whitespace-only value is not empty and lands in "Unnamed"."""
        backend.write_row(source_table, 5, RowData(values=["t4", "d@x.com", "   "]))
        assert engine.route(5, routing_config) is RoutingOutcome.ROUTED
        assert backend.find_table_by_name("Unnamed") is not None


class TestFailures:
    """Tests for failure semantics."""

    def test_append_failure_leaves_record_unprocessed(self, backend, tracker, source_table, routing_config):
        """Test a failed append does not mark, and a retry succeeds."""
        engine = RoutingEngine(backend, tracker, FlakyAppendStore(backend, failures=1))

        with pytest.raises(AppendFailure) as exc_info:
            engine.route(2, routing_config)
        assert exc_info.value.position == 2
        assert not tracker.is_processed(RecordIdentity(source_table, 2))

        assert engine.route(2, routing_config) is RoutingOutcome.ROUTED
        assert backend.last_row_index(backend.find_table_by_name("Sales")) == 2

    def test_unknown_source_is_read_failure(self, engine, routing_config):
        """Test an unreadable source row raises RecordReadFailure."""
        config = routing_config.model_copy(update={"source_table_id": "missing"})
        with pytest.raises(RecordReadFailure):
            engine.route(2, config)

    def test_tracker_unavailable_propagates(self, backend, routing_config):
        """Test a broken processed-set store is surfaced, not treated as empty."""

        class OfflineStore(InMemoryKeyValueStore):
            def get(self, key):
                raise KeyValueStoreError("offline")

        engine = RoutingEngine(backend, ProcessedSetTracker(OfflineStore()), PartitionStore(backend))
        with pytest.raises(TrackerUnavailable):
            engine.route(2, routing_config)
        assert backend.find_table_by_name("Sales") is None


class TestConcurrency:
    """Tests for concurrent routing of the same source."""

    def test_concurrent_routes_create_one_partition(self, backend, kv_store, source_table, routing_config):
        """Test parallel routing of same-key records yields one partition, no lost rows."""
        for position in range(5, 25):
            backend.write_row(source_table, position, RowData(values=[f"t{position}", "x@x.com", "Support"]))

        engine = RoutingEngine(backend, ProcessedSetTracker(kv_store), PartitionStore(backend))
        threads = [
            threading.Thread(target=engine.route, args=(position, routing_config))
            for position in range(5, 25)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        names = [t["name"] for t in backend.list_tables()]
        assert names.count("Support") == 1
        assert backend.last_row_index(backend.find_table_by_name("Support")) == 21
