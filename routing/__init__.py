"""
Routing core for Hermes.

Routes source records into per-category partition tables, at most once per
record identity.
"""

from routing.enums import RoutingOutcome
from routing.errors import (
    AppendFailure,
    ConfigurationMissing,
    ConfigurationUnavailable,
    PartitionCreationFailure,
    RecordReadFailure,
    RecordRoutingFailure,
    RoutingError,
    SourceNotFormCompatible,
    TrackerUnavailable,
)
from routing.tracker import ProcessedSetTracker
from routing.partition_store import PartitionHandle, PartitionStore
from routing.engine import RoutingEngine
from routing.batch import BatchDriver, BatchStats
from routing.probe import is_form_compatible, probe_source
from routing.service import RouterService
from routing.watcher import SourceWatcher

__all__ = [
    "RoutingOutcome",
    "AppendFailure",
    "ConfigurationMissing",
    "ConfigurationUnavailable",
    "PartitionCreationFailure",
    "RecordReadFailure",
    "RecordRoutingFailure",
    "RoutingError",
    "SourceNotFormCompatible",
    "TrackerUnavailable",
    "ProcessedSetTracker",
    "PartitionHandle",
    "PartitionStore",
    "RoutingEngine",
    "BatchDriver",
    "BatchStats",
    "is_form_compatible",
    "probe_source",
    "RouterService",
    "SourceWatcher",
]
