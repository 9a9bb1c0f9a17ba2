"""
Routing Errors
==============

Typed failures raised by the routing core.

- ConfigurationMissing, SourceNotFormCompatible: setup/config state, actionable by the user
- ConfigurationUnavailable: the key-value store holding the configuration failed
- TrackerUnavailable: fatal for the current operation (idempotency cannot be guaranteed)
- RecordRoutingFailure and subclasses: one record failed; it stays unprocessed
  and is retried on the next pass
"""

from typing import Optional


class RoutingError(Exception):
    """Base class for routing failures."""


class ConfigurationMissing(RoutingError):
    """No source table / designated field has been set up."""


class ConfigurationUnavailable(RoutingError):
    """The stored routing configuration cannot be read or written."""


class SourceNotFormCompatible(RoutingError):
    """The selected source table failed the form capability probe."""


class TrackerUnavailable(RoutingError):
    """The processed-set backing store cannot be read or written."""


class RecordRoutingFailure(RoutingError):
    """A single record could not be routed."""

    def __init__(
        self,
        message: str,
        position: Optional[int] = None,
        partition_key: Optional[str] = None,
    ):
        super().__init__(message)
        self.position = position
        self.partition_key = partition_key


class PartitionCreationFailure(RecordRoutingFailure):
    """The partition table for a key could not be found or created."""


class AppendFailure(RecordRoutingFailure):
    """The record could not be written to its partition."""


class RecordReadFailure(RecordRoutingFailure):
    """The record could not be read from the source table."""
