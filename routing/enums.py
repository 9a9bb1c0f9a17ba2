"""
Enums for the routing core.
"""

from enum import Enum


class RoutingOutcome(str, Enum):
    """
    Result of routing one record.

    - ROUTED: Copied into its partition and marked processed
    - SKIPPED_ALREADY_PROCESSED: Identity already in the processed set; nothing touched
    - SKIPPED_EMPTY_KEY: Designated field empty; not marked, so a later pass retries it
    """
    ROUTED = "routed"
    SKIPPED_ALREADY_PROCESSED = "skipped_already_processed"
    SKIPPED_EMPTY_KEY = "skipped_empty_key"

    def __str__(self) -> str:
        return self.value
