"""
Shared utilities for Hermes.

This module provides pure helpers used by both:
- storage/ (table and key-value backends)
- routing/ (the routing engine and its collaborators)

Keeps partition naming and record identity consistent across the project.
"""

from shared.partitioning import (
    FALLBACK_PARTITION_KEY,
    FORBIDDEN_KEY_CHARS,
    MAX_PARTITION_KEY_LENGTH,
    RecordIdentity,
    is_empty_key_value,
    is_valid_partition_key,
    normalize_partition_key,
)

__all__ = [
    "FALLBACK_PARTITION_KEY",
    "FORBIDDEN_KEY_CHARS",
    "MAX_PARTITION_KEY_LENGTH",
    "RecordIdentity",
    "is_empty_key_value",
    "is_valid_partition_key",
    "normalize_partition_key",
]
