"""
Partition key utilities for Hermes.

Provides the normalization logic that turns a designated field value into a
partition (table) name, plus the record identity used by the processed-set
tracker. Everything here is pure: no I/O and no state.

Normalization Rules:
    1. Convert the value to text (None -> "", 3.0 -> "3")
    2. Replace every prohibited character ([ ] * ? / \\) with a space
    3. Strip leading/trailing whitespace
    4. Truncate to MAX_PARTITION_KEY_LENGTH characters
    5. Fall back to "Unnamed" when nothing is left

Usage:
    from shared.partitioning import normalize_partition_key, RecordIdentity

    normalize_partition_key("A/B*Test?")   # -> "A B Test"
    normalize_partition_key("   ")         # -> "Unnamed"

    identity = RecordIdentity("tbl01", 7)
    str(identity)                          # -> "tbl01_7"
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any


# =============================================================================
# Constants
# =============================================================================

# Characters that table backends refuse in a table name (replaced with a space)
FORBIDDEN_KEY_CHARS = re.compile(r"[\[\]*?/\\]")

# Longest partition name a table backend accepts
MAX_PARTITION_KEY_LENGTH = 100

# Used when a value normalizes to nothing
FALLBACK_PARTITION_KEY = "Unnamed"

IDENTITY_SEPARATOR = "_"


# =============================================================================
# Normalization
# =============================================================================

def _to_text(value: Any) -> str:
    """Render a cell value the way a spreadsheet displays it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_partition_key(raw_value: Any) -> str:
    """
    Derive a partition key from a designated field value.

    Args:
        raw_value: Scalar cell value (string, number, or empty)

    Returns:
        Non-empty key of at most MAX_PARTITION_KEY_LENGTH characters that
        contains none of the prohibited characters.

    Examples:
        >>> normalize_partition_key("Sales")
        'Sales'
        >>> normalize_partition_key("A/B*Test?")
        'A B Test'
        >>> normalize_partition_key("[]*?/\\\\")
        'Unnamed'
        >>> normalize_partition_key(42.0)
        '42'
    """
    text = FORBIDDEN_KEY_CHARS.sub(" ", _to_text(raw_value)).strip()
    if len(text) > MAX_PARTITION_KEY_LENGTH:
        text = text[:MAX_PARTITION_KEY_LENGTH]
    if not text:
        return FALLBACK_PARTITION_KEY
    return text


def is_empty_key_value(value: Any) -> bool:
    """
    True if a designated field value means "no category yet".

    Any falsy cell counts: None, "", 0, 0.0, False, and NaN. Whitespace-only
    text is not empty; it normalizes to the fallback key.
    """
    if isinstance(value, float) and math.isnan(value):
        return True
    return not value


def is_valid_partition_key(key: str) -> bool:
    """Check a key against the table naming constraints."""
    return (
        bool(key)
        and len(key) <= MAX_PARTITION_KEY_LENGTH
        and FORBIDDEN_KEY_CHARS.search(key) is None
    )


# =============================================================================
# Record identity
# =============================================================================

@dataclass(frozen=True)
class RecordIdentity:
    """
    Idempotency key for one physical row of a source table.

    Not stable across the source table being re-created; a reset clears all
    identities anyway.
    """
    table_id: str
    position: int

    def __str__(self) -> str:
        return f"{self.table_id}{IDENTITY_SEPARATOR}{self.position}"

    @classmethod
    def parse(cls, text: str) -> "RecordIdentity":
        """
        Parse the "<table_id>_<position>" form.

        Splits on the last separator so table ids may contain underscores.

        Raises:
            ValueError: If the text has no separator or a non-integer position
        """
        table_id, sep, position = text.rpartition(IDENTITY_SEPARATOR)
        if not sep or not table_id:
            raise ValueError(f"Not a record identity: {text!r}")
        return cls(table_id=table_id, position=int(position))
