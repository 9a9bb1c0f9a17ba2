"""
Processed-Set Tracker
=====================

Persistent set of record identities that have already been routed. This is
the idempotency ledger: an identity is in the set if and only if its record
was copied into a partition.

The set lives in the key-value store as a JSON array of "<table_id>_<position>"
strings (insertion order kept). It is always loaded whole and persisted whole.

Usage:
    tracker = ProcessedSetTracker(kv_store)

    # Single record: one load (and one persist on mutation) per call
    if not tracker.is_processed(identity):
        ...
        tracker.mark_processed(identity)

    # Batch: load once, persist once
    with tracker.session():
        for identity in chunk:
            ...
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, Set

from routing.errors import TrackerUnavailable
from shared.partitioning import RecordIdentity
from storage.kv_store import KEY_PROCESSED_IDENTITIES, KeyValueStore, KeyValueStoreError

logger = logging.getLogger(__name__)


class _ProcessedSet:
    """Ordered set of identity strings loaded from the store."""

    def __init__(self, items: List[str]):
        self.items = items
        self.lookup: Set[str] = set(items)
        self.dirty = False

    def add(self, key: str) -> bool:
        if key in self.lookup:
            return False
        self.items.append(key)
        self.lookup.add(key)
        self.dirty = True
        return True


class ProcessedSetTracker:
    """
    Tracks routed record identities.

    Thread-safe: every load-mutate-persist cycle runs under one re-entrant
    lock, which a session holds from entry to exit.
    """

    def __init__(self, kv_store: KeyValueStore, key: str = KEY_PROCESSED_IDENTITIES):
        """
        Args:
            kv_store: Backing key-value store
            key: Store entry holding the JSON array
        """
        self.kv_store = kv_store
        self.key = key
        self._lock = threading.RLock()
        self._session: Optional[_ProcessedSet] = None

    # =========================================================================
    # Persistence
    # =========================================================================

    def _load(self) -> _ProcessedSet:
        try:
            raw = self.kv_store.get(self.key)
        except KeyValueStoreError as e:
            raise TrackerUnavailable(f"Cannot read processed set: {e}") from e

        if raw is None or raw == "":
            return _ProcessedSet([])

        try:
            items = json.loads(raw)
        except json.JSONDecodeError as e:
            raise TrackerUnavailable(f"Processed set is not valid JSON: {e}") from e
        if not isinstance(items, list):
            raise TrackerUnavailable("Processed set is not a JSON array")

        return _ProcessedSet([str(item) for item in items])

    def _persist(self, processed: _ProcessedSet) -> None:
        try:
            self.kv_store.set(self.key, json.dumps(processed.items))
        except KeyValueStoreError as e:
            raise TrackerUnavailable(f"Cannot write processed set: {e}") from e
        processed.dirty = False

    @contextmanager
    def session(self) -> Iterator["ProcessedSetTracker"]:
        """
        Load the set once and persist it once on exit.

        Nested sessions join the outermost one. Marks made inside a session
        are persisted on exit even when the body raises, since those records
        were already copied.
        """
        with self._lock:
            if self._session is not None:
                yield self
                return

            self._session = self._load()
            try:
                yield self
            finally:
                processed, self._session = self._session, None
                if processed.dirty:
                    self._persist(processed)
                    logger.debug(f"Persisted processed set ({len(processed.items)} identities)")

    # =========================================================================
    # Operations
    # =========================================================================

    def is_processed(self, identity: RecordIdentity) -> bool:
        with self._lock:
            processed = self._session if self._session is not None else self._load()
            return str(identity) in processed.lookup

    def mark_processed(self, identity: RecordIdentity) -> None:
        """Add identity to the set; a no-op if it is already there."""
        with self._lock:
            if self._session is not None:
                self._session.add(str(identity))
                return

            processed = self._load()
            if processed.add(str(identity)):
                self._persist(processed)

    def reset(self) -> None:
        """Empty the set."""
        with self._lock:
            if self._session is not None:
                self._session = _ProcessedSet([])
                self._session.dirty = True
                return
            self._persist(_ProcessedSet([]))
        logger.info("Processed set cleared")

    def processed_count(self) -> int:
        with self._lock:
            processed = self._session if self._session is not None else self._load()
            return len(processed.items)
