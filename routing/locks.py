"""
Per-source mutual exclusion.

The tracker's load-mutate-persist cycle and the partition store's
create-or-append sequence are read-then-write; concurrent callers (event
watcher thread plus a bulk run) must serialize on the source table id.
"""
import threading
from typing import Dict


class SourceLockRegistry:
    """Hands out one re-entrant lock per source table id."""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def for_source(self, source_table_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(source_table_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[source_table_id] = lock
            return lock
