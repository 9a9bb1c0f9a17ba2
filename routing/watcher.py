"""
Source Watcher
==============

Polling event source: watches the configured source table and hands each
newly appended row to RouterService.on_record_added.

Delivery is at-least-once. The high-water mark lives in memory only, so a
restarted watcher begins at the current last row; rows that arrived while it
was down are picked up by run_existing, and redeliveries are absorbed by the
processed set.

Usage:
    watcher = SourceWatcher(service, poll_interval=5.0)
    watcher.start()      # background thread
    ...
    watcher.stop()
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from routing.enums import RoutingOutcome
from routing.errors import ConfigurationMissing, RoutingError
from routing.service import RouterService

logger = logging.getLogger(__name__)


class SourceWatcher:
    """Delivers new source positions to the router."""

    def __init__(self, service: RouterService, poll_interval: float = 5.0):
        """
        Args:
            service: Router service receiving the events
            poll_interval: Seconds between polls
        """
        self.service = service
        self.poll_interval = poll_interval
        self._last_seen: Optional[int] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._stats = {"polls": 0, "delivered": 0, "routed": 0, "errors": 0}

    def poll_once(self) -> int:
        """
        Check the source once and deliver new rows.

        The first poll only records the current last row.

        Returns:
            Number of positions delivered
        """
        self._stats["polls"] += 1
        try:
            config = self.service.require_configuration()
            last_row = self.service.table_backend.last_row_index(config.source_table_id)
        except ConfigurationMissing as e:
            logger.debug(f"Watcher idle: {e}")
            return 0
        except RoutingError as e:
            self._stats["errors"] += 1
            logger.error(f"Watcher could not load configuration: {e}")
            return 0
        except Exception as e:
            self._stats["errors"] += 1
            logger.error(f"Watcher could not read source: {e}")
            return 0

        if self._last_seen is None:
            self._last_seen = last_row
            logger.info(f"Watching {config.source_table_id} from row {last_row}")
            return 0

        delivered = 0
        for position in range(self._last_seen + 1, last_row + 1):
            outcome = self.service.on_record_added(position)
            delivered += 1
            if outcome is RoutingOutcome.ROUTED:
                self._stats["routed"] += 1
            elif outcome is None:
                self._stats["errors"] += 1

        self._last_seen = max(self._last_seen, last_row)
        self._stats["delivered"] += delivered
        return delivered

    def start(self) -> None:
        """Start polling on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Watcher already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, daemon=True, name="SourceWatcher")
        self._thread.start()
        logger.info(f"Started watcher thread (interval={self.poll_interval}s)")

    def run(self) -> None:
        """Poll until stop() is called (blocking)."""
        while True:
            self.poll_once()
            if self._stop_event.wait(timeout=self.poll_interval):
                break

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self.poll_interval + 5.0)
            self._thread = None
        logger.debug("Stopped watcher")

    def get_stats(self) -> Dict[str, Any]:
        return {**self._stats, "last_seen": self._last_seen}
