"""
Batch Driver
============

Routes an inclusive range of source positions in fixed-size chunks.

Each chunk runs inside one tracker session (processed set loaded once,
persisted once). The chunk holds the source lock, taken before the
session so single-record routes of the same source wait for it. A pause
separates chunks, but never follows the last one, so hosts with
execution-rate limits are not hammered. The pause doubles as
the cancellation point: cancel() stops the driver before the next chunk.

Per-record failures are counted and logged; the batch moves on. Only a
TrackerUnavailable aborts, because idempotency can no longer be guaranteed.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterator, Optional, Tuple

from config.config import RoutingConfig
from routing.engine import RoutingEngine
from routing.enums import RoutingOutcome
from routing.errors import RecordRoutingFailure
from routing.tracker import ProcessedSetTracker

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 20
DEFAULT_PAUSE_SECONDS = 1.0


@dataclass
class BatchStats:
    """Outcome counts of one drive_batch call."""
    routed: int = 0
    skipped_already_processed: int = 0
    skipped_empty_key: int = 0
    failed: int = 0
    chunks: int = 0
    cancelled: bool = False
    elapsed_seconds: float = 0.0

    @property
    def attempted(self) -> int:
        return self.routed + self.skipped_already_processed + self.skipped_empty_key + self.failed

    def record(self, outcome: RoutingOutcome) -> None:
        if outcome is RoutingOutcome.ROUTED:
            self.routed += 1
        elif outcome is RoutingOutcome.SKIPPED_ALREADY_PROCESSED:
            self.skipped_already_processed += 1
        elif outcome is RoutingOutcome.SKIPPED_EMPTY_KEY:
            self.skipped_empty_key += 1

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["attempted"] = self.attempted
        return data


def iter_chunks(first_position: int, last_position: int, batch_size: int) -> Iterator[Tuple[int, int]]:
    """
    Split an inclusive position range into consecutive (start, end) chunks.

    Examples:
        >>> list(iter_chunks(2, 6, 2))
        [(2, 3), (4, 5), (6, 6)]
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    start = first_position
    while start <= last_position:
        end = min(start + batch_size - 1, last_position)
        yield start, end
        start = end + 1


class BatchDriver:
    """Drives the RoutingEngine across a range of positions."""

    def __init__(
        self,
        engine: RoutingEngine,
        tracker: ProcessedSetTracker,
        batch_size: int = DEFAULT_BATCH_SIZE,
        pause_seconds: float = DEFAULT_PAUSE_SECONDS,
    ):
        """
        Args:
            engine: Routing engine
            tracker: The tracker the engine uses (sessions are opened per chunk)
            batch_size: Default records per chunk
            pause_seconds: Pause between chunks (0 disables)
        """
        self.engine = engine
        self.tracker = tracker
        self.batch_size = batch_size
        self.pause_seconds = pause_seconds
        self._cancel_event = threading.Event()
        self.last_stats: Optional[BatchStats] = None

    def cancel(self) -> None:
        """Stop before the next chunk; the current chunk completes."""
        self._cancel_event.set()

    def drive_batch(
        self,
        config: RoutingConfig,
        first_position: int,
        last_position: int,
        batch_size: Optional[int] = None,
    ) -> int:
        """
        Route every position in [first_position, last_position], ascending.

        Args:
            config: Source table and designated field
            first_position: First position (inclusive)
            last_position: Last position (inclusive)
            batch_size: Records per chunk (default: driver's batch_size)

        Returns:
            Number of records routed. Less than the range size means some
            records were skipped or failed; see last_stats.

        Raises:
            TrackerUnavailable: Processed set unreadable/unwritable (batch aborted)
        """
        size = batch_size or self.batch_size
        stats = BatchStats()
        self.last_stats = stats
        self._cancel_event.clear()
        start_time = time.monotonic()

        chunks = list(iter_chunks(first_position, last_position, size))
        source_lock = self.engine.locks.for_source(config.source_table_id)
        logger.info(
            f"Routing positions {first_position}-{last_position} of {config.source_table_id} "
            f"in {len(chunks)} chunk(s) of {size}"
        )

        for index, (start, end) in enumerate(chunks):
            if index > 0 and self._pause():
                stats.cancelled = True
                logger.info(f"Batch cancelled before positions {start}-{end}")
                break

            # Source lock before the tracker lock, the order RoutingEngine.route uses
            with source_lock, self.tracker.session():
                for position in range(start, end + 1):
                    try:
                        stats.record(self.engine.route(position, config))
                    except RecordRoutingFailure as e:
                        stats.failed += 1
                        logger.warning(f"Row {position}: routing failed, will retry on next pass: {e}")
            stats.chunks += 1

        stats.elapsed_seconds = time.monotonic() - start_time
        logger.info(
            f"Batch complete: {stats.routed} routed, "
            f"{stats.skipped_already_processed} already processed, "
            f"{stats.skipped_empty_key} empty key, {stats.failed} failed "
            f"({stats.elapsed_seconds:.2f}s)"
        )
        return stats.routed

    def _pause(self) -> bool:
        """Wait between chunks. Returns True if cancelled."""
        if self._cancel_event.is_set():
            return True
        if self.pause_seconds <= 0:
            return False
        return self._cancel_event.wait(timeout=self.pause_seconds)
