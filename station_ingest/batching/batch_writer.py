"""Batch writer for readings and voltage readings.

Two in-memory queues (one per fact table) flushed to the store with one bulk
insert per queue when:
- the queue reaches batch_size (flushed by the enqueuing thread), or
- the periodic timer fires (every flush_interval seconds), or
- stop() is called (final synchronous drain).

A flush detaches the queue under the lock and writes outside it, so records
enqueued during the store round-trip land in a fresh queue. A failed batch is
logged and discarded; there is no retry queue.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Union

from ..domain.errors import IngestError
from ..domain.records import ReadingRecord, RecordKind, VoltageRecord
from ..persistence.store import TelemetryStore

logger = logging.getLogger(__name__)

Record = Union[ReadingRecord, VoltageRecord]


class _KindStats:
    def __init__(self):
        self.enqueued = 0
        self.flushed = 0
        self.discarded = 0
        self.batches = 0
        self.failed_batches = 0

    def to_dict(self) -> dict:
        return {
            "enqueued": self.enqueued,
            "flushed": self.flushed,
            "discarded": self.discarded,
            "batches": self.batches,
            "failed_batches": self.failed_batches,
        }


class BatchWriter:
    """Dual-trigger (size and time) batch writer with graceful-shutdown drain."""

    DEFAULT_BATCH_SIZE = 100
    DEFAULT_FLUSH_INTERVAL = 5.0  # seconds
    DEFAULT_STOP_TIMEOUT = 30.0

    def __init__(
        self,
        store: TelemetryStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if flush_interval <= 0:
            raise ValueError(f"flush_interval must be > 0, got {flush_interval}")

        self._store = store
        self._batch_size = batch_size
        self._flush_interval = flush_interval

        self._queues: Dict[RecordKind, List[Record]] = {kind: [] for kind in RecordKind}
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._inflight = 0
        self._accepting = True

        self._stop_event = threading.Event()
        self._flush_thread: Optional[threading.Thread] = None

        self._stats: Dict[RecordKind, _KindStats] = {kind: _KindStats() for kind in RecordKind}

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def flush_interval(self) -> float:
        return self._flush_interval

    def start(self) -> None:
        """Start the periodic flush thread."""
        if self._flush_thread is not None and self._flush_thread.is_alive():
            return

        self._stop_event.clear()
        self._flush_thread = threading.Thread(
            target=self._flush_loop, daemon=True, name="batch-flush",
        )
        self._flush_thread.start()
        logger.info("[BATCH] Started batch_size=%d flush_interval=%.1fs",
                    self._batch_size, self._flush_interval)

    def stop(self, timeout: float = DEFAULT_STOP_TIMEOUT) -> None:
        """Reject new records, stop the timer, and flush whatever is queued.

        Returns only after the final flush finished and any size-triggered
        flush already in progress has completed (or `timeout` elapsed).
        """
        with self._lock:
            self._accepting = False

        self._stop_event.set()
        if self._flush_thread is not None:
            self._flush_thread.join(timeout=timeout)
            self._flush_thread = None

        self.flush()

        with self._idle:
            if not self._idle.wait_for(lambda: self._inflight == 0, timeout=timeout):
                logger.warning("[BATCH] Stop timed out with %d flushes in flight", self._inflight)

        logger.info("[BATCH] Stopped. %s", self.stats)

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def enqueue(self, kind: RecordKind, record: Record) -> bool:
        """Append a record; flush its queue right away if it reached batch_size.

        Returns:
            False if the writer is stopped and the record was rejected.
        """
        with self._lock:
            if not self._accepting:
                logger.warning("[BATCH] Writer stopped, rejecting %s record", kind.value)
                return False

            queue = self._queues[kind]
            queue.append(record)
            self._stats[kind].enqueued += 1

            batch = self._detach(kind) if len(queue) >= self._batch_size else None

        if batch:
            self._write(kind, batch, reason="size")
        return True

    def enqueue_reading(self, record: ReadingRecord) -> bool:
        return self.enqueue(RecordKind.READING, record)

    def enqueue_voltage(self, record: VoltageRecord) -> bool:
        return self.enqueue(RecordKind.VOLTAGE, record)

    # ------------------------------------------------------------------
    # Flush
    # ------------------------------------------------------------------

    def flush(self, reason: str = "manual") -> int:
        """Flush both queues. Safe to call at any time; empty queues are a no-op.

        Returns:
            Number of records written successfully.
        """
        written = 0
        for kind in RecordKind:
            with self._lock:
                batch = self._detach(kind)
            if batch:
                written += self._write(kind, batch, reason=reason)
        return written

    def _detach(self, kind: RecordKind) -> List[Record]:
        """Swap in a fresh queue. Caller holds the lock."""
        batch = self._queues[kind]
        if not batch:
            return batch
        self._queues[kind] = []
        self._inflight += 1
        return batch

    def _write(self, kind: RecordKind, batch: List[Record], reason: str) -> int:
        try:
            written = self._store.bulk_insert(kind, [record.to_row() for record in batch])
        except IngestError as e:
            with self._lock:
                self._stats[kind].discarded += len(batch)
                self._stats[kind].failed_batches += 1
            logger.error("[BATCH] Discarding %d %s records (%s flush): %s",
                         len(batch), kind.value, reason, e)
            return 0
        else:
            with self._lock:
                self._stats[kind].flushed += written
                self._stats[kind].batches += 1
            logger.info("[BATCH] Flushed %d %s records (%s)", written, kind.value, reason)
            return written
        finally:
            with self._idle:
                self._inflight -= 1
                self._idle.notify_all()

    def _flush_loop(self) -> None:
        while not self._stop_event.wait(self._flush_interval):
            try:
                self.flush(reason="timer")
            except Exception:
                logger.exception("[BATCH] Periodic flush failed")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def pending(self, kind: Optional[RecordKind] = None) -> int:
        with self._lock:
            if kind is not None:
                return len(self._queues[kind])
            return sum(len(q) for q in self._queues.values())

    @property
    def is_running(self) -> bool:
        return self._flush_thread is not None and self._flush_thread.is_alive()

    @property
    def stats(self) -> dict:
        with self._lock:
            result = {kind.value: self._stats[kind].to_dict() for kind in RecordKind}
            for kind in RecordKind:
                result[kind.value]["pending"] = len(self._queues[kind])
        result["batch_size"] = self._batch_size
        result["flush_interval"] = self._flush_interval
        return result
