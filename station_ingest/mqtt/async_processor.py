"""Async processor: decouples the paho callback from store round-trips.

The paho network thread only puts raw messages on a bounded queue; worker
threads run the pipeline (resolver upserts can take tens of ms). The bounded
queue is the backpressure: when it is full the callback blocks, retrying every
`enqueue_timeout` seconds, until a worker frees a slot. paho acknowledges a
QoS 1 message as soon as the callback returns, so a message is only refused
once stop() has been called.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000
DEFAULT_NUM_WORKERS = 4
DEFAULT_ENQUEUE_TIMEOUT = 5.0
DRAIN_POLL_SECONDS = 0.05

MessageHandler = Callable[[bytes, Optional[str]], object]


class AsyncMessageProcessor:
    """Bounded queue + worker threads in front of a message handler."""

    def __init__(
        self,
        handler: MessageHandler,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
        num_workers: int = DEFAULT_NUM_WORKERS,
        enqueue_timeout: float = DEFAULT_ENQUEUE_TIMEOUT,
    ):
        self._handler = handler
        self._queue: "queue.Queue[Tuple[Optional[str], bytes]]" = queue.Queue(maxsize=max_queue_size)
        self._num_workers = num_workers
        self._enqueue_timeout = enqueue_timeout
        self._stop_event = threading.Event()
        self._accepting = False

        # Metrics
        self._enqueued = 0
        self._dropped = 0
        self._full_waits = 0
        self._processed = 0
        self._errors = 0
        self._lock = threading.Lock()

        self._workers: List[threading.Thread] = []

    def start(self) -> None:
        """Start worker threads."""
        self._stop_event.clear()
        self._accepting = True
        for i in range(self._num_workers):
            t = threading.Thread(
                target=self._worker_loop,
                args=(i,),
                daemon=True,
                name=f"ingest-worker-{i}",
            )
            t.start()
            self._workers.append(t)
        logger.info(
            "[ASYNC_PROC] Started workers=%d queue_max=%d",
            self._num_workers, self._queue.maxsize,
        )

    def stop(self, drain: bool = True, timeout: float = 30.0) -> None:
        """Stop accepting messages; with drain=True finish the queued ones first.

        `timeout` bounds the whole call, drain and worker joins together.
        """
        self._accepting = False
        deadline = time.monotonic() + timeout
        if drain:
            while self._queue.unfinished_tasks and time.monotonic() < deadline:
                time.sleep(DRAIN_POLL_SECONDS)
            if self._queue.unfinished_tasks:
                logger.warning(
                    "[ASYNC_PROC] Drain timed out after %.1fs with %d messages unfinished",
                    timeout, self._queue.unfinished_tasks,
                )
        self._stop_event.set()
        for t in self._workers:
            t.join(timeout=max(0.0, deadline - time.monotonic()))
        self._workers.clear()
        logger.info("[ASYNC_PROC] Stopped. %s", self.metrics)

    def enqueue(self, payload: bytes, topic: Optional[str] = None) -> bool:
        """Queue a raw message, blocking while the queue is full.

        Returns:
            False only if the processor is not accepting (not started, or stopping).
        """
        while True:
            if not self._accepting:
                with self._lock:
                    self._dropped += 1
                logger.warning("[ASYNC_PROC] Not accepting messages, dropped topic=%s", topic)
                return False

            try:
                self._queue.put((topic, payload), timeout=self._enqueue_timeout)
                break
            except queue.Full:
                with self._lock:
                    self._full_waits += 1
                logger.warning("[ASYNC_PROC] Queue full, still waiting topic=%s", topic)

        with self._lock:
            self._enqueued += 1
        return True

    def _worker_loop(self, worker_id: int) -> None:
        while not self._stop_event.is_set():
            try:
                topic, payload = self._queue.get(timeout=1.0)
            except queue.Empty:
                continue

            try:
                self._handler(payload, topic)
                with self._lock:
                    self._processed += 1
            except Exception as e:
                with self._lock:
                    self._errors += 1
                logger.error("[ASYNC_PROC] Worker %d error: %s", worker_id, e)
            finally:
                self._queue.task_done()

    @property
    def is_running(self) -> bool:
        return any(t.is_alive() for t in self._workers)

    @property
    def metrics(self) -> dict:
        with self._lock:
            return {
                "queue_depth": self._queue.qsize(),
                "queue_max": self._queue.maxsize,
                "enqueued": self._enqueued,
                "dropped": self._dropped,
                "full_waits": self._full_waits,
                "processed": self._processed,
                "errors": self._errors,
            }
