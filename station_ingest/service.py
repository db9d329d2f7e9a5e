"""Service wiring and lifecycle.

Start order:  store → cache preload → batch writer → workers → MQTT
Stop order:   MQTT (no new messages) → drain workers → writer final flush → store
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .batching.batch_writer import BatchWriter
from .catalog.sensor_catalog import DEFAULT_CATALOG, SensorCatalog
from .common.config import Settings
from .common.db import check_connection, create_store_engine
from .mqtt.async_processor import AsyncMessageProcessor
from .mqtt.receiver import StationMQTTReceiver
from .persistence.store import SqlTelemetryStore, TelemetryStore
from .pipeline.orchestrator import MessagePipeline
from .resolver.entity_cache import EntityCache
from .resolver.entity_resolver import EntityResolver

logger = logging.getLogger(__name__)

ReceiverFactory = Callable[[Settings, Callable[[str, bytes], bool]], StationMQTTReceiver]


class IngestService:
    """Owns every pipeline component and the shutdown sequence."""

    def __init__(
        self,
        settings: Settings,
        store: Optional[TelemetryStore] = None,
        catalog: SensorCatalog = DEFAULT_CATALOG,
        receiver_factory: ReceiverFactory = StationMQTTReceiver.from_settings,
    ):
        self.settings = settings
        self._owns_store = store is None
        self.store = store if store is not None else SqlTelemetryStore(create_store_engine(settings))
        self.catalog = catalog

        self.cache = EntityCache()
        self.resolver = EntityResolver(self.store, catalog, self.cache)
        self.writer = BatchWriter(
            self.store,
            batch_size=settings.batch_size,
            flush_interval=settings.batch_interval_seconds,
        )
        self.pipeline = MessagePipeline(self.resolver, self.writer, catalog)
        self.processor = AsyncMessageProcessor(
            self.pipeline.process,
            max_queue_size=settings.ingest_queue_size,
            num_workers=settings.ingest_workers,
            enqueue_timeout=settings.ingest_enqueue_timeout,
        )
        self.receiver = receiver_factory(settings, self.handle_message)

        self._stop_lock = threading.Lock()
        self._started = False
        self._stopped = False

    def handle_message(self, topic: str, payload: bytes) -> bool:
        """paho callback target: only queues the message."""
        return self.processor.enqueue(payload, topic)

    def start(self) -> bool:
        if self._owns_store and isinstance(self.store, SqlTelemetryStore):
            if not check_connection(self.store.engine):
                logger.error("[SERVICE] Database unreachable, not starting")
                return False

        if self.settings.preload_cache:
            self.resolver.preload()

        self.writer.start()
        self.processor.start()
        self._started = True

        if not self.receiver.start():
            logger.error("[SERVICE] MQTT receiver failed to start")
            self.stop()
            return False

        logger.info("[SERVICE] Ingest service running (topic=%s)", self.settings.mqtt_topic)
        return True

    def stop(self) -> None:
        """Graceful shutdown. Idempotent; returns after the final flush completed."""
        with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True

        logger.info("[SERVICE] Shutting down, flushing pending batches...")
        self.receiver.stop()
        if self._started:
            self.processor.stop(drain=True)
        self.writer.stop()

        if self._owns_store and isinstance(self.store, SqlTelemetryStore):
            self.store.dispose()
        logger.info("[SERVICE] Shutdown complete. %s", self.stats)

    @property
    def stats(self) -> dict:
        return {
            "receiver": self.receiver.stats,
            "workers": self.processor.metrics,
            "pipeline": self.pipeline.stats,
            "resolver": self.resolver.stats,
            "writer": self.writer.stats,
        }

    def health_check(self) -> dict:
        receiver = self.receiver.health_check()
        return {
            "healthy": receiver["healthy"] and self.writer.is_running and self.processor.is_running,
            "receiver": receiver,
            "writer_running": self.writer.is_running,
            "workers_running": self.processor.is_running,
        }
