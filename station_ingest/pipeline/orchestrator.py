"""Per-message pipeline: decode → resolve → enqueue.

Each message ends COMPLETED or DROPPED and is never retried here; the
transport's redelivery is the only retry mechanism.

    1. decode envelope                       → DROPPED on failure
    2. ensure device (station first)         → DROPPED on failure
    3. numeric voltage → VoltageRecord       (non-numeric: ignored)
    4. per sensor field, per channel:
         ensure sensor type → ensure sensor → ReadingRecord
       a failing channel is skipped, its siblings continue
    5. COMPLETED
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Optional

from ..batching.batch_writer import BatchWriter
from ..catalog.sensor_catalog import SensorCatalog
from ..decoding.envelope import decode_message
from ..domain.errors import ErrorKind
from ..domain.records import (
    ChannelIssue,
    ChannelReading,
    DecodedMessage,
    MessageOutcome,
    MessageStatus,
    ReadingRecord,
    VoltageRecord,
)
from ..resolver.entity_resolver import EntityResolver

logger = logging.getLogger(__name__)

STATS_LOG_EVERY = 100


class PipelineStats:
    """Message counters, safe to update from several worker threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self.received = 0
        self.completed = 0
        self.dropped = 0
        self.readings = 0
        self.voltages = 0
        self.channels_skipped = 0
        self.drop_reasons: Counter = Counter()

    def record(self, outcome: MessageOutcome) -> int:
        with self._lock:
            self.received += 1
            if outcome.completed:
                self.completed += 1
            else:
                self.dropped += 1
                self.drop_reasons[outcome.reason or "unknown"] += 1
            self.readings += outcome.readings_enqueued
            self.voltages += outcome.voltage_enqueued
            self.channels_skipped += len(outcome.skipped)
            return self.received

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} completed={self.completed} "
            f"dropped={self.dropped} readings={self.readings} voltages={self.voltages} "
            f"channels_skipped={self.channels_skipped}"
        )

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "received": self.received,
                "completed": self.completed,
                "dropped": self.dropped,
                "readings": self.readings,
                "voltages": self.voltages,
                "channels_skipped": self.channels_skipped,
                "drop_reasons": dict(self.drop_reasons),
            }


class MessagePipeline:
    """Wires one transport message through decoder, resolver and batch writer."""

    def __init__(
        self,
        resolver: EntityResolver,
        writer: BatchWriter,
        catalog: SensorCatalog,
    ):
        self._resolver = resolver
        self._writer = writer
        self._catalog = catalog
        self._stats = PipelineStats()

    @property
    def stats(self) -> dict:
        return self._stats.to_dict()

    def process(self, raw: bytes, topic: Optional[str] = None) -> MessageOutcome:
        """Process one raw message. Never raises."""
        try:
            outcome = self._process(raw)
        except Exception as e:
            logger.exception("[PIPELINE] Unexpected error (topic=%s): %s", topic, e)
            outcome = MessageOutcome.dropped("unexpected_error")

        if outcome.completed:
            logger.debug(
                "[PIPELINE] Completed station=%s device=%s readings=%d voltage=%d skipped=%d",
                outcome.station_id, outcome.device_id, outcome.readings_enqueued,
                outcome.voltage_enqueued, len(outcome.skipped),
            )
        else:
            logger.warning("[PIPELINE] Dropped message (topic=%s): %s", topic, outcome.reason)

        if self._stats.record(outcome) % STATS_LOG_EVERY == 0:
            logger.info("[PIPELINE] %s", self._stats)
        return outcome

    def _process(self, raw: bytes) -> MessageOutcome:
        decoded = decode_message(raw)
        if not decoded.valid:
            return MessageOutcome.dropped(decoded.error or "decode failed", decoded.error_kind)

        message = decoded.message
        device = self._resolver.ensure_device(message.device_id, message.station_id)
        if not device.ok:
            return MessageOutcome.dropped(
                f"device {message.device_id} not ensured: {device.error}",
                device.error_kind,
                station_id=message.station_id,
                device_id=message.device_id,
            )

        outcome = MessageOutcome(
            status=MessageStatus.COMPLETED,
            station_id=message.station_id,
            device_id=message.device_id,
        )

        if message.voltage is not None:
            record = VoltageRecord(message.device_id, message.voltage, message.timestamp)
            if self._writer.enqueue_voltage(record):
                outcome.voltage_enqueued += 1

        for sensor_field in message.sensor_fields:
            expansion = self._catalog.expand(sensor_field)
            outcome.skipped.extend(expansion.issues)
            outcome.nulls_dropped += expansion.nulls
            for channel in expansion.channels:
                issue = self._handle_channel(message, channel)
                if issue is None:
                    outcome.readings_enqueued += 1
                else:
                    outcome.skipped.append(issue)

        return outcome

    def _handle_channel(self, message: DecodedMessage, channel: ChannelReading) -> Optional[ChannelIssue]:
        """Resolve and enqueue one channel. Returns the issue if it was skipped."""
        sensor_type = self._resolver.ensure_sensor_type(channel.sensor_type_id)
        if not sensor_type.ok:
            logger.error("[PIPELINE] Sensor type %s not ensured for %s, skipping reading",
                         channel.sensor_type_id, channel.sensor_id)
            return ChannelIssue(channel.sensor_id, sensor_type.error_kind, sensor_type.error or "")

        sensor = self._resolver.ensure_sensor(
            channel.sensor_id, sensor_type.entity_id, message.station_id,
        )
        if not sensor.ok:
            logger.error("[PIPELINE] Sensor %s not ensured, skipping reading", channel.sensor_id)
            return ChannelIssue(channel.sensor_id, sensor.error_kind, sensor.error or "")

        record = ReadingRecord(channel.sensor_id, channel.value, message.timestamp)
        if not self._writer.enqueue_reading(record):
            return ChannelIssue(
                channel.sensor_id, ErrorKind.STORE_WRITE_FAILURE, "batch writer stopped",
            )
        return None
