"""Domain records and result objects that flow through the pipeline.

MQTT → decode (DecodeResult) → fan-out (ChannelReading) → resolve
(EnsureResult) → BatchWriter (ReadingRecord / VoltageRecord) → store
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from .errors import ErrorKind, IngestError


class EntityKind(Enum):
    """Entity tables maintained by the resolver (upsert with conflict-ignore)."""
    STATION = "stations"
    DEVICE = "devices"
    SENSOR_TYPE = "sensor_types"
    SENSOR = "sensors"


class RecordKind(Enum):
    """Append-only fact tables fed by the batch writer."""
    READING = "readings"
    VOLTAGE = "voltage_readings"


@dataclass(frozen=True)
class ReadingRecord:
    """One normalized sensor reading."""
    sensor_id: str
    value: float
    timestamp: datetime

    def to_row(self) -> dict:
        return {
            "sensor_id": self.sensor_id,
            "value": float(self.value),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class VoltageRecord:
    """Supply voltage reported by a device."""
    device_id: str
    voltage_value: float
    timestamp: datetime

    def to_row(self) -> dict:
        return {
            "device_id": self.device_id,
            "voltage_value": float(self.voltage_value),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class DecodedMessage:
    """Positional fields of one decoded payload.

    `voltage` is None when the voltage text is not numeric (ignored downstream).
    `sensor_fields` keeps each comma-delimited sensor group untouched.
    """
    station_id: str
    device_id: str
    voltage: Optional[float]
    timestamp: datetime
    sensor_fields: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ChannelReading:
    """One logical sensor channel extracted from a sensor field."""
    sensor_id: str
    raw_sensor_id: str
    sensor_type_id: str
    value: float
    model_name: str


@dataclass(frozen=True)
class ChannelIssue:
    """A sensor field or channel that was skipped during fan-out."""
    sensor_id: str
    kind: ErrorKind
    detail: str


@dataclass
class DecodeResult:
    """Result of decoding a raw transport message."""

    valid: bool
    message: Optional[DecodedMessage] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, message: DecodedMessage) -> "DecodeResult":
        return cls(valid=True, message=message)

    @classmethod
    def failed(cls, exc: IngestError) -> "DecodeResult":
        return cls(valid=False, error_kind=exc.kind, error=str(exc))


@dataclass
class EnsureResult:
    """Result of an idempotent ensure operation."""

    ok: bool
    entity_id: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    cache_hit: bool = False

    @classmethod
    def success(cls, entity_id: str, cache_hit: bool = False) -> "EnsureResult":
        return cls(ok=True, entity_id=entity_id, cache_hit=cache_hit)

    @classmethod
    def failure(cls, entity_id: Optional[str], exc: IngestError) -> "EnsureResult":
        return cls(ok=False, entity_id=entity_id, error_kind=exc.kind, error=str(exc))


class MessageStatus(Enum):
    """Terminal state of a message. Messages are never retried by the pipeline."""
    COMPLETED = "completed"
    DROPPED = "dropped"


@dataclass
class MessageOutcome:
    """Summary of processing one transport message."""

    status: MessageStatus
    reason: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    station_id: Optional[str] = None
    device_id: Optional[str] = None
    readings_enqueued: int = 0
    voltage_enqueued: int = 0
    nulls_dropped: int = 0
    skipped: List[ChannelIssue] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.status is MessageStatus.COMPLETED

    @classmethod
    def dropped(
        cls,
        reason: str,
        error_kind: Optional[ErrorKind] = None,
        **kwargs,
    ) -> "MessageOutcome":
        return cls(status=MessageStatus.DROPPED, reason=reason, error_kind=error_kind, **kwargs)
