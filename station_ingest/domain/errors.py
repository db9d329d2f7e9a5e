"""Error taxonomy for the ingestion pipeline.

Message-level errors (fatal to a single message, never retried):
- MalformedEnvelope
- MalformedPayload
- InvalidTimestamp

Channel-level errors (fatal only to one sensor channel):
- UnknownSensorType
- ChannelFormatError

Operation-level errors:
- StoreWriteFailure: aborts the dependent entity chain, or discards a batch
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Kind of failure reported by each pipeline layer."""
    MALFORMED_ENVELOPE = "malformed_envelope"
    MALFORMED_PAYLOAD = "malformed_payload"
    INVALID_TIMESTAMP = "invalid_timestamp"
    UNKNOWN_SENSOR_TYPE = "unknown_sensor_type"
    CHANNEL_FORMAT_ERROR = "channel_format_error"
    STORE_WRITE_FAILURE = "store_write_failure"

    @property
    def is_message_level(self) -> bool:
        return self in _MESSAGE_LEVEL


_MESSAGE_LEVEL = frozenset({
    ErrorKind.MALFORMED_ENVELOPE,
    ErrorKind.MALFORMED_PAYLOAD,
    ErrorKind.INVALID_TIMESTAMP,
})


class IngestError(Exception):
    """Base error. Every subclass carries its ErrorKind."""

    kind: ErrorKind

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return self.message


class MalformedEnvelope(IngestError):
    kind = ErrorKind.MALFORMED_ENVELOPE


class MalformedPayload(IngestError):
    kind = ErrorKind.MALFORMED_PAYLOAD


class InvalidTimestamp(IngestError):
    kind = ErrorKind.INVALID_TIMESTAMP


class UnknownSensorType(IngestError):
    kind = ErrorKind.UNKNOWN_SENSOR_TYPE


class ChannelFormatError(IngestError):
    kind = ErrorKind.CHANNEL_FORMAT_ERROR


class StoreWriteFailure(IngestError):
    """A store call failed or timed out. The call had no partial effect."""
    kind = ErrorKind.STORE_WRITE_FAILURE


class CatalogError(ValueError):
    """Invalid sensor catalog definition (raised at load time)."""


class ConfigError(ValueError):
    """Invalid configuration value."""
