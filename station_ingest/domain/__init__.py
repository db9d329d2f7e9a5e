from .errors import (
    CatalogError,
    ChannelFormatError,
    ConfigError,
    ErrorKind,
    IngestError,
    InvalidTimestamp,
    MalformedEnvelope,
    MalformedPayload,
    StoreWriteFailure,
    UnknownSensorType,
)
from .records import (
    ChannelIssue,
    ChannelReading,
    DecodedMessage,
    DecodeResult,
    EnsureResult,
    EntityKind,
    MessageOutcome,
    MessageStatus,
    ReadingRecord,
    RecordKind,
    VoltageRecord,
)

__all__ = [
    "CatalogError",
    "ChannelFormatError",
    "ConfigError",
    "ErrorKind",
    "IngestError",
    "InvalidTimestamp",
    "MalformedEnvelope",
    "MalformedPayload",
    "StoreWriteFailure",
    "UnknownSensorType",
    "ChannelIssue",
    "ChannelReading",
    "DecodedMessage",
    "DecodeResult",
    "EnsureResult",
    "EntityKind",
    "MessageOutcome",
    "MessageStatus",
    "ReadingRecord",
    "RecordKind",
    "VoltageRecord",
]
