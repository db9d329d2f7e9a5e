"""Envelope decoder for transport messages.

Wire format:

    {"data": "<base64>", ...}          (other envelope fields are ignored)

    base64 → UTF-8 text:
    station|device|voltage|timestamp|sensor1|sensor2|...

Each sensorN is `rawId,modelCode,value0[,value1[,...]]` and is left untouched
here; the sensor catalog fans it out into channels.
"""

from __future__ import annotations

import base64
import binascii
import logging
import math
from datetime import datetime, timezone

import orjson
from pydantic import BaseModel, ConfigDict, StrictStr, ValidationError

from ..domain.errors import IngestError, InvalidTimestamp, MalformedEnvelope, MalformedPayload
from ..domain.records import DecodedMessage, DecodeResult
from .numbers import parse_decimal, parse_integer

logger = logging.getLogger(__name__)

FIELD_DELIMITER = "|"
MIN_FIELDS = 4


class EnvelopeIn(BaseModel):
    """Outer JSON wrapper. Only `data` is required."""

    model_config = ConfigDict(extra="ignore")

    data: StrictStr


def parse_envelope(raw: bytes) -> EnvelopeIn:
    """Parse and validate the JSON envelope.

    Raises:
        MalformedEnvelope: invalid JSON, not an object, or no string `data` field
    """
    try:
        document = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise MalformedEnvelope(f"Invalid JSON: {e}", cause=e) from e

    if not isinstance(document, dict):
        raise MalformedEnvelope(f"Envelope must be a JSON object, got {type(document).__name__}")

    try:
        return EnvelopeIn.model_validate(document)
    except ValidationError as e:
        raise MalformedEnvelope("Envelope has no usable 'data' field", cause=e) from e


def decode_payload_text(data: str) -> str:
    """base64 → UTF-8 text.

    Whitespace is stripped and missing padding is restored; any other
    deviation from the base64 alphabet is rejected.

    Raises:
        MalformedPayload
    """
    compact = "".join(data.split())
    compact += "=" * (-len(compact) % 4)
    try:
        raw = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedPayload(f"Invalid base64 data: {e}", cause=e) from e

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedPayload(f"Payload is not UTF-8: {e}", cause=e) from e


def parse_timestamp(text: str) -> datetime:
    """Unix epoch seconds → aware UTC datetime.

    Decimal text such as `1700000000.0` is truncated to whole seconds.

    Raises:
        InvalidTimestamp: not a number, or out of range
    """
    seconds = parse_integer(text)
    if seconds is None:
        value = parse_decimal(text)
        if value is None:
            raise InvalidTimestamp(f"Invalid timestamp: {text!r}")
        seconds = math.trunc(value)
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise InvalidTimestamp(f"Timestamp out of range: {text!r}", cause=e) from e


def split_payload(text: str) -> DecodedMessage:
    """Split the decoded text into its positional fields.

    Raises:
        MalformedPayload: fewer than 4 pipe-delimited fields
        InvalidTimestamp: non-numeric timestamp
    """
    parts = text.split(FIELD_DELIMITER)
    if len(parts) < MIN_FIELDS:
        raise MalformedPayload(
            f"Expected at least {MIN_FIELDS} fields, got {len(parts)}: {text!r}"
        )

    station_id, device_id, voltage_text, timestamp_text = parts[:MIN_FIELDS]
    timestamp = parse_timestamp(timestamp_text)

    return DecodedMessage(
        station_id=station_id,
        device_id=device_id,
        voltage=parse_decimal(voltage_text),
        timestamp=timestamp,
        sensor_fields=parts[MIN_FIELDS:],
    )


def decode_envelope(raw: bytes) -> DecodedMessage:
    """Full decode of one transport message. Raises an IngestError subclass."""
    envelope = parse_envelope(raw)
    text = decode_payload_text(envelope.data)
    return split_payload(text)


def decode_message(raw: bytes) -> DecodeResult:
    """Like decode_envelope but returns a DecodeResult instead of raising."""
    try:
        return DecodeResult.ok(decode_envelope(raw))
    except IngestError as e:
        logger.warning("[DECODER] %s: %s", e.kind.value, e)
        return DecodeResult.failed(e)
