from .envelope import (
    EnvelopeIn,
    decode_envelope,
    decode_message,
    decode_payload_text,
    parse_envelope,
    parse_timestamp,
    split_payload,
)
from .numbers import is_nan_token, parse_decimal, parse_integer

__all__ = [
    "EnvelopeIn",
    "decode_envelope",
    "decode_message",
    "decode_payload_text",
    "parse_envelope",
    "parse_timestamp",
    "split_payload",
    "is_nan_token",
    "parse_decimal",
    "parse_integer",
]
