"""Envelope decoder tests.

Run:
    pytest tests/test_envelope.py -v
"""

import base64
import json
from datetime import datetime, timezone

import pytest

from station_ingest.decoding.envelope import (
    decode_envelope,
    decode_message,
    decode_payload_text,
    parse_timestamp,
)
from station_ingest.domain.errors import (
    ErrorKind,
    InvalidTimestamp,
    MalformedEnvelope,
    MalformedPayload,
)

from conftest import EXAMPLE_PAYLOAD, encode_payload


class TestValidEnvelope:

    def test_positional_fields(self):
        message = decode_envelope(encode_payload(EXAMPLE_PAYLOAD))

        assert message.station_id == "STA1"
        assert message.device_id == "DEV1"
        assert message.voltage == 3.7
        assert message.sensor_fields == ["SENS1,0,21.5", "SENS2,100,22.0,55.0"]

    def test_timestamp_is_utc_instant(self):
        message = decode_envelope(encode_payload(EXAMPLE_PAYLOAD))

        assert message.timestamp == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        assert message.timestamp.tzinfo is timezone.utc

    def test_other_envelope_fields_ignored(self):
        raw = encode_payload(EXAMPLE_PAYLOAD, devEUI="a1b2", fPort=2, rxInfo=[{"rssi": -80}])

        assert decode_envelope(raw).device_id == "DEV1"

    def test_no_sensor_fields(self):
        message = decode_envelope(encode_payload("STA1|DEV1|3.7|1700000000"))

        assert message.sensor_fields == []

    @pytest.mark.parametrize("voltage", ["nan", "NaN", "", "abc", "inf", "1e999", "-1e999"])
    def test_non_numeric_voltage_is_none(self, voltage):
        message = decode_envelope(encode_payload(f"STA1|DEV1|{voltage}|1700000000"))

        assert message.voltage is None

    def test_unpadded_base64_accepted(self):
        data = base64.b64encode(b"STA1|DEV1|3.7|1700000000|X,0,1").decode().rstrip("=")
        raw = json.dumps({"data": data}).encode()

        assert decode_envelope(raw).sensor_fields == ["X,0,1"]


class TestMalformedEnvelope:

    @pytest.mark.parametrize("raw", [
        b"not json",
        b"",
        b'{"data": ',
        b"[1, 2, 3]",
        b'"just a string"',
        b"{}",
        b'{"payload": "abc"}',
        b'{"data": null}',
        b'{"data": 42}',
    ])
    def test_rejected(self, raw):
        with pytest.raises(MalformedEnvelope):
            decode_envelope(raw)


class TestMalformedPayload:

    def test_invalid_base64(self):
        with pytest.raises(MalformedPayload):
            decode_envelope(b'{"data": "!!!not-base64!!!"}')

    def test_not_utf8(self):
        data = base64.b64encode(b"\xff\xfe\xfa|x|1|2").decode()

        with pytest.raises(MalformedPayload):
            decode_payload_text(data)

    @pytest.mark.parametrize("text_payload", ["STA1|DEV1|3.7", "STA1", ""])
    def test_fewer_than_four_fields(self, text_payload):
        with pytest.raises(MalformedPayload):
            decode_envelope(encode_payload(text_payload))


class TestTimestamp:

    @pytest.mark.parametrize("value", ["abc", "", "1_700_000_000", "12abc", "nan", "inf", "1e999"])
    def test_non_numeric_rejected(self, value):
        with pytest.raises(InvalidTimestamp):
            parse_timestamp(value)

    def test_message_with_bad_timestamp_fails_whole_message(self):
        with pytest.raises(InvalidTimestamp):
            decode_envelope(encode_payload("STA1|DEV1|3.7|yesterday|S,0,1"))

    def test_out_of_range(self):
        with pytest.raises(InvalidTimestamp):
            parse_timestamp("99999999999999999999")

    def test_zero_is_epoch(self):
        assert parse_timestamp("0") == datetime(1970, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["1700000000.0", "1700000000.9", "17e8"])
    def test_decimal_truncated_to_seconds(self, value):
        assert parse_timestamp(value) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)

    def test_message_with_decimal_timestamp_decodes(self):
        message = decode_envelope(encode_payload("STA1|DEV1|3.7|1700000000.0|S1,0,21.5"))

        assert message.timestamp == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        assert message.sensor_fields == ["S1,0,21.5"]


class TestDecodeResult:

    def test_valid(self):
        result = decode_message(encode_payload(EXAMPLE_PAYLOAD))

        assert result.valid is True
        assert result.message.device_id == "DEV1"
        assert result.error_kind is None

    @pytest.mark.parametrize("raw, kind", [
        (b"garbage", ErrorKind.MALFORMED_ENVELOPE),
        (encode_payload("A|B|C"), ErrorKind.MALFORMED_PAYLOAD),
        (encode_payload("A|B|1.0|soon"), ErrorKind.INVALID_TIMESTAMP),
    ])
    def test_error_kinds(self, raw, kind):
        result = decode_message(raw)

        assert result.valid is False
        assert result.message is None
        assert result.error_kind is kind
        assert result.error
        assert kind.is_message_level
