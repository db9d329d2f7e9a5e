"""Sensor catalog: device-reported model codes → logical channels.

The catalog is built once at startup and validated eagerly, so a bad table
(duplicate code, unknown measurement type, ambiguous suffix) fails the process
at load time instead of on the first message that uses it.

A sensor field on the wire looks like:

    rawId,modelCode,value0[,value1[,...]]

and each ChannelSpec.value_index is relative to value0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..decoding.numbers import is_nan_token, parse_decimal, parse_integer
from ..domain.errors import CatalogError, ErrorKind
from ..domain.records import ChannelIssue, ChannelReading

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = ","
# rawId, modelCode
VALUE_OFFSET = 2


@dataclass(frozen=True)
class SensorTypeSpec:
    """Row template for the sensor_types table."""
    id: str
    name: str


@dataclass(frozen=True)
class ChannelSpec:
    measurement_type: str
    value_index: int
    id_suffix: str = ""


@dataclass(frozen=True)
class SensorModel:
    code: int
    name: str
    channels: Tuple[ChannelSpec, ...]

    @property
    def is_multi_channel(self) -> bool:
        return len(self.channels) > 1


@dataclass
class FieldExpansion:
    """Channels extracted from one sensor field, plus what was skipped."""
    raw_sensor_id: str
    model: Optional[SensorModel] = None
    channels: List[ChannelReading] = field(default_factory=list)
    issues: List[ChannelIssue] = field(default_factory=list)
    nulls: int = 0


SENSOR_TYPES: Tuple[SensorTypeSpec, ...] = (
    SensorTypeSpec("TEMP", "Temperature"),
    SensorTypeSpec("HUM", "Humidity"),
    SensorTypeSpec("PH", "pH"),
    SensorTypeSpec("COND", "Conductivity"),
    SensorTypeSpec("SOILH", "Soil humidity"),
    SensorTypeSpec("CO2", "CO2"),
    SensorTypeSpec("LUX", "Illuminance"),
    SensorTypeSpec("PRES", "Pressure"),
    SensorTypeSpec("GAS", "Gas resistance (kOhm)"),
)


def _single(code: int, name: str, measurement_type: str) -> SensorModel:
    return SensorModel(code, name, (ChannelSpec(measurement_type, 0, ""),))


def _multi(code: int, name: str, *channels: Tuple[str, str]) -> SensorModel:
    return SensorModel(
        code,
        name,
        tuple(
            ChannelSpec(measurement_type, index, suffix)
            for index, (measurement_type, suffix) in enumerate(channels)
        ),
    )


SENSOR_MODELS: Tuple[SensorModel, ...] = (
    # single channel
    _single(0, "N100K", "TEMP"),
    _single(1, "N10K", "TEMP"),
    _single(2, "HDS10", "HUM"),
    _single(3, "RTD", "TEMP"),
    _single(4, "DS18B20", "TEMP"),
    _single(5, "PH", "PH"),
    _single(6, "COND", "COND"),
    _single(7, "SOILH", "SOILH"),
    _single(8, "VEML7700", "LUX"),
    # multi channel
    _multi(100, "SHT30", ("TEMP", "_T"), ("HUM", "_H")),
    _multi(101, "BME680", ("TEMP", "_T"), ("HUM", "_H"), ("PRES", "_P"), ("GAS", "_G")),
    _multi(102, "CO2", ("CO2", "_CO2"), ("TEMP", "_T"), ("HUM", "_H")),
    _multi(103, "BME280", ("TEMP", "_T"), ("HUM", "_H"), ("PRES", "_P")),
    _multi(104, "SHT40", ("TEMP", "_T"), ("HUM", "_H")),
    _multi(110, "ENV4", ("HUM", "_H"), ("TEMP", "_T"), ("PRES", "_P"), ("LUX", "_L")),
)


class SensorCatalog:
    """Immutable lookup of sensor models and sensor types."""

    def __init__(
        self,
        models: Iterable[SensorModel],
        sensor_types: Iterable[SensorTypeSpec] = SENSOR_TYPES,
    ):
        types: Dict[str, SensorTypeSpec] = {}
        for spec in sensor_types:
            if not spec.id:
                raise CatalogError("Sensor type id must not be empty")
            if spec.id in types:
                raise CatalogError(f"Duplicate sensor type {spec.id!r}")
            types[spec.id] = spec

        by_code: Dict[int, SensorModel] = {}
        for model in models:
            self._validate_model(model, types)
            if model.code in by_code:
                raise CatalogError(f"Duplicate sensor model code {model.code}")
            by_code[model.code] = model

        self._types: Mapping[str, SensorTypeSpec] = MappingProxyType(types)
        self._models: Mapping[int, SensorModel] = MappingProxyType(by_code)

    @staticmethod
    def _validate_model(model: SensorModel, types: Mapping[str, SensorTypeSpec]) -> None:
        if isinstance(model.code, bool) or not isinstance(model.code, int) or model.code < 0:
            raise CatalogError(f"Invalid model code {model.code!r} ({model.name})")
        if not model.channels:
            raise CatalogError(f"Model {model.code} ({model.name}) has no channels")

        indexes = set()
        suffixes = set()
        for channel in model.channels:
            if channel.measurement_type not in types:
                raise CatalogError(
                    f"Model {model.code} uses unknown sensor type {channel.measurement_type!r}"
                )
            if channel.value_index < 0 or channel.value_index in indexes:
                raise CatalogError(
                    f"Model {model.code} has invalid or duplicate value_index {channel.value_index}"
                )
            if model.is_multi_channel and not channel.id_suffix:
                raise CatalogError(
                    f"Multi-channel model {model.code} needs a suffix on every channel"
                )
            if channel.id_suffix in suffixes:
                raise CatalogError(f"Model {model.code} repeats suffix {channel.id_suffix!r}")
            indexes.add(channel.value_index)
            suffixes.add(channel.id_suffix)

    def __len__(self) -> int:
        return len(self._models)

    def __contains__(self, code: object) -> bool:
        return code in self._models

    @property
    def models(self) -> Mapping[int, SensorModel]:
        return self._models

    @property
    def sensor_types(self) -> Mapping[str, SensorTypeSpec]:
        return self._types

    def lookup(self, code: int) -> Optional[SensorModel]:
        """None means 'not configured'."""
        return self._models.get(code)

    def sensor_type(self, type_id: str) -> Optional[SensorTypeSpec]:
        return self._types.get(type_id)

    def expand(self, sensor_field: str) -> FieldExpansion:
        """Fan out one comma-delimited sensor field into logical channels.

        Nothing here raises: every problem is recorded as a ChannelIssue and
        only affects the field or channel it belongs to.
        """
        parts = sensor_field.split(FIELD_SEPARATOR)
        raw_id = parts[0]
        expansion = FieldExpansion(raw_sensor_id=raw_id)

        if len(parts) < VALUE_OFFSET + 1 or not raw_id:
            self._skip(expansion, raw_id, ErrorKind.CHANNEL_FORMAT_ERROR,
                       f"Invalid sensor field {sensor_field!r}")
            return expansion

        code = parse_integer(parts[1])
        if code is None:
            self._skip(expansion, raw_id, ErrorKind.CHANNEL_FORMAT_ERROR,
                       f"Invalid model code {parts[1]!r}")
            return expansion

        model = self.lookup(code)
        if model is None:
            self._skip(expansion, raw_id, ErrorKind.UNKNOWN_SENSOR_TYPE,
                       f"Sensor model {code} not configured")
            return expansion
        expansion.model = model

        for channel in model.channels:
            sensor_id = f"{raw_id}{channel.id_suffix}" if channel.id_suffix else raw_id
            position = channel.value_index + VALUE_OFFSET
            if len(parts) <= position:
                self._skip(expansion, sensor_id, ErrorKind.CHANNEL_FORMAT_ERROR,
                           f"Missing value at position {position}")
                continue

            token = parts[position]
            if is_nan_token(token):
                logger.debug("[CATALOG] Null value for %s, skipping", sensor_id)
                expansion.nulls += 1
                continue

            value = parse_decimal(token)
            if value is None:
                self._skip(expansion, sensor_id, ErrorKind.CHANNEL_FORMAT_ERROR,
                           f"Invalid value {token!r}")
                continue

            expansion.channels.append(ChannelReading(
                sensor_id=sensor_id,
                raw_sensor_id=raw_id,
                sensor_type_id=channel.measurement_type,
                value=value,
                model_name=model.name,
            ))

        return expansion

    @staticmethod
    def _skip(expansion: FieldExpansion, sensor_id: str, kind: ErrorKind, detail: str) -> None:
        logger.warning("[CATALOG] Skipping %s: %s", sensor_id or "<no id>", detail)
        expansion.issues.append(ChannelIssue(sensor_id=sensor_id, kind=kind, detail=detail))


DEFAULT_CATALOG = SensorCatalog(SENSOR_MODELS)
