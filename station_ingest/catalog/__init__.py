from .sensor_catalog import (
    DEFAULT_CATALOG,
    SENSOR_MODELS,
    SENSOR_TYPES,
    ChannelSpec,
    FieldExpansion,
    SensorCatalog,
    SensorModel,
    SensorTypeSpec,
)

__all__ = [
    "DEFAULT_CATALOG",
    "SENSOR_MODELS",
    "SENSOR_TYPES",
    "ChannelSpec",
    "FieldExpansion",
    "SensorCatalog",
    "SensorModel",
    "SensorTypeSpec",
]
