from .store import ENTITY_COLUMNS, RECORD_COLUMNS, SqlTelemetryStore, TelemetryStore

__all__ = ["ENTITY_COLUMNS", "RECORD_COLUMNS", "SqlTelemetryStore", "TelemetryStore"]
