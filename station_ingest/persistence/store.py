"""Relational store for stations, devices, sensors and readings.

Two write primitives, both atomic per call:
- upsert with conflict-ignore on the entity primary key
- bulk insert (executemany) for the append-only fact tables

Any SQLAlchemy error, timeouts included, surfaces as StoreWriteFailure.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Protocol, Sequence, Set, Tuple

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..domain.errors import StoreWriteFailure
from ..domain.records import EntityKind, RecordKind

logger = logging.getLogger(__name__)


ENTITY_COLUMNS: Dict[EntityKind, Tuple[str, ...]] = {
    EntityKind.STATION: ("id", "name", "is_active"),
    EntityKind.DEVICE: ("id", "station_id", "is_active"),
    EntityKind.SENSOR_TYPE: ("id", "name"),
    EntityKind.SENSOR: ("id", "name", "sensor_type_id", "station_id", "is_active"),
}

RECORD_COLUMNS: Dict[RecordKind, Tuple[str, ...]] = {
    RecordKind.READING: ("sensor_id", "value", "timestamp"),
    RecordKind.VOLTAGE: ("device_id", "voltage_value", "timestamp"),
}


class TelemetryStore(Protocol):
    """What the resolver and the batch writer need from persistence."""

    def upsert_ignore(self, kind: EntityKind, row: dict) -> None:
        ...

    def bulk_insert(self, kind: RecordKind, rows: Sequence[dict]) -> int:
        ...

    def fetch_ids(self, kind: EntityKind) -> Set[str]:
        ...


def _upsert_sql(kind: EntityKind) -> str:
    columns = ENTITY_COLUMNS[kind]
    return (
        f"INSERT INTO {kind.value} ({', '.join(columns)}) "
        f"VALUES ({', '.join(':' + c for c in columns)}) "
        "ON CONFLICT (id) DO NOTHING"
    )


def _insert_sql(kind: RecordKind) -> str:
    columns = RECORD_COLUMNS[kind]
    return (
        f"INSERT INTO {kind.value} ({', '.join(columns)}) "
        f"VALUES ({', '.join(':' + c for c in columns)})"
    )


class SqlTelemetryStore:
    """TelemetryStore backed by a SQLAlchemy engine (PostgreSQL in production)."""

    def __init__(self, engine: Engine):
        self._engine = engine
        self._upsert_statements = {kind: text(_upsert_sql(kind)) for kind in EntityKind}
        self._insert_statements = {
            kind: text(_insert_sql(kind)).bindparams(
                bindparam("timestamp", type_=DateTime(timezone=True)),
            )
            for kind in RecordKind
        }

    @property
    def engine(self) -> Engine:
        return self._engine

    def upsert_ignore(self, kind: EntityKind, row: dict) -> None:
        """Insert the row unless its id already exists. Existing rows are untouched."""
        params = {column: row.get(column) for column in ENTITY_COLUMNS[kind]}
        try:
            with self._engine.begin() as conn:
                conn.execute(self._upsert_statements[kind], params)
        except SQLAlchemyError as e:
            raise StoreWriteFailure(
                f"Upsert into {kind.value} failed for id={params.get('id')!r}: {e}",
                cause=e,
            ) from e

    def bulk_insert(self, kind: RecordKind, rows: Sequence[dict]) -> int:
        """Insert all rows in one transaction. Returns the number of rows written."""
        if not rows:
            return 0

        columns = RECORD_COLUMNS[kind]
        params: List[dict] = [{c: row.get(c) for c in columns} for row in rows]
        try:
            with self._engine.begin() as conn:
                conn.execute(self._insert_statements[kind], params)
        except SQLAlchemyError as e:
            raise StoreWriteFailure(
                f"Bulk insert into {kind.value} failed ({len(params)} rows): {e}",
                cause=e,
            ) from e
        logger.debug("[DB] Inserted %d rows into %s", len(params), kind.value)
        return len(params)

    def fetch_ids(self, kind: EntityKind) -> Set[str]:
        """All existing ids of an entity table (cache preload)."""
        try:
            with self._engine.connect() as conn:
                result = conn.execute(text(f"SELECT id FROM {kind.value}"))
                return {str(row[0]) for row in result}
        except SQLAlchemyError as e:
            raise StoreWriteFailure(f"Reading ids from {kind.value} failed: {e}", cause=e) from e

    def dispose(self) -> None:
        self._engine.dispose()
