"""Shared fixtures: an in-memory fake store, payload builders, SQLite engines."""

from __future__ import annotations

import base64
import json
import threading
import time
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pytest
from sqlalchemy import create_engine, text

from station_ingest.batching.batch_writer import BatchWriter
from station_ingest.catalog.sensor_catalog import DEFAULT_CATALOG
from station_ingest.domain.errors import StoreWriteFailure
from station_ingest.domain.records import EntityKind, RecordKind
from station_ingest.persistence.store import SqlTelemetryStore
from station_ingest.pipeline.orchestrator import MessagePipeline
from station_ingest.resolver.entity_cache import EntityCache
from station_ingest.resolver.entity_resolver import EntityResolver


# =============================================================================
# FAKE STORE
# =============================================================================

class FakeStore:
    """Records every call in order; failures are switched on per id or per kind."""

    def __init__(self, upsert_delay: float = 0.0):
        self._lock = threading.Lock()
        self.calls: List[Tuple[str, object, object]] = []
        self.upserts: List[Tuple[EntityKind, dict]] = []
        self.inserts: List[Tuple[RecordKind, List[dict]]] = []
        self.rows: Dict[EntityKind, Dict[str, dict]] = {kind: {} for kind in EntityKind}
        self.existing: Dict[EntityKind, Set[str]] = {kind: set() for kind in EntityKind}
        self.fail_upsert_ids: Set[Tuple[EntityKind, str]] = set()
        self.fail_bulk_kinds: Set[RecordKind] = set()
        self.fail_fetch = False
        self.upsert_delay = upsert_delay

    def upsert_ignore(self, kind: EntityKind, row: dict) -> None:
        if self.upsert_delay:
            time.sleep(self.upsert_delay)
        with self._lock:
            self.calls.append(("upsert", kind, row["id"]))
            if (kind, row["id"]) in self.fail_upsert_ids:
                raise StoreWriteFailure(f"upsert {kind.value} {row['id']} failed")
            self.upserts.append((kind, dict(row)))
            self.rows[kind].setdefault(row["id"], dict(row))

    def bulk_insert(self, kind: RecordKind, rows: Sequence[dict]) -> int:
        with self._lock:
            self.calls.append(("insert", kind, len(rows)))
            if kind in self.fail_bulk_kinds:
                raise StoreWriteFailure(f"bulk insert {kind.value} failed")
            self.inserts.append((kind, [dict(r) for r in rows]))
            return len(rows)

    def fetch_ids(self, kind: EntityKind) -> Set[str]:
        if self.fail_fetch:
            raise StoreWriteFailure("fetch failed")
        return set(self.existing[kind])

    # helpers -----------------------------------------------------------

    def upsert_ids(self, kind: EntityKind) -> List[str]:
        with self._lock:
            return [row["id"] for k, row in self.upserts if k is kind]

    def inserted_rows(self, kind: RecordKind) -> List[dict]:
        with self._lock:
            return [row for k, rows in self.inserts if k is kind for row in rows]

    def insert_calls(self, kind: Optional[RecordKind] = None) -> int:
        with self._lock:
            return sum(1 for k, _ in self.inserts if kind is None or k is kind)

    @property
    def store_calls(self) -> int:
        with self._lock:
            return len(self.calls)


# =============================================================================
# PAYLOAD BUILDERS
# =============================================================================

def encode_payload(text_payload: str, **extra) -> bytes:
    """Wrap decoded payload text in the JSON/base64 envelope."""
    envelope = {"data": base64.b64encode(text_payload.encode("utf-8")).decode("ascii")}
    envelope.update(extra)
    return json.dumps(envelope).encode("utf-8")


EXAMPLE_PAYLOAD = "STA1|DEV1|3.7|1700000000|SENS1,0,21.5|SENS2,100,22.0,55.0"


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def catalog():
    return DEFAULT_CATALOG


@pytest.fixture
def cache() -> EntityCache:
    return EntityCache()


@pytest.fixture
def resolver(fake_store, catalog, cache) -> EntityResolver:
    return EntityResolver(fake_store, catalog, cache)


@pytest.fixture
def writer(fake_store) -> BatchWriter:
    """Writer without the timer thread; tests flush explicitly."""
    return BatchWriter(fake_store, batch_size=100, flush_interval=60.0)


@pytest.fixture
def pipeline(resolver, writer, catalog) -> MessagePipeline:
    return MessagePipeline(resolver, writer, catalog)


SCHEMA = (
    "CREATE TABLE stations (id TEXT PRIMARY KEY, name TEXT, is_active BOOLEAN)",
    "CREATE TABLE devices (id TEXT PRIMARY KEY, station_id TEXT REFERENCES stations(id),"
    " is_active BOOLEAN)",
    "CREATE TABLE sensor_types (id TEXT PRIMARY KEY, name TEXT)",
    "CREATE TABLE sensors (id TEXT PRIMARY KEY, name TEXT,"
    " sensor_type_id TEXT REFERENCES sensor_types(id),"
    " station_id TEXT REFERENCES stations(id), is_active BOOLEAN)",
    "CREATE TABLE readings (sensor_id TEXT REFERENCES sensors(id), value REAL, timestamp TEXT)",
    "CREATE TABLE voltage_readings (device_id TEXT REFERENCES devices(id),"
    " voltage_value REAL, timestamp TEXT)",
)


@pytest.fixture
def sqlite_engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'telemetry.db'}",
        connect_args={"check_same_thread": False},
    )
    with engine.begin() as conn:
        for statement in SCHEMA:
            conn.execute(text(statement))
    yield engine
    engine.dispose()


@pytest.fixture
def sql_store(sqlite_engine) -> SqlTelemetryStore:
    return SqlTelemetryStore(sqlite_engine)
