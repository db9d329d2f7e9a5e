"""Idempotent 'ensure exists' operations for the entity hierarchy.

    station ← device
    sensor_type ← sensor (also references station)

Every ensure is a cache lookup first; on a miss it issues one upsert with
conflict-ignore and caches the id only after the store accepted it. A store
failure is returned (never cached), so a later message retries naturally.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict

from ..catalog.sensor_catalog import SensorCatalog
from ..domain.errors import IngestError, StoreWriteFailure, UnknownSensorType
from ..domain.records import EnsureResult, EntityKind
from ..persistence.store import TelemetryStore
from .entity_cache import EntityCache

logger = logging.getLogger(__name__)


def default_station_name(station_id: str) -> str:
    return f"Station {station_id}"


class EntityResolver:
    """Guarantees station/device/sensor-type/sensor rows exist before readings."""

    def __init__(
        self,
        store: TelemetryStore,
        catalog: SensorCatalog,
        cache: EntityCache,
        station_name: Callable[[str], str] = default_station_name,
    ):
        self._store = store
        self._catalog = catalog
        self._cache = cache
        self._station_name = station_name

        self._stats_lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._upserts = 0
        self._failures = 0

    @property
    def cache(self) -> EntityCache:
        return self._cache

    # ------------------------------------------------------------------
    # Ensure operations
    # ------------------------------------------------------------------

    def ensure_station(self, station_id: str) -> EnsureResult:
        return self._ensure(
            EntityKind.STATION,
            station_id,
            lambda: {"id": station_id, "name": self._station_name(station_id), "is_active": True},
        )

    def ensure_sensor_type(self, code: str) -> EnsureResult:
        """Only catalog sensor types are ever materialized."""
        spec = self._catalog.sensor_type(code)
        if spec is None:
            self._count_failure()
            error = UnknownSensorType(f"Unknown sensor type {code!r}")
            logger.error("[RESOLVER] %s", error)
            return EnsureResult.failure(code, error)

        return self._ensure(
            EntityKind.SENSOR_TYPE,
            spec.id,
            lambda: {"id": spec.id, "name": spec.name},
        )

    def ensure_device(self, device_id: str, station_id: str) -> EnsureResult:
        """The station is always ensured first; a device is never written before it."""
        station = self.ensure_station(station_id)
        if not station.ok:
            logger.error(
                "[RESOLVER] Station %s not ensured, aborting device %s",
                station_id, device_id,
            )
            return EnsureResult(
                ok=False,
                entity_id=device_id,
                error_kind=station.error_kind,
                error=f"station {station_id}: {station.error}",
            )

        return self._ensure(
            EntityKind.DEVICE,
            device_id,
            lambda: {"id": device_id, "station_id": station_id, "is_active": True},
        )

    def ensure_sensor(self, sensor_id: str, sensor_type_id: str, station_id: str) -> EnsureResult:
        """The sensor type must already be resolved by the caller."""
        return self._ensure(
            EntityKind.SENSOR,
            sensor_id,
            lambda: {
                "id": sensor_id,
                "name": "",
                "sensor_type_id": sensor_type_id,
                "station_id": station_id,
                "is_active": True,
            },
        )

    # ------------------------------------------------------------------
    # Cache preload
    # ------------------------------------------------------------------

    def preload(self) -> Dict[str, int]:
        """Seed the cache with every id already in the store.

        Failure is logged and leaves the cache as it was: the ensure
        operations still work, only with more upsert traffic.
        """
        loaded: Dict[str, int] = {}
        for kind in EntityKind:
            try:
                ids = self._store.fetch_ids(kind)
            except StoreWriteFailure as e:
                logger.error("[RESOLVER] Preload of %s failed: %s", kind.value, e)
                continue
            loaded[kind.value] = self._cache.add_many(kind, ids)
            logger.info("[RESOLVER] Preloaded %d %s", len(ids), kind.value)
        return loaded

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure(self, kind: EntityKind, entity_id: str, build_row: Callable[[], dict]) -> EnsureResult:
        if self._cache.contains(kind, entity_id):
            self._count(hit=True)
            return EnsureResult.success(entity_id, cache_hit=True)

        with self._cache.lock_for(kind):
            # Another worker may have resolved it while we waited
            if self._cache.contains(kind, entity_id):
                self._count(hit=True)
                return EnsureResult.success(entity_id, cache_hit=True)

            self._count(hit=False)
            try:
                self._store.upsert_ignore(kind, build_row())
            except IngestError as e:
                self._count_failure()
                logger.error("[RESOLVER] Could not ensure %s %s: %s", kind.value, entity_id, e)
                return EnsureResult.failure(entity_id, e)

            self._cache.add(kind, entity_id)

        with self._stats_lock:
            self._upserts += 1
        logger.info("[RESOLVER] Ensured %s %s", kind.value, entity_id)
        return EnsureResult.success(entity_id)

    def _count(self, hit: bool) -> None:
        with self._stats_lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1

    def _count_failure(self) -> None:
        with self._stats_lock:
            self._failures += 1

    @property
    def stats(self) -> dict:
        with self._stats_lock:
            return {
                "cache_hits": self._hits,
                "cache_misses": self._misses,
                "upserts": self._upserts,
                "failures": self._failures,
                "cached": self._cache.sizes(),
            }
