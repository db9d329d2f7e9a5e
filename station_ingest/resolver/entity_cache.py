"""In-process membership cache of entities confirmed to exist in the store.

Append-only: no TTL, no eviction. Correct only because stations, devices,
sensor types and sensors are never deleted or re-keyed once created.
"""

from __future__ import annotations

import threading
from typing import Dict, Iterable, Set

from ..domain.records import EntityKind


class EntityCache:
    """Thread-safe set of known ids per entity kind.

    `lock_for(kind)` serializes check-upsert-insert sequences of one kind so
    two workers never race the same cache miss into two upsert calls.
    """

    def __init__(self):
        self._known: Dict[EntityKind, Set[str]] = {kind: set() for kind in EntityKind}
        self._locks: Dict[EntityKind, threading.Lock] = {
            kind: threading.Lock() for kind in EntityKind
        }

    def contains(self, kind: EntityKind, entity_id: str) -> bool:
        return entity_id in self._known[kind]

    def add(self, kind: EntityKind, entity_id: str) -> None:
        self._known[kind].add(entity_id)

    def add_many(self, kind: EntityKind, entity_ids: Iterable[str]) -> int:
        with self._locks[kind]:
            before = len(self._known[kind])
            self._known[kind].update(entity_ids)
            return len(self._known[kind]) - before

    def lock_for(self, kind: EntityKind) -> threading.Lock:
        return self._locks[kind]

    def size(self, kind: EntityKind) -> int:
        return len(self._known[kind])

    def sizes(self) -> Dict[str, int]:
        return {kind.value: len(ids) for kind, ids in self._known.items()}
