from __future__ import annotations

from dataclasses import dataclass
from threading import Lock

from .models import TrafficSample

TrafficKey = tuple[float, float]


def traffic_key(time_hour: float, reduction: float = 0.0) -> TrafficKey:
    # 14 and 14.0 must hit the same slot.
    return (float(time_hour), float(reduction))


@dataclass
class _TrafficCacheEntry:
    samples: tuple[TrafficSample, ...]


class TrafficCacheStore:
    """Generated grids keyed by (hour, reduction).

    Entries are never evicted; a slot only changes when it is overwritten
    by a fresh generation for the same key. Samples are frozen models, so
    handing out the stored sequence is safe.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._items: dict[TrafficKey, _TrafficCacheEntry] = {}

        self._hits = 0
        self._misses = 0
        self._overwrites = 0

    def get(self, key: TrafficKey) -> list[TrafficSample] | None:
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return list(entry.samples)

    def set(self, key: TrafficKey, samples: list[TrafficSample]) -> None:
        with self._lock:
            if key in self._items:
                self._overwrites += 1
            self._items[key] = _TrafficCacheEntry(samples=tuple(samples))

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._items),
                "hits": self._hits,
                "misses": self._misses,
                "overwrites": self._overwrites,
            }
