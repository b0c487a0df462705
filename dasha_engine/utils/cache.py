from __future__ import annotations
from collections import OrderedDict
import threading
from typing import Any, Dict, Iterable, Mapping, Optional


class _Entry:
    __slots__ = ("fingerprint", "items")

    def __init__(self, fingerprint: str):
        self.fingerprint = fingerprint
        self.items: Dict[str, Any] = {}


class TreeCache:
    """
    Per-chart LRU of built systems, keyed by (chart_id, system_id).

    A chart is one LRU slot holding every system built for it, stamped with
    the fingerprint of the birth data it was built from. A lookup or store
    with a different fingerprint drops the whole chart, and eviction also
    removes whole charts, so systems of one chart never mix two birth inputs.
    """

    def __init__(self, capacity: int = 256):
        self.capacity = max(1, int(capacity))
        self.store: "OrderedDict[str, _Entry]" = OrderedDict()
        self.lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, chart_id: str, system: str, fingerprint: str) -> Optional[Any]:
        with self.lock:
            e = self.store.get(chart_id)
            if e is not None and e.fingerprint != fingerprint:
                del self.store[chart_id]
                e = None
            if e is None or system not in e.items:
                self.misses += 1
                return None
            self.store.move_to_end(chart_id)
            self.hits += 1
            return e.items[system]

    def get_many(self, chart_id: str, systems: Iterable[str], fingerprint: str) -> Dict[str, Any]:
        out = {}
        for s in systems:
            v = self.get(chart_id, s, fingerprint)
            if v is not None:
                out[s] = v
        return out

    def set(self, chart_id: str, system: str, fingerprint: str, value: Any) -> None:
        self.set_many(chart_id, fingerprint, {system: value})

    def set_many(self, chart_id: str, fingerprint: str, values: Mapping[str, Any]) -> None:
        with self.lock:
            e = self.store.get(chart_id)
            if e is None or e.fingerprint != fingerprint:
                e = _Entry(fingerprint)
                self.store[chart_id] = e
            e.items.update(values)
            self.store.move_to_end(chart_id)
            while len(self.store) > self.capacity:
                self.store.popitem(last=False)

    def invalidate(self, chart_id: str) -> int:
        """Drop every system of `chart_id`; returns how many were dropped."""
        with self.lock:
            e = self.store.pop(chart_id, None)
            return len(e.items) if e is not None else 0

    def clear(self) -> None:
        with self.lock:
            self.store.clear()
            self.hits = self.misses = 0

    def __len__(self) -> int:
        with self.lock:
            return sum(len(e.items) for e in self.store.values())

    def __contains__(self, chart_id: str) -> bool:
        with self.lock:
            return chart_id in self.store

    def stats(self) -> Dict[str, int]:
        with self.lock:
            return {
                "charts": len(self.store),
                "entries": sum(len(e.items) for e in self.store.values()),
                "capacity": self.capacity,
                "hits": self.hits,
                "misses": self.misses,
            }
