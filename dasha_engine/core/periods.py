# dasha_engine/core/periods.py
"""
Period tree builder: recursive proportional subdivision of a Dasha cycle.

Time is integer microseconds since the Unix epoch. A Dasha year is
`year_us(year_days)` microseconds, so full periods of whole-year rulers are
exact. Children of a node are cut at cumulative integer boundaries

    start + duration * cum_weight_k // total_weight

which makes them contiguous and makes their durations sum to the parent's
duration with no drift at any depth.

Children are materialised on first access (deterministically, from the same
schedule and direction), so deep Vimshottari trees only pay for the branches
that are actually read.
"""

from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from dasha_engine.core.birth import ChartContext
from dasha_engine.core.catalog import DashaSystemId, RulerSchedule, entry, schedule as catalog_schedule
from dasha_engine.core.constants import DASHA_YEAR_DAYS, US_PER_DAY, year_us
from dasha_engine.core.direction import Direction, resolve
from dasha_engine.core.errors import EmptyRulerSequence, NonPositiveDuration

__all__ = [
    "PeriodNode", "DashaTree", "Subdivider", "build_tree", "build_top_level",
    "to_us", "from_us", "EPOCH",
]

log = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_US = timedelta(microseconds=1)
_EXPAND_LOCK = threading.RLock()


def to_us(dt: datetime) -> int:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return (dt - EPOCH) // _ONE_US


def from_us(us: int) -> datetime:
    return EPOCH + timedelta(microseconds=int(us))


# ───────────────────────── nodes ─────────────────────────

class PeriodNode:
    """One period of a Dasha tree. Children are owned; the parent link is weak."""

    __slots__ = ("ruler", "start_us", "end_us", "depth", "_parent", "_children", "_expand", "__weakref__")

    def __init__(
        self,
        ruler: str,
        start_us: int,
        end_us: int,
        depth: int,
        parent: Optional["PeriodNode"] = None,
        expand: Optional[Callable[["PeriodNode"], Tuple["PeriodNode", ...]]] = None,
    ):
        self.ruler = ruler
        self.start_us = int(start_us)
        self.end_us = int(end_us)
        self.depth = int(depth)
        self._parent = weakref.ref(parent) if parent is not None else None
        self._children: Optional[Tuple[PeriodNode, ...]] = None
        self._expand = expand

    def __repr__(self) -> str:
        return f"PeriodNode({self.ruler!r}, depth={self.depth}, {self.start.isoformat()} → {self.end.isoformat()})"

    @property
    def start(self) -> datetime:
        return from_us(self.start_us)

    @property
    def end(self) -> datetime:
        return from_us(self.end_us)

    @property
    def duration_us(self) -> int:
        return self.end_us - self.start_us

    @property
    def duration(self) -> timedelta:
        return timedelta(microseconds=self.duration_us)

    @property
    def parent(self) -> Optional["PeriodNode"]:
        return self._parent() if self._parent is not None else None

    @property
    def children(self) -> Tuple["PeriodNode", ...]:
        """
        Sub-periods, built on first access.

        Cached trees are shared between request threads, so the first fill is
        done under a lock: every reader sees the same child objects.
        """
        kids = self._children
        if kids is None:
            with _EXPAND_LOCK:
                if self._children is None:
                    self._children = self._expand(self) if self._expand is not None else ()
                kids = self._children
        return kids

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def path(self) -> Tuple[str, ...]:
        chain: List[str] = []
        n: Optional[PeriodNode] = self
        while n is not None:
            chain.append(n.ruler)
            n = n.parent
        return tuple(reversed(chain))

    def contains_us(self, t_us: int) -> bool:
        return self.start_us <= t_us < self.end_us

    def years(self, yus: int) -> float:
        return self.duration_us / yus

    def to_dict(self, *, yus: int, max_depth: int = 1, level_names: Sequence[str] = ()) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "ruler": self.ruler,
            "level": self.depth,
            "level_name": level_names[self.depth - 1] if self.depth <= len(level_names) else None,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "years": self.years(yus),
            "days": self.duration_us / US_PER_DAY,
        }
        if self.depth < max_depth and self.children:
            out["children"] = [c.to_dict(yus=yus, max_depth=max_depth, level_names=level_names)
                               for c in self.children]
        return out


class Subdivider:
    """
    Splits a node over the cycle rotated to start at the node's own ruler.

    Weights are the rulers' years (proportional subdivision). Subclasses may
    override `weights` for systems that divide differently.
    """

    def __init__(self, sched: RulerSchedule, direction: Direction, max_depth: int):
        self.sched = sched
        self.order = direction.order(len(sched))
        self.max_depth = int(max_depth)
        self._pos = {sched.rulers[i]: k for k, i in enumerate(self.order)}

    def weights(self, seq: Sequence[int]) -> List[int]:
        return [self.sched.years[i] for i in seq]

    def __call__(self, node: PeriodNode) -> Tuple[PeriodNode, ...]:
        if node.depth >= self.max_depth:
            return ()
        k = self._pos[node.ruler]
        seq = self.order[k:] + self.order[:k]
        w = self.weights(seq)
        total = sum(w)
        d = node.duration_us
        out: List[PeriodNode] = []
        prev, cum = node.start_us, 0
        for i, wi in zip(seq, w):
            cum += wi
            b = node.start_us + d * cum // total
            out.append(PeriodNode(self.sched.rulers[i], prev, b, node.depth + 1, node, self))
            prev = b
        return tuple(out)


# ───────────────────────── tree ─────────────────────────

@dataclass(frozen=True)
class DashaTree:
    system: DashaSystemId
    birth_us: int
    horizon_end_us: int
    depth: int
    year_us: int
    roots: Tuple[PeriodNode, ...]
    direction: Direction
    schedule: RulerSchedule
    level_names: Tuple[str, ...]

    @property
    def birth(self) -> datetime:
        return from_us(self.birth_us)

    @property
    def horizon_end(self) -> datetime:
        return from_us(self.horizon_end_us)

    @property
    def horizon_years(self) -> float:
        return (self.horizon_end_us - self.birth_us) / self.year_us

    def iter_level(self, level: int) -> Iterator[PeriodNode]:
        """All nodes at `level` (1-based) in chronological order."""
        if level < 1 or level > self.depth:
            return
        if level == 1:
            yield from self.roots
            return
        for root in self.roots:
            yield from _descend(root, level)

    def to_dict(self, max_depth: int = 1) -> Dict[str, Any]:
        d = min(max(1, int(max_depth)), self.depth)
        return {
            "system": self.system.value,
            "birth": self.birth.isoformat(),
            "horizon_end": self.horizon_end.isoformat(),
            "depth": self.depth,
            "level_names": list(self.level_names),
            "direction": self.direction.to_dict(self.schedule),
            "cycle_years": sum(self.schedule.years[i] for i in self.direction.order(len(self.schedule))),
            "periods": [r.to_dict(yus=self.year_us, max_depth=d, level_names=self.level_names)
                        for r in self.roots],
        }


def _descend(node: PeriodNode, level: int) -> Iterator[PeriodNode]:
    if node.depth == level:
        yield node
        return
    for c in node.children:
        yield from _descend(c, level)


# ───────────────────────── builder ─────────────────────────

def build_top_level(
    sched: RulerSchedule,
    direction: Direction,
    *,
    birth_us: int,
    horizon_us: int,
    yus: int,
    expand: Optional[Subdivider],
) -> Tuple[PeriodNode, ...]:
    """
    Balance of the first ruler from birth, then full periods in the resolved
    order, chained with zero gap until `horizon_us` is covered.
    """
    order = direction.order(len(sched))
    if not order:
        raise EmptyRulerSequence(f"{direction.system.value}: empty cycle")
    if horizon_us <= birth_us:
        raise NonPositiveDuration("horizon must be positive", loc=["horizon_years"])

    nodes: List[PeriodNode] = []
    t = birth_us
    first = order[0]
    balance = int(round((1.0 - direction.elapsed_fraction) * sched.years[first] * yus))
    if balance > 0:
        nodes.append(PeriodNode(sched.rulers[first], t, t + balance, 1, None, expand))
        t += balance
    k = 1
    while t < horizon_us:
        i = order[k % len(order)]
        dur = sched.years[i] * yus
        if dur <= 0:
            raise NonPositiveDuration(f"{sched.rulers[i]}: non-positive duration", loc=[sched.rulers[i]])
        nodes.append(PeriodNode(sched.rulers[i], t, t + dur, 1, None, expand))
        t += dur
        k += 1
    return tuple(nodes)


def build_tree(
    system: DashaSystemId,
    ctx: ChartContext,
    *,
    horizon_years: float = 120.0,
    depth: Optional[int] = None,
    year_days: float = DASHA_YEAR_DAYS,
    subdivider: type = Subdivider,
) -> DashaTree:
    """Build the period tree of a sequence-based system for one chart."""
    system = DashaSystemId(system)
    e = entry(system)
    sched = catalog_schedule(system, ctx)
    direction = resolve(system, ctx, sched)
    max_depth = e.subdivision_depth if depth is None else max(1, min(int(depth), e.subdivision_depth))
    if not horizon_years or horizon_years <= 0:
        raise NonPositiveDuration("horizon_years must be > 0", loc=["horizon_years"])

    yus = year_us(year_days)
    birth_us = to_us(ctx.birth.birth_utc)
    horizon_us = birth_us + int(round(float(horizon_years) * yus))
    expand = subdivider(sched, direction, max_depth) if max_depth > 1 else None
    roots = build_top_level(sched, direction, birth_us=birth_us, horizon_us=horizon_us, yus=yus, expand=expand)

    log.debug("built %s tree: %d top-level periods, depth %d, start ruler %s",
              system.value, len(roots), max_depth, roots[0].ruler)
    return DashaTree(
        system=system,
        birth_us=birth_us,
        horizon_end_us=roots[-1].end_us,
        depth=max_depth,
        year_us=yus,
        roots=roots,
        direction=direction,
        schedule=sched,
        level_names=e.level_names,
    )
