# dasha_engine/core/locator.py
from __future__ import annotations

from bisect import bisect_right
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Union

from dasha_engine.core.errors import HorizonExceeded, InstantOutOfRange
from dasha_engine.core.periods import DashaTree, PeriodNode, from_us, to_us
from dasha_engine.core.sudarshana import SudarshanaChakra

__all__ = ["active_path", "active_sudarshana", "period_at_level", "instant_us"]

Instant = Union[datetime, int]


def instant_us(t: Instant) -> int:
    """Query instant → epoch microseconds. Naive datetimes are read as UTC."""
    if isinstance(t, datetime):
        if t.tzinfo is None:
            t = t.replace(tzinfo=timezone.utc)
        return to_us(t)
    return int(t)


def _check_range(t_us: int, birth_us: int, horizon_us: int) -> None:
    if t_us < birth_us:
        raise InstantOutOfRange(
            "instant precedes the birth moment",
            loc=["at"], at=from_us(t_us), birth=from_us(birth_us),
        )
    if t_us >= horizon_us:
        raise HorizonExceeded(
            "instant lies beyond the computed horizon",
            loc=["at"], at=from_us(t_us), horizon_end=from_us(horizon_us),
        )


def _containing(nodes: Sequence[PeriodNode], t_us: int) -> Optional[PeriodNode]:
    # siblings are sorted and contiguous; the rightmost start <= t holds t
    k = bisect_right([n.start_us for n in nodes], t_us) - 1
    if k < 0:
        return None
    n = nodes[k]
    return n if n.contains_us(t_us) else None


def active_path(tree: DashaTree, t: Instant, depth: Optional[int] = None) -> List[PeriodNode]:
    """Active nodes from Mahadasha down to `depth` (default: the tree's depth)."""
    t_us = instant_us(t)
    _check_range(t_us, tree.birth_us, tree.horizon_end_us)
    limit = tree.depth if depth is None else max(1, min(int(depth), tree.depth))

    path: List[PeriodNode] = []
    level: Sequence[PeriodNode] = tree.roots
    while level and len(path) < limit:
        node = _containing(level, t_us)
        if node is None:
            break
        path.append(node)
        level = node.children
    return path


def period_at_level(tree: DashaTree, t: Instant, level: int) -> PeriodNode:
    return active_path(tree, t, level)[-1]


def active_sudarshana(chakra: SudarshanaChakra, t: Instant) -> Dict[str, PeriodNode]:
    t_us = instant_us(t)
    _check_range(t_us, chakra.birth_us, chakra.horizon_end_us)
    return {name: active_path(tree, t_us)[0] for name, tree in chakra.tracks.items()}
