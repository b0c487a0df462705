# dasha_engine/core/sandhi.py
"""
Dasha-Sandhi: junctions between consecutive periods of the same level.

A sandhi window is centred on the transition instant. Its length is a
level-dependent share of the period that is ending (Mahadasha 5 %,
Antardasha 10 %, Pratyantardasha 15 %, deeper 20 %), clamped to between one
hour and thirty days.

Intensity starts from the level (MD 5, AD 3, PD 2, else 1) and gains a point
for every natal debilitation among the two rulers and one more when a natural
malefic is involved. Bands: CRITICAL ≥ 8, HIGH ≥ 6, MODERATE ≥ 4, MILD ≥ 2,
otherwise MINIMAL.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Iterator, List, Optional, Sequence

from dasha_engine.core.birth import ChartContext
from dasha_engine.core.catalog import ruler_planet
from dasha_engine.core.constants import DEBILITATION_SIGNS, NATURAL_MALEFICS, US_PER_DAY, relationship
from dasha_engine.core.locator import Instant, instant_us
from dasha_engine.core.periods import DashaTree, PeriodNode, from_us

__all__ = [
    "Sandhi", "find_sandhis", "current_sandhi", "volatility_score", "transition_type",
    "WINDOW_PCT", "MIN_WINDOW_US", "MAX_WINDOW_US",
]

WINDOW_PCT = {1: 5.0, 2: 10.0, 3: 15.0}
DEEP_WINDOW_PCT = 20.0
MIN_WINDOW_US = 3600 * 1_000_000
MAX_WINDOW_US = 30 * US_PER_DAY

_LEVEL_BASE = {1: 5, 2: 3, 3: 2}

# type -> difficulty 1 (smooth) .. 5 (hard)
TRANSITION_DIFFICULTY = {
    "FRIEND_TO_FRIEND": 1,
    "FRIEND_TO_NEUTRAL": 2,
    "FRIEND_TO_ENEMY": 4,
    "NEUTRAL_TO_FRIEND": 1,
    "NEUTRAL_TO_NEUTRAL": 2,
    "NEUTRAL_TO_ENEMY": 3,
    "ENEMY_TO_FRIEND": 2,
    "ENEMY_TO_NEUTRAL": 3,
    "ENEMY_TO_ENEMY": 5,
}

_CURRENT_WEIGHT = {"CRITICAL": 40, "HIGH": 30, "MODERATE": 20, "MILD": 10, "MINIMAL": 5}
_UPCOMING_WEIGHT = {"CRITICAL": 15, "HIGH": 10, "MODERATE": 6, "MILD": 3, "MINIMAL": 1}


@dataclass(frozen=True)
class Sandhi:
    level: int
    level_name: Optional[str]
    from_ruler: str
    to_ruler: str
    from_planet: str
    to_planet: str
    transition_us: int
    window_start_us: int
    window_end_us: int
    intensity_score: int
    intensity: str
    transition_type: str

    @property
    def difficulty(self) -> int:
        return TRANSITION_DIFFICULTY[self.transition_type]

    def contains_us(self, t_us: int) -> bool:
        return self.window_start_us <= t_us <= self.window_end_us

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "level_name": self.level_name,
            "from": self.from_ruler,
            "to": self.to_ruler,
            "from_planet": self.from_planet,
            "to_planet": self.to_planet,
            "transition": from_us(self.transition_us).isoformat(),
            "window_start": from_us(self.window_start_us).isoformat(),
            "window_end": from_us(self.window_end_us).isoformat(),
            "intensity": self.intensity,
            "intensity_score": self.intensity_score,
            "transition_type": self.transition_type,
            "difficulty": self.difficulty,
        }


def transition_type(from_planet: str, to_planet: str) -> str:
    fwd = relationship(from_planet, to_planet)
    back = relationship(to_planet, from_planet)
    if fwd == "friend" and back == "friend":
        return "FRIEND_TO_FRIEND"
    if fwd == "friend":
        return "FRIEND_TO_NEUTRAL" if back == "neutral" else "FRIEND_TO_ENEMY"
    if fwd == "enemy" and back == "enemy":
        return "ENEMY_TO_ENEMY"
    if fwd == "enemy":
        return "ENEMY_TO_FRIEND" if back == "friend" else "ENEMY_TO_NEUTRAL"
    if back == "friend":
        return "NEUTRAL_TO_FRIEND"
    if back == "enemy":
        return "NEUTRAL_TO_ENEMY"
    return "NEUTRAL_TO_NEUTRAL"


def _window_us(level: int, ending: PeriodNode) -> int:
    pct = WINDOW_PCT.get(level, DEEP_WINDOW_PCT)
    return min(max(int(ending.duration_us * pct / 100.0), MIN_WINDOW_US), MAX_WINDOW_US)


def _band(score: int) -> str:
    if score >= 8:
        return "CRITICAL"
    if score >= 6:
        return "HIGH"
    if score >= 4:
        return "MODERATE"
    if score >= 2:
        return "MILD"
    return "MINIMAL"


def _intensity(level: int, a: str, b: str, ctx: Optional[ChartContext]) -> int:
    score = _LEVEL_BASE.get(level, 1)
    if ctx is not None:
        for p in (a, b):
            s = ctx.planet_signs.get(p)
            if s is not None and DEBILITATION_SIGNS.get(p) == s:
                score += 1
    if a in NATURAL_MALEFICS or b in NATURAL_MALEFICS:
        score += 1
    return score


def _level_nodes(nodes: Sequence[PeriodNode], level: int, lo: int, hi: int) -> Iterator[PeriodNode]:
    for n in nodes:
        if n.end_us < lo or n.start_us > hi:
            continue
        if n.depth == level:
            yield n
        else:
            yield from _level_nodes(n.children, level, lo, hi)


def _make(tree: DashaTree, level: int, a: PeriodNode, b: PeriodNode, ctx: Optional[ChartContext]) -> Sandhi:
    pa, pb = ruler_planet(tree.system, a.ruler), ruler_planet(tree.system, b.ruler)
    w = _window_us(level, a)
    score = _intensity(level, pa, pb, ctx)
    return Sandhi(
        level=level,
        level_name=tree.level_names[level - 1] if level <= len(tree.level_names) else None,
        from_ruler=a.ruler,
        to_ruler=b.ruler,
        from_planet=pa,
        to_planet=pb,
        transition_us=b.start_us,
        window_start_us=b.start_us - w // 2,
        window_end_us=b.start_us + w - w // 2,
        intensity_score=score,
        intensity=_band(score),
        transition_type=transition_type(pa, pb),
    )


def find_sandhis(
    tree: DashaTree,
    start: Instant,
    end: Instant,
    max_level: int = 2,
    ctx: Optional[ChartContext] = None,
) -> List[Sandhi]:
    """Junctions whose transition instant lies in [start, end], ordered by time then level."""
    lo, hi = instant_us(start), instant_us(end)
    if hi < lo:
        lo, hi = hi, lo
    out: List[Sandhi] = []
    for level in range(1, min(int(max_level), tree.depth) + 1):
        prev: Optional[PeriodNode] = None
        for node in _level_nodes(tree.roots, level, lo, hi):
            if prev is not None and prev.end_us == node.start_us and lo <= node.start_us <= hi:
                out.append(_make(tree, level, prev, node, ctx))
            prev = node
    out.sort(key=lambda s: (s.transition_us, s.level))
    return out


def current_sandhi(tree: DashaTree, t: Instant, ctx: Optional[ChartContext] = None,
                   max_level: int = 2) -> Optional[Sandhi]:
    """The strongest sandhi whose window contains `t`, if any."""
    t_us = instant_us(t)
    span = MAX_WINDOW_US
    near = find_sandhis(tree, t_us - span, t_us + span, max_level=max_level, ctx=ctx)
    hits = [s for s in near if s.contains_us(t_us)]
    if not hits:
        return None
    return max(hits, key=lambda s: (s.intensity_score, -s.level))


def volatility_score(current: Optional[Sandhi], upcoming: Sequence[Sandhi], t: Instant,
                     lookahead_days: int = 365) -> int:
    """0..100 summary of how turbulent the coming `lookahead_days` are."""
    t_us = instant_us(t)
    score = _CURRENT_WEIGHT[current.intensity] if current is not None else 0
    horizon = max(timedelta(days=lookahead_days) // timedelta(microseconds=1), 1)
    for s in upcoming:
        if s.transition_us < t_us:
            continue
        proximity = min(max(1.0 - (s.transition_us - t_us) / horizon, 0.0), 1.0)
        score += int(_UPCOMING_WEIGHT[s.intensity] * proximity)
    return max(0, min(100, score))
