# dasha_engine/core/direction.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple

from dasha_engine.core.birth import ChartContext
from dasha_engine.core.catalog import (
    ASHTOTTARI_GROUPS,
    DashaSystemId,
    RulerSchedule,
    chara_distance,
    schedule as catalog_schedule,
)
from dasha_engine.core.constants import SIGNS, is_odd_sign
from dasha_engine.core.errors import UnresolvableDirection
from dasha_engine.core.nakshatra import navamsa_sign, pada_fraction

__all__ = ["Direction", "FORWARD", "REVERSE", "resolve", "kalachakra_group", "chara_start"]

log = logging.getLogger(__name__)

FORWARD = "forward"
REVERSE = "reverse"


@dataclass(frozen=True)
class Direction:
    system: DashaSystemId
    start_index: int
    direction: str
    elapsed_fraction: float
    span: int
    group_id: Optional[int] = None
    pattern_position: Optional[int] = None
    label: Optional[str] = None
    tracks: Mapping[str, int] = field(default_factory=dict)
    notes: Tuple[str, ...] = ()

    @property
    def step(self) -> int:
        return 1 if self.direction == FORWARD else -1

    def order(self, n: int, start: Optional[int] = None) -> List[int]:
        """Schedule indexes of one cycle, beginning at `start` (default: start_index)."""
        s = self.start_index if start is None else start
        return [(s + self.step * k) % n for k in range(min(self.span, n))]

    def cycle(self, sched: RulerSchedule) -> List[str]:
        return [sched.rulers[i] for i in self.order(len(sched))]

    def to_dict(self, sched: Optional[RulerSchedule] = None) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "system": self.system.value,
            "start_index": self.start_index,
            "direction": self.direction,
            "elapsed_fraction": self.elapsed_fraction,
            "span": self.span,
            "group_id": self.group_id,
            "pattern_position": self.pattern_position,
            "label": self.label,
            "notes": list(self.notes),
        }
        if self.tracks:
            out["tracks"] = {k: SIGNS[v] for k, v in self.tracks.items()}
        if sched is not None:
            out["start_ruler"] = sched.rulers[self.start_index]
        return out


# ───────────────────────── helpers ─────────────────────────

def kalachakra_group(nak_index: int) -> Tuple[int, int, bool]:
    """
    (group_id, pattern_position, is_savya) for a birth nakshatra.

    Three groups of nine consecutive nakshatras, each split into three
    triads. Savya and Apsavya alternate across triads and the alternation
    flips from one group to the next: S-A-S | A-S-A | S-A-S.
    """
    group = nak_index // 9
    triad = (nak_index % 9) // 3
    return group, triad, (group + triad) % 2 == 0


def chara_start(ctx: ChartContext) -> Tuple[int, bool, bool]:
    """(start_sign, forward, carve_out_applied) for Chara Dasha."""
    lagna = ctx.lagna_sign
    if lagna is None:
        raise UnresolvableDirection("chara: ascendant longitude is required", loc=["ascendant_lon"])
    forward = is_odd_sign(lagna)
    if chara_distance(lagna, ctx) != 0:
        return lagna, forward, False

    step = 1 if forward else -1
    for k in range(1, 12):
        cand = (lagna + step * k) % 12
        if chara_distance(cand, ctx) != 0:
            return cand, forward, True
    raise UnresolvableDirection(
        f"chara: every sign from {SIGNS[lagna]} holds its own lord; no starting sign",
        loc=["ascendant_lon"],
    )


# ───────────────────────── per-system rules ─────────────────────────

def _nakshatra_lord(system: DashaSystemId, ctx: ChartContext, modulus: int) -> Direction:
    nak = ctx.nakshatra
    return Direction(
        system=system,
        start_index=nak.index % modulus,
        direction=FORWARD,
        elapsed_fraction=nak.fraction_elapsed,
        span=modulus,
    )


def _ashtottari(ctx: ChartContext, sched: RulerSchedule) -> Direction:
    nak = ctx.nakshatra
    for gid, (ruler, members) in enumerate(ASHTOTTARI_GROUPS):
        if nak.index in members:
            within = members.index(nak.index)
            return Direction(
                system=DashaSystemId.ASHTOTTARI,
                start_index=sched.rulers.index(ruler),
                direction=FORWARD,
                elapsed_fraction=(within + nak.fraction_elapsed) / len(members),
                span=len(sched),
                group_id=gid,
                pattern_position=within,
            )
    raise UnresolvableDirection(f"ashtottari: nakshatra {nak.index} belongs to no group")  # pragma: no cover


def _kalachakra(ctx: ChartContext) -> Direction:
    nak = ctx.nakshatra
    group, triad, savya = kalachakra_group(nak.index)
    d = Direction(
        system=DashaSystemId.KALACHAKRA,
        start_index=navamsa_sign(nak),
        direction=FORWARD if savya else REVERSE,
        elapsed_fraction=pada_fraction(nak),
        span=9,
        group_id=group,
        pattern_position=triad,
        label="savya" if savya else "apsavya",
    )
    order = d.order(12)
    return replace(d, notes=(f"deha:{SIGNS[order[0]]}", f"jeeva:{SIGNS[order[-1]]}"))


def _chara(ctx: ChartContext) -> Direction:
    start, forward, carved = chara_start(ctx)
    notes: Tuple[str, ...] = ()
    if carved:
        notes = (f"lagna_lord_in_lagna:start_{SIGNS[start]}",)
        log.debug("chara carve-out: lagna %s holds its lord, starting from %s",
                  SIGNS[ctx.lagna_sign or 0], SIGNS[start])
    return Direction(
        system=DashaSystemId.CHARA,
        start_index=start,
        direction=FORWARD if forward else REVERSE,
        elapsed_fraction=0.0,
        span=12,
        label="direct" if forward else "indirect",
        notes=notes,
    )


def _sudarshana(ctx: ChartContext) -> Direction:
    tracks: Dict[str, int] = {}
    if ctx.lagna_sign is not None:
        tracks["lagna"] = ctx.lagna_sign
    tracks["moon"] = ctx.moon_sign
    tracks["sun"] = ctx.sun_sign
    first = next(iter(tracks.values()))
    return Direction(
        system=DashaSystemId.SUDARSHANA,
        start_index=first,
        direction=FORWARD,
        elapsed_fraction=0.0,
        span=12,
        tracks=tracks,
    )


def resolve(system: DashaSystemId, ctx: ChartContext, sched: Optional[RulerSchedule] = None) -> Direction:
    """Starting ruler index and traversal direction for `system` on this chart."""
    system = DashaSystemId(system)
    if system is DashaSystemId.VIMSHOTTARI:
        return _nakshatra_lord(system, ctx, 9)
    if system is DashaSystemId.YOGINI:
        return _nakshatra_lord(system, ctx, 8)
    if system is DashaSystemId.ASHTOTTARI:
        return _ashtottari(ctx, sched or catalog_schedule(system, ctx))
    if system is DashaSystemId.KALACHAKRA:
        return _kalachakra(ctx)
    if system is DashaSystemId.CHARA:
        return _chara(ctx)
    if system is DashaSystemId.SUDARSHANA:
        return _sudarshana(ctx)
    raise UnresolvableDirection(f"no direction rule for {system!r}")  # pragma: no cover
