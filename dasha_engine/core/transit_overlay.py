# dasha_engine/core/transit_overlay.py
"""
Transit overlay: how the rulers of the active Dasha path are transiting now.

Gochara houses are counted from the natal Moon sign. A planet in one of its
classically favourable houses can be obstructed (Vedha) by another transiting
planet standing in the paired house; Sun and Saturn never obstruct each
other. When the natal chart is complete, Ashtakavarga bindus of the ruler's
transit sign are attached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from dasha_engine.core import ashtakavarga
from dasha_engine.core.birth import ChartContext
from dasha_engine.core.catalog import DashaSystemId, ruler_planet
from dasha_engine.core.constants import NATURAL_MALEFICS, PLANETS, houses_from, sign_index
from dasha_engine.core.errors import InvalidLongitude
from dasha_engine.core.periods import PeriodNode

__all__ = [
    "FAVORABLE_HOUSES", "VEDHA_POINTS", "VedhaSeverity", "Effectiveness",
    "PlanetTransit", "TransitOverlayResult", "analyze_transits", "overlay", "overall_score",
]

log = logging.getLogger(__name__)

FAVORABLE_HOUSES: Mapping[str, FrozenSet[int]] = MappingProxyType({
    "Sun": frozenset({3, 6, 10, 11}),
    "Moon": frozenset({1, 3, 6, 7, 10, 11}),
    "Mars": frozenset({3, 6, 11}),
    "Mercury": frozenset({2, 4, 6, 8, 10, 11}),
    "Jupiter": frozenset({2, 5, 7, 9, 11}),
    "Venus": frozenset({1, 2, 3, 4, 5, 8, 9, 11, 12}),
    "Saturn": frozenset({3, 6, 11}),
    "Rahu": frozenset({3, 6, 10, 11}),
    "Ketu": frozenset({3, 6, 11}),
})

# transit house -> houses from which another planet obstructs it
VEDHA_POINTS: Mapping[int, FrozenSet[int]] = MappingProxyType({
    1: frozenset({5}), 2: frozenset({12}), 3: frozenset({9}), 4: frozenset({10}),
    5: frozenset({1}), 6: frozenset({12}), 7: frozenset({11}), 9: frozenset({3}),
    10: frozenset({4}), 11: frozenset({7}), 12: frozenset({2, 6}),
})

UPACHAYA = frozenset({3, 6, 10, 11})
EXCELLENT_HOUSES = frozenset({2, 5, 9, 11})

SCORE_WEIGHTS = {
    "Jupiter": 3.0, "Saturn": 2.5, "Sun": 2.0, "Moon": 2.0,
    "Venus": 1.5, "Mars": 1.5, "Mercury": 1.5, "Rahu": 1.0, "Ketu": 1.0,
}

_NO_MUTUAL_VEDHA = frozenset({"Sun", "Saturn"})


class VedhaSeverity:
    COMPLETE = ("COMPLETE", 100)
    STRONG = ("STRONG", 75)
    MODERATE = ("MODERATE", 50)
    PARTIAL = ("PARTIAL", 25)
    NONE = ("NONE", 0)


class Effectiveness:
    EXCELLENT = ("EXCELLENT", 5)
    GOOD = ("GOOD", 4)
    MODERATE = ("MODERATE", 3)
    WEAK = ("WEAK", 2)
    NULLIFIED = ("NULLIFIED", 1)
    UNFAVORABLE = ("UNFAVORABLE", 0)


@dataclass(frozen=True)
class PlanetTransit:
    planet: str
    transit_sign: int
    house_from_moon: int
    is_favorable: bool
    vedha_by: Tuple[str, ...]
    severity: Tuple[str, int]
    effectiveness: Tuple[str, int]
    bav_bindus: Optional[int] = None
    sav_bindus: Optional[int] = None
    dasha_levels: Tuple[int, ...] = ()

    @property
    def has_vedha(self) -> bool:
        return bool(self.vedha_by)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "planet": self.planet,
            "transit_sign": self.transit_sign,
            "house_from_moon": self.house_from_moon,
            "is_favorable": self.is_favorable,
            "has_vedha": self.has_vedha,
            "vedha_by": list(self.vedha_by),
            "vedha_severity": self.severity[0],
            "reduction_pct": self.severity[1],
            "effectiveness": self.effectiveness[0],
            "effectiveness_score": self.effectiveness[1],
            "dasha_levels": list(self.dasha_levels),
        }
        if self.bav_bindus is not None:
            out["bav_bindus"] = self.bav_bindus
            out["bav_strong"] = self.bav_bindus >= ashtakavarga.STRONG_BAV
        if self.sav_bindus is not None:
            out["sav_bindus"] = self.sav_bindus
            out["sav_strong"] = self.sav_bindus >= ashtakavarga.STRONG_SAV
        return out


@dataclass(frozen=True)
class TransitOverlayResult:
    moon_sign: int
    rulers: Tuple[PlanetTransit, ...]
    all_transits: Tuple[PlanetTransit, ...]
    score: float
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "moon_sign": self.moon_sign,
            "dasha_rulers": [p.to_dict() for p in self.rulers],
            "transits": [p.to_dict() for p in self.all_transits],
            "overall_score": self.score,
            "warnings": list(self.warnings),
        }


# ───────────────────────── gochara / vedha ─────────────────────────

def _severity(planet: str, obstructors: Sequence[str]) -> Tuple[str, int]:
    if not obstructors:
        return VedhaSeverity.NONE
    malefic = any(o in NATURAL_MALEFICS for o in obstructors)
    if malefic and planet in ("Jupiter", "Venus", "Moon"):
        return VedhaSeverity.COMPLETE
    if planet == "Jupiter" or malefic:
        return VedhaSeverity.STRONG
    if any(o in ("Jupiter", "Venus") for o in obstructors):
        return VedhaSeverity.PARTIAL
    return VedhaSeverity.MODERATE


def _effectiveness(house: int, favorable: bool, severity: Tuple[str, int]) -> Tuple[str, int]:
    if not favorable:
        return Effectiveness.UNFAVORABLE
    if severity == VedhaSeverity.NONE:
        if house in UPACHAYA and house in EXCELLENT_HOUSES:
            return Effectiveness.EXCELLENT
        if house in UPACHAYA or house in EXCELLENT_HOUSES:
            return Effectiveness.GOOD
        return Effectiveness.MODERATE
    if severity == VedhaSeverity.COMPLETE:
        return Effectiveness.NULLIFIED
    if severity == VedhaSeverity.STRONG:
        return Effectiveness.WEAK
    return Effectiveness.MODERATE


def _transit_signs(transits: Mapping[str, float]) -> Dict[str, int]:
    signs: Dict[str, int] = {}
    for name, lon in transits.items():
        if name not in PLANETS:
            continue
        if isinstance(lon, bool) or not isinstance(lon, (int, float)) or not (0.0 <= float(lon) < 360.0):
            raise InvalidLongitude(f"transit longitude of {name} must lie in [0, 360)",
                                   loc=["transits", name], value=str(lon))
        signs[name] = sign_index(lon)
    if "Rahu" in signs and "Ketu" not in signs:
        signs["Ketu"] = (signs["Rahu"] + 6) % 12
    return signs


def analyze_transits(ctx: ChartContext, transits: Mapping[str, float]) -> List[PlanetTransit]:
    """Gochara + Vedha for every supplied transiting planet."""
    signs = _transit_signs(transits)
    houses = {p: houses_from(ctx.moon_sign, s) for p, s in signs.items()}
    av = ashtakavarga.from_context(ctx)

    out: List[PlanetTransit] = []
    for planet in PLANETS:
        if planet not in houses:
            continue
        house = houses[planet]
        favorable = house in FAVORABLE_HOUSES[planet]
        obstructors: List[str] = []
        if favorable:
            points = VEDHA_POINTS.get(house, frozenset())
            for other, h in houses.items():
                if other == planet or h not in points:
                    continue
                if planet in _NO_MUTUAL_VEDHA and other in _NO_MUTUAL_VEDHA:
                    continue
                obstructors.append(other)
        severity = _severity(planet, obstructors)
        out.append(PlanetTransit(
            planet=planet,
            transit_sign=signs[planet],
            house_from_moon=house,
            is_favorable=favorable,
            vedha_by=tuple(obstructors),
            severity=severity,
            effectiveness=_effectiveness(house, favorable, severity),
            bav_bindus=av.bindus(planet, signs[planet]) if av is not None else None,
            sav_bindus=av.sav_of(signs[planet]) if av is not None else None,
        ))
    return out


def overall_score(items: Sequence[PlanetTransit]) -> float:
    """Weighted 0..100 transit score; 50 when nothing is known."""
    if not items:
        return 50.0
    num = sum(p.effectiveness[1] * 20.0 * SCORE_WEIGHTS.get(p.planet, 1.0) for p in items)
    den = sum(SCORE_WEIGHTS.get(p.planet, 1.0) for p in items)
    return round(max(0.0, min(100.0, num / den)), 2)


# ───────────────────────── overlay ─────────────────────────

def overlay(
    path: Sequence[PeriodNode],
    ctx: ChartContext,
    transits: Mapping[str, float],
    *,
    system: DashaSystemId = DashaSystemId.VIMSHOTTARI,
) -> TransitOverlayResult:
    """Cross-reference the active Dasha path with current transits."""
    all_transits = analyze_transits(ctx, transits)
    by_planet = {p.planet: p for p in all_transits}

    levels: Dict[str, List[int]] = {}
    for node in path:
        levels.setdefault(ruler_planet(system, node.ruler), []).append(node.depth)

    rulers: List[PlanetTransit] = []
    warnings: List[str] = []
    for planet, depths in levels.items():
        pt = by_planet.get(planet)
        if pt is None:
            warnings.append(f"no_transit_for_{planet.lower()}")
            continue
        rulers.append(replace(pt, dasha_levels=tuple(depths)))

    if warnings:
        log.debug("transit overlay: missing transits %s", warnings)
    return TransitOverlayResult(
        moon_sign=ctx.moon_sign,
        rulers=tuple(rulers),
        all_transits=tuple(all_transits),
        score=overall_score(rulers or all_transits),
        warnings=tuple(warnings),
    )
