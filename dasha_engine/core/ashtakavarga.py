# dasha_engine/core/ashtakavarga.py
"""Bhinnashtakavarga / Sarvashtakavarga bindus."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from dasha_engine.core.birth import ChartContext
from dasha_engine.core.constants import SEVEN_PLANETS, SIGNS

__all__ = [
    "BINDU_HOUSES", "CONTRIBUTORS", "AshtakavargaChart",
    "bhinnashtakavarga", "sarvashtakavarga", "from_context",
    "STRONG_BAV", "STRONG_SAV",
]

CONTRIBUTORS: Tuple[str, ...] = SEVEN_PLANETS + ("Asc",)

STRONG_BAV = 5
STRONG_SAV = 28

# planet -> contributor -> houses (counted from the contributor) that receive a bindu
BINDU_HOUSES: Mapping[str, Mapping[str, Tuple[int, ...]]] = MappingProxyType({
    "Sun": {
        "Sun": (1, 2, 4, 7, 8, 9, 10, 11),
        "Moon": (3, 6, 10, 11),
        "Mars": (1, 2, 4, 7, 8, 9, 10, 11),
        "Mercury": (3, 5, 6, 9, 10, 11, 12),
        "Jupiter": (5, 6, 9, 11),
        "Venus": (6, 7, 12),
        "Saturn": (1, 2, 4, 7, 8, 9, 10, 11),
        "Asc": (3, 4, 6, 10, 11, 12),
    },
    "Moon": {
        "Sun": (3, 6, 7, 8, 10, 11),
        "Moon": (1, 3, 6, 7, 10, 11),
        "Mars": (2, 3, 5, 6, 9, 10, 11),
        "Mercury": (1, 3, 4, 5, 7, 8, 10, 11),
        "Jupiter": (1, 4, 7, 8, 10, 11, 12),
        "Venus": (3, 4, 5, 7, 9, 10, 11),
        "Saturn": (3, 5, 6, 11),
        "Asc": (3, 6, 10, 11),
    },
    "Mars": {
        "Sun": (3, 5, 6, 10, 11),
        "Moon": (3, 6, 11),
        "Mars": (1, 2, 4, 7, 8, 10, 11),
        "Mercury": (3, 5, 6, 11),
        "Jupiter": (6, 10, 11, 12),
        "Venus": (6, 8, 11, 12),
        "Saturn": (1, 4, 7, 8, 9, 10, 11),
        "Asc": (1, 3, 6, 10, 11),
    },
    "Mercury": {
        "Sun": (5, 6, 9, 11, 12),
        "Moon": (2, 4, 6, 8, 10, 11),
        "Mars": (1, 2, 4, 7, 8, 9, 10, 11),
        "Mercury": (1, 3, 5, 6, 9, 10, 11, 12),
        "Jupiter": (6, 8, 11, 12),
        "Venus": (1, 2, 3, 4, 5, 8, 9, 11),
        "Saturn": (1, 2, 4, 7, 8, 9, 10, 11),
        "Asc": (1, 2, 4, 6, 8, 10, 11),
    },
    "Jupiter": {
        "Sun": (1, 2, 3, 4, 7, 8, 9, 10, 11),
        "Moon": (2, 5, 7, 9, 11),
        "Mars": (1, 2, 4, 7, 8, 10, 11),
        "Mercury": (1, 2, 4, 5, 6, 9, 10, 11),
        "Jupiter": (1, 2, 3, 4, 7, 8, 10, 11),
        "Venus": (2, 5, 6, 9, 10, 11),
        "Saturn": (3, 5, 6, 12),
        "Asc": (1, 2, 4, 5, 6, 7, 9, 10, 11),
    },
    "Venus": {
        "Sun": (8, 11, 12),
        "Moon": (1, 2, 3, 4, 5, 8, 9, 11, 12),
        "Mars": (3, 5, 6, 9, 11, 12),
        "Mercury": (3, 5, 6, 9, 11),
        "Jupiter": (5, 8, 9, 10, 11),
        "Venus": (1, 2, 3, 4, 5, 8, 9, 10, 11),
        "Saturn": (3, 4, 5, 8, 9, 10, 11),
        "Asc": (1, 2, 3, 4, 5, 8, 9, 11),
    },
    "Saturn": {
        "Sun": (1, 2, 4, 7, 8, 10, 11),
        "Moon": (3, 6, 11),
        "Mars": (3, 5, 6, 10, 11, 12),
        "Mercury": (6, 8, 9, 10, 11, 12),
        "Jupiter": (5, 6, 11, 12),
        "Venus": (6, 11, 12),
        "Saturn": (3, 5, 6, 11),
        "Asc": (1, 3, 4, 6, 10, 11),
    },
})

# classical BAV totals, 337 in all
BAV_TOTALS = {"Sun": 48, "Moon": 49, "Mars": 39, "Mercury": 54, "Jupiter": 56, "Venus": 52, "Saturn": 39}


def bhinnashtakavarga(signs: Mapping[str, int]) -> Dict[str, List[int]]:
    """
    Planet -> 12 bindu counts indexed by sign (Aries = 0).

    `signs` maps the seven planets and "Asc" to sign indexes; missing
    contributors simply give no bindus.
    """
    out: Dict[str, List[int]] = {}
    for planet, rules in BINDU_HOUSES.items():
        row = [0] * 12
        for contributor, houses in rules.items():
            base = signs.get(contributor)
            if base is None:
                continue
            for h in houses:
                row[(base + h - 1) % 12] += 1
        out[planet] = row
    return out


def sarvashtakavarga(bav: Mapping[str, List[int]]) -> List[int]:
    return [sum(row[s] for row in bav.values()) for s in range(12)]


@dataclass(frozen=True)
class AshtakavargaChart:
    bav: Mapping[str, Tuple[int, ...]]
    sav: Tuple[int, ...]

    def bindus(self, planet: str, sign: int) -> Optional[int]:
        row = self.bav.get(planet)
        return None if row is None else row[sign % 12]

    def sav_of(self, sign: int) -> int:
        return self.sav[sign % 12]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bav": {p: dict(zip(SIGNS, row)) for p, row in self.bav.items()},
            "sav": dict(zip(SIGNS, self.sav)),
            "sav_total": sum(self.sav),
        }


def from_context(ctx: ChartContext) -> Optional[AshtakavargaChart]:
    """Needs the ascendant and all seven planets; returns None otherwise."""
    if ctx.lagna_sign is None:
        return None
    signs: Dict[str, int] = {"Asc": ctx.lagna_sign}
    for p in SEVEN_PLANETS:
        s = ctx.planet_signs.get(p)
        if s is None:
            return None
        signs[p] = s
    bav = bhinnashtakavarga(signs)
    return AshtakavargaChart(
        bav={p: tuple(row) for p, row in bav.items()},
        sav=tuple(sarvashtakavarga(bav)),
    )
