# dasha_engine/core/catalog.py
"""
System catalog: static per-system metadata for the six Dasha systems.

Each system has exactly one `CatalogEntry`. Fixed-sequence systems carry their
ruler years directly; Kalachakra and Chara resolve a chart-dependent
`RulerSchedule` through `schedule(system, ctx)`, which is the only accessor the
tree builder uses (it never branches on the system name).

Tables are validated once at import: an empty sequence, a non-positive
duration or a wrong cycle total is a programming error and fails loudly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Dict, Mapping, Optional, Tuple

from dasha_engine.core.constants import (
    DUAL_LORD_SIGNS,
    SIGNS,
    SIGN_LORDS,
    is_odd_sign,
)
from dasha_engine.core.errors import (
    DashaError,
    EmptyRulerSequence,
    NonPositiveDuration,
    UnresolvableDirection,
)

if TYPE_CHECKING:  # pragma: no cover
    from dasha_engine.core.birth import ChartContext

__all__ = [
    "DashaSystemId", "CatalogEntry", "RulerSchedule",
    "CATALOG", "entry", "schedule", "ruler_planet",
    "ASHTOTTARI_GROUPS", "KALACHAKRA_LORD_YEARS", "YOGINI_PLANETS",
    "chara_lord", "chara_distance", "chara_sign_years", "validate_schedule",
]


class DashaSystemId(str, Enum):
    VIMSHOTTARI = "vimshottari"
    YOGINI = "yogini"
    ASHTOTTARI = "ashtottari"
    KALACHAKRA = "kalachakra"
    CHARA = "chara"
    SUDARSHANA = "sudarshana"

    @classmethod
    def parse(cls, value: str) -> "DashaSystemId":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise DashaError(f"unknown dasha system '{value}'", loc=["systems"]) from None


@dataclass(frozen=True)
class RulerSchedule:
    rulers: Tuple[str, ...]
    years: Tuple[int, ...]

    @property
    def total(self) -> int:
        return sum(self.years)

    def years_of(self, ruler: str) -> int:
        return self.years[self.rulers.index(ruler)]

    def __len__(self) -> int:
        return len(self.rulers)


@dataclass(frozen=True)
class CatalogEntry:
    system: DashaSystemId
    total_cycle_years: Optional[int]          # None => chart-dependent
    ordered_rulers: Tuple[str, ...]
    ruler_years: Optional[Mapping[str, int]]  # None => chart-dependent
    subdivision_depth: int
    level_names: Tuple[str, ...]
    applicability: str                        # "always" | "conditional" | "supplementary"
    ruler_kind: str                           # "planet" | "yogini" | "sign"

    @property
    def is_fixed(self) -> bool:
        return self.ruler_years is not None

    def to_dict(self) -> Dict[str, object]:
        return {
            "system": self.system.value,
            "total_cycle_years": self.total_cycle_years,
            "ordered_rulers": list(self.ordered_rulers),
            "ruler_years": dict(self.ruler_years) if self.ruler_years is not None else None,
            "subdivision_depth": self.subdivision_depth,
            "level_names": list(self.level_names),
            "applicability": self.applicability,
            "ruler_kind": self.ruler_kind,
            "fixed_durations": self.is_fixed,
        }


# ───────────────────────── static tables ─────────────────────────

_VIMSHOTTARI = (
    ("Ketu", 7), ("Venus", 20), ("Sun", 6), ("Moon", 10), ("Mars", 7),
    ("Rahu", 18), ("Jupiter", 16), ("Saturn", 19), ("Mercury", 17),
)

_YOGINI = (
    ("Mangala", 1), ("Pingala", 2), ("Dhanya", 3), ("Bhramari", 4),
    ("Bhadrika", 5), ("Ulka", 6), ("Siddha", 7), ("Sankata", 8),
)

YOGINI_PLANETS: Mapping[str, str] = MappingProxyType({
    "Mangala": "Moon", "Pingala": "Sun", "Dhanya": "Jupiter", "Bhramari": "Mars",
    "Bhadrika": "Mercury", "Ulka": "Saturn", "Siddha": "Venus", "Sankata": "Rahu",
})

_ASHTOTTARI = (
    ("Sun", 6), ("Moon", 15), ("Mars", 8), ("Mercury", 17),
    ("Saturn", 10), ("Jupiter", 19), ("Rahu", 12), ("Venus", 21),
)

# Ruler -> birth nakshatra indexes, counted from Ardra (5) in zodiacal order.
ASHTOTTARI_GROUPS: Tuple[Tuple[str, Tuple[int, ...]], ...] = (
    ("Sun", (5, 6, 7, 8)),
    ("Moon", (9, 10, 11)),
    ("Mars", (12, 13, 14, 15)),
    ("Mercury", (16, 17, 18)),
    ("Saturn", (19, 20, 21)),
    ("Jupiter", (22, 23, 24)),
    ("Rahu", (25, 26, 0, 1)),
    ("Venus", (2, 3, 4)),
)

KALACHAKRA_LORD_YEARS: Mapping[str, int] = MappingProxyType({
    "Sun": 5, "Moon": 21, "Mars": 7, "Mercury": 9,
    "Jupiter": 10, "Venus": 16, "Saturn": 4,
})

_ZODIAC = tuple(SIGNS)
_KALACHAKRA_YEARS = tuple(KALACHAKRA_LORD_YEARS[SIGN_LORDS[i]] for i in range(12))

_LEVELS_5 = ("Mahadasha", "Antardasha", "Pratyantardasha", "Sookshma", "Prana")


def _entry(system, rulers_years, depth, applicability, kind, total, levels=None) -> CatalogEntry:
    rulers = tuple(r for r, _ in rulers_years)
    years = MappingProxyType(dict(rulers_years))
    return CatalogEntry(
        system=system,
        total_cycle_years=total,
        ordered_rulers=rulers,
        ruler_years=years,
        subdivision_depth=depth,
        level_names=levels or _LEVELS_5[:depth],
        applicability=applicability,
        ruler_kind=kind,
    )


CATALOG: Mapping[DashaSystemId, CatalogEntry] = MappingProxyType({
    DashaSystemId.VIMSHOTTARI: _entry(DashaSystemId.VIMSHOTTARI, _VIMSHOTTARI, 5, "always", "planet", 120),
    DashaSystemId.YOGINI: _entry(DashaSystemId.YOGINI, _YOGINI, 3, "always", "yogini", 36),
    DashaSystemId.ASHTOTTARI: _entry(DashaSystemId.ASHTOTTARI, _ASHTOTTARI, 3, "conditional", "planet", 108),
    DashaSystemId.KALACHAKRA: CatalogEntry(
        system=DashaSystemId.KALACHAKRA,
        total_cycle_years=None,
        ordered_rulers=_ZODIAC,
        ruler_years=None,
        subdivision_depth=2,
        level_names=_LEVELS_5[:2],
        applicability="always",
        ruler_kind="sign",
    ),
    DashaSystemId.CHARA: CatalogEntry(
        system=DashaSystemId.CHARA,
        total_cycle_years=None,
        ordered_rulers=_ZODIAC,
        ruler_years=None,
        subdivision_depth=2,
        level_names=_LEVELS_5[:2],
        applicability="supplementary",
        ruler_kind="sign",
    ),
    DashaSystemId.SUDARSHANA: _entry(
        DashaSystemId.SUDARSHANA, tuple((s, 1) for s in _ZODIAC), 1, "always", "sign", 12, levels=("Year",)
    ),
})


def validate_schedule(sched: RulerSchedule, *, system: str = "") -> RulerSchedule:
    if not sched.rulers:
        raise EmptyRulerSequence(f"{system or 'schedule'}: ruler sequence is empty", loc=[system])
    if len(sched.rulers) != len(sched.years):
        raise EmptyRulerSequence(f"{system or 'schedule'}: rulers/years length mismatch", loc=[system])
    for r, y in zip(sched.rulers, sched.years):
        if not (isinstance(y, int) and y > 0):
            raise NonPositiveDuration(f"{system or 'schedule'}: ruler {r} has duration {y!r}",
                                      loc=[system, r])
    return sched


def _validate_catalog() -> None:
    for sid, e in CATALOG.items():
        if not e.ordered_rulers:
            raise EmptyRulerSequence(f"{sid.value}: no rulers", loc=[sid.value])
        if not (1 <= e.subdivision_depth <= 5):
            raise DashaError(f"{sid.value}: subdivision depth {e.subdivision_depth} outside 1..5")
        if e.ruler_years is None:
            continue
        validate_schedule(RulerSchedule(e.ordered_rulers, tuple(e.ruler_years[r] for r in e.ordered_rulers)),
                          system=sid.value)
        if e.total_cycle_years is not None and sum(e.ruler_years.values()) != e.total_cycle_years:
            raise DashaError(f"{sid.value}: ruler years sum to {sum(e.ruler_years.values())}, "
                             f"expected {e.total_cycle_years}")
    if sorted(i for _, g in ASHTOTTARI_GROUPS for i in g) != list(range(27)):
        raise DashaError("ashtottari: nakshatra groups must cover all 27 nakshatras once")


_validate_catalog()


# ───────────────────────── chart-dependent durations ─────────────────────────

def _planets_in(ctx: "ChartContext", sign: int) -> int:
    return sum(1 for s in ctx.planet_signs.values() if s == sign)


def chara_lord(sign: int, ctx: "ChartContext") -> str:
    """
    Lord used for Chara Dasha counting.

    Scorpio and Aquarius have two lords: if exactly one of them sits in the
    sign, the other is used; otherwise the one with more planets in its own
    sign; a tie keeps the primary lord.
    """
    sign %= 12
    pair = DUAL_LORD_SIGNS.get(sign)
    if pair is None:
        return SIGN_LORDS[sign]
    primary, node = pair
    p_sign, n_sign = ctx.planet_signs.get(primary), ctx.planet_signs.get(node)
    if n_sign is None or p_sign is None:
        return primary
    if p_sign == sign and n_sign != sign:
        return node
    if n_sign == sign and p_sign != sign:
        return primary
    if _planets_in(ctx, n_sign) > _planets_in(ctx, p_sign):
        return node
    return primary


def chara_distance(sign: int, ctx: "ChartContext") -> int:
    """Signs from `sign` to its lord (0 when self-ruled), in the sign's own direction."""
    lord = chara_lord(sign, ctx)
    lord_sign = ctx.planet_signs.get(lord)
    if lord_sign is None:
        raise UnresolvableDirection(f"chara: position of {lord} (lord of {SIGNS[sign % 12]}) is unknown",
                                    loc=["planets", lord])
    if is_odd_sign(sign):
        return (lord_sign - sign) % 12
    return (sign - lord_sign) % 12


def chara_sign_years(ctx: "ChartContext") -> Tuple[int, ...]:
    """Years per sign (Aries..Pisces); self-ruled signs take the full 12."""
    out = []
    for s in range(12):
        d = chara_distance(s, ctx)
        out.append(12 if d == 0 else min(max(d, 1), 12))
    return tuple(out)


# ───────────────────────── accessors ─────────────────────────

def entry(system: DashaSystemId) -> CatalogEntry:
    return CATALOG[DashaSystemId(system)]


def schedule(system: DashaSystemId, ctx: Optional["ChartContext"] = None) -> RulerSchedule:
    """Resolved ruler sequence and per-ruler years for `system` and chart."""
    e = entry(system)
    if e.ruler_years is not None:
        sched = RulerSchedule(e.ordered_rulers, tuple(e.ruler_years[r] for r in e.ordered_rulers))
    elif e.system is DashaSystemId.KALACHAKRA:
        sched = RulerSchedule(_ZODIAC, _KALACHAKRA_YEARS)
    elif e.system is DashaSystemId.CHARA:
        if ctx is None:
            raise UnresolvableDirection("chara: chart context required for sign durations")
        sched = RulerSchedule(_ZODIAC, chara_sign_years(ctx))
    else:  # pragma: no cover
        raise EmptyRulerSequence(f"{e.system.value}: no schedule")
    return validate_schedule(sched, system=e.system.value)


def ruler_planet(system: DashaSystemId, ruler: str) -> str:
    """Planet standing behind a ruler id (Yogini deity or sign lord)."""
    kind = entry(system).ruler_kind
    if kind == "yogini":
        return YOGINI_PLANETS[ruler]
    if kind == "sign":
        return SIGN_LORDS[SIGNS.index(ruler)]
    return ruler
