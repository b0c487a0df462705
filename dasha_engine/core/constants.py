# dasha_engine/core/constants.py
# -*- coding: utf-8 -*-
"""
Dasha engine: core constants & small helpers

Purpose
-------
Single source of truth for:
- planet and sign names (stable canonical spellings)
- sign rulership (including the two dual-lord signs)
- nakshatra names and span
- natural friendship / enmity between planets
- time constants (Dasha year, microsecond units)
- tiny angle helpers (wrap / sign index)

Design
------
- Pure-Python, no external dependencies.
- Safe to import from any core module.
- Tables are tuples / read-only mappings; functions are pure.

Notes
-----
- Friendship tables follow BPHS ch. 45; Rahu behaves like Saturn/Venus and
  Ketu like Mars/Jupiter.
"""

from __future__ import annotations

import math
from types import MappingProxyType
from typing import Dict, Mapping, Tuple

__all__ = [
    # bodies & signs
    "PLANETS", "SEVEN_PLANETS", "NODES", "SIGNS", "SIGN_LORDS", "DUAL_LORD_SIGNS",
    "NATURAL_MALEFICS", "NATURAL_BENEFICS",
    # nakshatras
    "NAKSHATRA_NAMES", "NAKSHATRA_COUNT", "NAKSHATRA_SPAN_DEG", "PADA_SPAN_DEG",
    # relationships
    "PLANET_FRIENDS", "PLANET_ENEMIES", "DEBILITATION_SIGNS", "relationship",
    # time
    "DASHA_YEAR_DAYS", "US_PER_DAY", "year_us",
    # helpers
    "wrap_deg", "sign_index", "sign_lord", "is_odd_sign", "houses_from",
]

# ── canonical bodies ─────────────────────────────────────────────────────────
PLANETS: Tuple[str, ...] = (
    "Sun", "Moon", "Mars", "Mercury", "Jupiter", "Venus", "Saturn", "Rahu", "Ketu",
)
SEVEN_PLANETS: Tuple[str, ...] = PLANETS[:7]
NODES: Tuple[str, ...] = ("Rahu", "Ketu")

NATURAL_MALEFICS = frozenset({"Saturn", "Mars", "Rahu", "Ketu"})
NATURAL_BENEFICS = frozenset({"Jupiter", "Venus", "Moon", "Mercury"})

# ── zodiac ───────────────────────────────────────────────────────────────────
SIGNS: Tuple[str, ...] = (
    "Aries", "Taurus", "Gemini", "Cancer", "Leo", "Virgo",
    "Libra", "Scorpio", "Sagittarius", "Capricorn", "Aquarius", "Pisces",
)

# Primary lord per sign index (0 = Aries).
SIGN_LORDS: Tuple[str, ...] = (
    "Mars", "Venus", "Mercury", "Moon", "Sun", "Mercury",
    "Venus", "Mars", "Jupiter", "Saturn", "Saturn", "Jupiter",
)

# Scorpio and Aquarius carry a node as co-lord (Jaimini usage).
DUAL_LORD_SIGNS: Mapping[int, Tuple[str, str]] = MappingProxyType({
    7: ("Mars", "Ketu"),
    10: ("Saturn", "Rahu"),
})

# ── nakshatras ───────────────────────────────────────────────────────────────
NAKSHATRA_NAMES: Tuple[str, ...] = (
    "Ashwini", "Bharani", "Krittika", "Rohini", "Mrigashira", "Ardra",
    "Punarvasu", "Pushya", "Ashlesha", "Magha", "Purva Phalguni", "Uttara Phalguni",
    "Hasta", "Chitra", "Swati", "Vishakha", "Anuradha", "Jyeshtha",
    "Mula", "Purva Ashadha", "Uttara Ashadha", "Shravana", "Dhanishta", "Shatabhisha",
    "Purva Bhadrapada", "Uttara Bhadrapada", "Revati",
)
NAKSHATRA_COUNT: int = 27
NAKSHATRA_SPAN_DEG: float = 360.0 / NAKSHATRA_COUNT   # 13°20'
PADA_SPAN_DEG: float = NAKSHATRA_SPAN_DEG / 4.0       # 3°20'

# ── natural relationships ────────────────────────────────────────────────────
PLANET_FRIENDS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "Sun": ("Moon", "Mars", "Jupiter"),
    "Moon": ("Sun", "Mercury"),
    "Mars": ("Sun", "Moon", "Jupiter"),
    "Mercury": ("Sun", "Venus"),
    "Jupiter": ("Sun", "Moon", "Mars"),
    "Venus": ("Mercury", "Saturn"),
    "Saturn": ("Mercury", "Venus"),
    "Rahu": ("Venus", "Saturn"),
    "Ketu": ("Mars", "Jupiter"),
})

PLANET_ENEMIES: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "Sun": ("Venus", "Saturn"),
    "Moon": (),
    "Mars": ("Mercury",),
    "Mercury": ("Moon",),
    "Jupiter": ("Venus", "Mercury"),
    "Venus": ("Sun", "Moon"),
    "Saturn": ("Sun", "Moon"),
    "Rahu": ("Sun", "Moon"),
    "Ketu": ("Sun", "Moon"),
})


DEBILITATION_SIGNS: Mapping[str, int] = MappingProxyType({
    "Sun": 6, "Moon": 7, "Mars": 3, "Mercury": 11, "Jupiter": 9,
    "Venus": 5, "Saturn": 0, "Rahu": 7, "Ketu": 1,
})


def relationship(of: str, towards: str) -> str:
    """How `of` regards `towards`: 'friend', 'enemy' or 'neutral'."""
    if towards in PLANET_FRIENDS.get(of, ()):
        return "friend"
    if towards in PLANET_ENEMIES.get(of, ()):
        return "enemy"
    return "neutral"

# ── time constants ────────────────────────────────────────────────────────────
# Gregorian mean year; 365.2425 d = 31 556 952 s exactly, so whole Dasha
# years are whole microseconds.
DASHA_YEAR_DAYS: float = 365.2425
US_PER_DAY: int = 86_400 * 1_000_000


def year_us(year_days: float = DASHA_YEAR_DAYS) -> int:
    """Length of one Dasha year in integer microseconds."""
    return int(round(float(year_days) * US_PER_DAY))

# ── tiny angle helpers ────────────────────────────────────────────────────────
def wrap_deg(x: float) -> float:
    """
    Wrap any angle to [0, 360).
    """
    x = math.fmod(float(x), 360.0)
    x = x + 360.0 if x < 0.0 else x
    return 0.0 if x >= 360.0 else x


def sign_index(lon_deg: float) -> int:
    """0-based sign index (Aries = 0) of a longitude."""
    return int(wrap_deg(lon_deg) // 30.0) % 12


def sign_lord(sign: int) -> str:
    return SIGN_LORDS[sign % 12]


def is_odd_sign(sign: int) -> bool:
    """Odd in the 1-based sense: Aries (index 0) is sign 1, hence odd."""
    return (sign % 12) % 2 == 0


def houses_from(reference_sign: int, sign: int) -> int:
    """House number (1..12) of `sign` counted from `reference_sign`."""
    return (sign - reference_sign) % 12 + 1
