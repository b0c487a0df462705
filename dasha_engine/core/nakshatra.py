# dasha_engine/core/nakshatra.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from dasha_engine.core.constants import NAKSHATRA_COUNT, NAKSHATRA_NAMES
from dasha_engine.core.errors import InvalidLongitude

__all__ = ["NakshatraPosition", "locate", "nakshatra_name", "pada_fraction", "navamsa_sign"]

_ONE_MINUS = math.nextafter(1.0, 0.0)


@dataclass(frozen=True)
class NakshatraPosition:
    index: int                # 0..26
    fraction_elapsed: float   # [0, 1)
    pada: int                 # 1..4

    @property
    def name(self) -> str:
        return NAKSHATRA_NAMES[self.index]

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "name": self.name,
            "fraction_elapsed": self.fraction_elapsed,
            "pada": self.pada,
        }


def _check_longitude(lon: Any) -> float:
    if isinstance(lon, bool) or not isinstance(lon, (int, float)):
        raise InvalidLongitude(f"longitude must be a number, got {type(lon).__name__}", loc=["moon_lon"])
    x = float(lon)
    if math.isnan(x) or math.isinf(x):
        raise InvalidLongitude("longitude must be finite", loc=["moon_lon"], value=str(x))
    if not (0.0 <= x < 360.0):
        raise InvalidLongitude("longitude must lie in [0, 360)", loc=["moon_lon"], value=x)
    return x


def locate(moon_lon: float) -> NakshatraPosition:
    """Sidereal Moon longitude -> (nakshatra index, elapsed fraction, pada)."""
    x = _check_longitude(moon_lon)
    pos = x * NAKSHATRA_COUNT / 360.0
    idx = min(int(pos), NAKSHATRA_COUNT - 1)
    frac = pos - idx
    # float rounding just below 360° can land on exactly 1.0
    if frac >= 1.0:
        frac = _ONE_MINUS
    elif frac < 0.0:
        frac = 0.0
    pada = min(int(frac * 4.0), 3) + 1
    return NakshatraPosition(index=idx, fraction_elapsed=frac, pada=pada)


def nakshatra_name(index: int) -> str:
    return NAKSHATRA_NAMES[index % NAKSHATRA_COUNT]


def pada_fraction(pos: NakshatraPosition) -> float:
    """Elapsed fraction within the birth pada, [0, 1)."""
    f = pos.fraction_elapsed * 4.0 - (pos.pada - 1)
    return min(max(f, 0.0), _ONE_MINUS)


def navamsa_sign(pos: NakshatraPosition) -> int:
    """Sign index (Aries = 0) of the navamsa occupied by the birth pada."""
    return (pos.index * 4 + pos.pada - 1) % 12
