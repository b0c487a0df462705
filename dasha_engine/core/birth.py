# dasha_engine/core/birth.py
# -----------------------------------------------------------------------------
# Birth moment & derived chart context
#
# Public API:
#   BirthMoment.from_civil(date, time, tz, ...) -> BirthMoment
#   BirthMoment.fingerprint() -> str            (content address for caching)
#   chart_context(birth) -> ChartContext         (signs, nakshatra, day/night, paksha)
#
# Guarantees:
#   • Civil → UTC via zoneinfo; DST ambiguity flagged, fold=0 preferred.
#   • Longitudes are consumed, never computed (ephemeris is upstream).
#   • Day/night: Sun altitude from ERFA GMST + mean obliquity, refraction-
#     corrected horizon at −0.833°, unless the caller passes is_day_birth.
# -----------------------------------------------------------------------------

from __future__ import annotations

import hashlib
import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import erfa  # pyERFA

from dasha_engine.core.constants import PLANETS, sign_index, wrap_deg
from dasha_engine.core.nakshatra import NakshatraPosition, locate

__all__ = ["BirthMoment", "ChartContext", "chart_context", "sun_altitude_deg"]

SUNRISE_ALTITUDE_DEG = -0.8333


# ───────────────────────────── Dataclasses ─────────────────────────────

@dataclass(frozen=True)
class BirthMoment:
    birth_utc: datetime
    latitude: float
    longitude: float
    sun_lon: float
    moon_lon: float
    ayanamsa_deg: float
    tz_name: str = "UTC"
    utc_offset_seconds: int = 0
    ascendant_lon: Optional[float] = None
    planets: Mapping[str, float] = field(default_factory=dict)
    is_day_birth: Optional[bool] = None
    warnings: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.birth_utc.tzinfo is None:
            raise ValueError("birth_utc must be timezone-aware")
        object.__setattr__(self, "birth_utc", self.birth_utc.astimezone(timezone.utc))
        # canonical key order keeps fingerprint() stable
        object.__setattr__(self, "planets", dict(sorted((str(k), float(v)) for k, v in self.planets.items())))

    @classmethod
    def from_civil(
        cls,
        date_str: str,
        time_str: str,
        tz_name: str,
        **kwargs: Any,
    ) -> "BirthMoment":
        """Resolve a local civil birth time in an IANA zone."""
        try:
            z = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown IANA time zone '{tz_name}'") from e

        naive = datetime.fromisoformat(f"{date_str}T{time_str}")
        offset, warns = _fold_offset(z, naive)
        birth_utc = naive.replace(tzinfo=z, fold=0).astimezone(timezone.utc)
        return cls(
            birth_utc=birth_utc,
            tz_name=tz_name,
            utc_offset_seconds=offset,
            warnings=tuple(warns),
            **kwargs,
        )

    def local_time(self) -> datetime:
        return self.birth_utc.astimezone(ZoneInfo(self.tz_name))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "birth_utc": self.birth_utc.isoformat(),
            "tz_name": self.tz_name,
            "utc_offset_seconds": self.utc_offset_seconds,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "sun_lon": self.sun_lon,
            "moon_lon": self.moon_lon,
            "ayanamsa_deg": self.ayanamsa_deg,
            "ascendant_lon": self.ascendant_lon,
            "planets": dict(self.planets),
            "is_day_birth": self.is_day_birth,
        }

    def fingerprint(self) -> str:
        blob = json.dumps(self.as_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(blob.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ChartContext:
    birth: BirthMoment
    nakshatra: NakshatraPosition
    moon_sign: int
    sun_sign: int
    lagna_sign: Optional[int]
    planet_signs: Dict[str, int]
    is_day_birth: bool
    paksha: str            # "shukla" | "krishna"
    moon_sun_elongation: float


# ───────────────────────────── helpers ─────────────────────────────

def _fold_offset(z: ZoneInfo, naive_local: datetime) -> Tuple[int, List[str]]:
    warnings: List[str] = []
    off0 = naive_local.replace(tzinfo=z, fold=0).utcoffset()
    off1 = naive_local.replace(tzinfo=z, fold=1).utcoffset()
    if off0 is None:
        raise ValueError("Timezone returned None utcoffset()")
    if off1 is not None and off1 != off0:
        warnings.append("dst_ambiguous")
    return int(off0.total_seconds()), warnings


def _two_part_jd(dt_utc: datetime) -> Tuple[float, float]:
    """ERFA dtf2d without a time scale: plain Gregorian calendar → JD."""
    sec = dt_utc.second + dt_utc.microsecond / 1e6
    d1, d2 = erfa.dtf2d("", dt_utc.year, dt_utc.month, dt_utc.day,
                        dt_utc.hour, dt_utc.minute, sec)
    return float(d1), float(d2)


def sun_altitude_deg(birth: BirthMoment) -> float:
    """Apparent-horizon altitude of the Sun (degrees) at the birth place."""
    d1, d2 = _two_part_jd(birth.birth_utc)
    # UT1≈UTC and TT≈UT are far below the precision day/night needs
    gmst = float(erfa.gmst06(d1, d2, d1, d2))
    eps = float(erfa.obl06(d1, d2))
    lam = math.radians(wrap_deg(birth.sun_lon + birth.ayanamsa_deg))   # tropical
    ra = math.atan2(math.cos(eps) * math.sin(lam), math.cos(lam))
    dec = math.asin(math.sin(eps) * math.sin(lam))
    ha = gmst + math.radians(birth.longitude) - ra
    phi = math.radians(birth.latitude)
    s = math.sin(phi) * math.sin(dec) + math.cos(phi) * math.cos(dec) * math.cos(ha)
    return math.degrees(math.asin(max(-1.0, min(1.0, s))))


def chart_context(birth: BirthMoment) -> ChartContext:
    nak = locate(birth.moon_lon)
    signs: Dict[str, int] = {
        "Sun": sign_index(birth.sun_lon),
        "Moon": sign_index(birth.moon_lon),
    }
    for name, lon in birth.planets.items():
        if name in PLANETS:
            signs[name] = sign_index(lon)
    if "Rahu" in signs and "Ketu" not in signs:
        signs["Ketu"] = (signs["Rahu"] + 6) % 12

    if birth.is_day_birth is not None:
        is_day = bool(birth.is_day_birth)
    else:
        is_day = sun_altitude_deg(birth) > SUNRISE_ALTITUDE_DEG

    elong = wrap_deg(birth.moon_lon - birth.sun_lon)
    return ChartContext(
        birth=birth,
        nakshatra=nak,
        moon_sign=signs["Moon"],
        sun_sign=signs["Sun"],
        lagna_sign=(sign_index(birth.ascendant_lon) if birth.ascendant_lon is not None else None),
        planet_signs=signs,
        is_day_birth=is_day,
        paksha=("shukla" if elong < 180.0 else "krishna"),
        moon_sun_elongation=elong,
    )
