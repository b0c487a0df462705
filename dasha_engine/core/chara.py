# dasha_engine/core/chara.py
"""
Chara (Jaimini sign) Dasha.

Mahadasha years come from the distance between each sign and its lord,
counted forward from odd signs and backward from even ones. Antardashas are
twelve equal parts of the Mahadasha, starting with the Mahadasha sign and
running in the chart direction set by the Lagna.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from dasha_engine.core.birth import ChartContext
from dasha_engine.core.catalog import DashaSystemId, chara_distance, chara_lord, schedule
from dasha_engine.core.constants import DASHA_YEAR_DAYS, SIGNS, is_odd_sign, sign_index, wrap_deg
from dasha_engine.core.direction import chara_start
from dasha_engine.core.errors import UnresolvableDirection
from dasha_engine.core.periods import DashaTree, Subdivider, build_tree

__all__ = ["EqualTwelfths", "build_chara_tree", "sign_table", "chara_karakas", "karakamsha", "KARAKA_NAMES"]


class EqualTwelfths(Subdivider):
    def weights(self, seq: Sequence[int]) -> List[int]:
        return [1] * len(seq)


def build_chara_tree(
    ctx: ChartContext,
    *,
    horizon_years: float = 120.0,
    depth: Optional[int] = None,
    year_days: float = DASHA_YEAR_DAYS,
) -> DashaTree:
    return build_tree(
        DashaSystemId.CHARA,
        ctx,
        horizon_years=horizon_years,
        depth=depth,
        year_days=year_days,
        subdivider=EqualTwelfths,
    )


def sign_table(ctx: ChartContext) -> List[Dict[str, Any]]:
    """Per-sign lord, counting direction, distance and resulting years."""
    sched = schedule(DashaSystemId.CHARA, ctx)
    start, _, _ = chara_start(ctx)
    rows = []
    for s in range(12):
        lord = chara_lord(s, ctx)
        rows.append({
            "sign": SIGNS[s],
            "lord": lord,
            "lord_sign": SIGNS[ctx.planet_signs[lord]],
            "counting": "forward" if is_odd_sign(s) else "backward",
            "distance": chara_distance(s, ctx),
            "years": sched.years[s],
            "is_start": s == start,
        })
    return rows


# ───────────────────────── Jaimini karakas ─────────────────────────

KARAKA_NAMES = (
    "Atmakaraka", "Amatyakaraka", "Bhratrikaraka", "Matrikaraka",
    "Pitrikaraka", "Putrakaraka", "Gnatikaraka", "Darakaraka",
)
KARAKA_PLANETS = ("Sun", "Moon", "Mars", "Mercury", "Jupiter", "Venus", "Saturn", "Rahu")


def _karaka_degree(planet: str, lon: float) -> float:
    deg = wrap_deg(lon) % 30.0
    # Rahu counts from the end of its sign
    return 30.0 - deg if planet == "Rahu" else deg


def chara_karakas(ctx: ChartContext) -> List[Dict[str, Any]]:
    """
    The eight Chara karakas, Atmakaraka first.

    Planets are ranked by degrees travelled within their sign, highest first;
    equal degrees keep the natural planet order. Ketu takes no karaka role.
    """
    birth = ctx.birth
    lons = {"Sun": birth.sun_lon, "Moon": birth.moon_lon}
    for p in KARAKA_PLANETS[2:]:
        if p not in birth.planets:
            raise UnresolvableDirection(f"chara karakas: {p} longitude is required", loc=["planets", p])
        lons[p] = birth.planets[p]

    ranked = sorted(
        KARAKA_PLANETS,
        key=lambda p: (-_karaka_degree(p, lons[p]), KARAKA_PLANETS.index(p)),
    )
    return [
        {
            "karaka": KARAKA_NAMES[i],
            "planet": p,
            "degree": round(_karaka_degree(p, lons[p]), 4),
            "sign": SIGNS[sign_index(lons[p])],
        }
        for i, p in enumerate(ranked)
    ]


def karakamsha(ctx: ChartContext) -> int:
    """Navamsa sign index (Aries = 0) of the Atmakaraka."""
    ak = chara_karakas(ctx)[0]["planet"]
    lons = {"Sun": ctx.birth.sun_lon, "Moon": ctx.birth.moon_lon, **ctx.birth.planets}
    return int(wrap_deg(lons[ak]) * 9.0 / 30.0) % 12
