# dasha_engine/core/sudarshana.py
"""
Sudarshana Chakra: three parallel sign tracks (Lagna, Moon, Sun).

Every track advances one sign per Dasha year from its natal sign and loops
every twelve years. There is no subdivision: each track is a flat DashaTree
of depth 1, built with the same top-level chaining as every other system.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from dasha_engine.core.birth import ChartContext
from dasha_engine.core.catalog import DashaSystemId, entry, schedule
from dasha_engine.core.constants import DASHA_YEAR_DAYS, SIGNS, year_us
from dasha_engine.core.direction import Direction, resolve
from dasha_engine.core.errors import NonPositiveDuration
from dasha_engine.core.periods import DashaTree, build_top_level, from_us, to_us

__all__ = ["SudarshanaChakra", "build_chakra", "TRACKS"]

log = logging.getLogger(__name__)

TRACKS = ("lagna", "moon", "sun")


@dataclass(frozen=True)
class SudarshanaChakra:
    birth_us: int
    year_us: int
    tracks: Mapping[str, DashaTree]
    direction: Direction

    @property
    def birth(self) -> datetime:
        return from_us(self.birth_us)

    @property
    def horizon_end_us(self) -> int:
        return min(t.horizon_end_us for t in self.tracks.values())

    @property
    def horizon_end(self) -> datetime:
        return from_us(self.horizon_end_us)

    @property
    def horizon_years(self) -> float:
        return (self.horizon_end_us - self.birth_us) / self.year_us

    def sign_for_year(self, track: str, age: int) -> str:
        """Sign active on `track` during the year that starts at completed age `age`."""
        return SIGNS[(self.direction.tracks[track] + int(age)) % 12]

    def yearly_progression(self, age_from: int = 0, age_to: int = 11) -> List[Dict[str, Any]]:
        if age_to < age_from:
            age_from, age_to = age_to, age_from
        rows = []
        for age in range(max(0, int(age_from)), int(age_to) + 1):
            start = self.birth_us + age * self.year_us
            row: Dict[str, Any] = {
                "age": age,
                "running_year": age + 1,
                "start": from_us(start).isoformat(),
                "end": from_us(start + self.year_us).isoformat(),
            }
            for name in self.tracks:
                row[name] = self.sign_for_year(name, age)
            rows.append(row)
        return rows

    def to_dict(self, max_years: Optional[int] = None) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "system": DashaSystemId.SUDARSHANA.value,
            "birth": self.birth.isoformat(),
            "horizon_end": self.horizon_end.isoformat(),
            "natal_signs": {k: SIGNS[v] for k, v in self.direction.tracks.items()},
        }
        last = int(self.horizon_years) - 1 if max_years is None else int(max_years) - 1
        out["progression"] = self.yearly_progression(0, max(0, min(last, 11)))
        return out


def build_chakra(
    ctx: ChartContext,
    *,
    horizon_years: float = 120.0,
    year_days: float = DASHA_YEAR_DAYS,
) -> SudarshanaChakra:
    if not horizon_years or horizon_years <= 0:
        raise NonPositiveDuration("horizon_years must be > 0", loc=["horizon_years"])
    system = DashaSystemId.SUDARSHANA
    e = entry(system)
    sched = schedule(system, ctx)
    base = resolve(system, ctx, sched)
    yus = year_us(year_days)
    birth_us = to_us(ctx.birth.birth_utc)
    horizon_us = birth_us + int(round(float(horizon_years) * yus))

    trees: Dict[str, DashaTree] = {}
    for name, sign in base.tracks.items():
        d = replace(base, start_index=sign, tracks={name: sign})
        roots = build_top_level(sched, d, birth_us=birth_us, horizon_us=horizon_us, yus=yus, expand=None)
        trees[name] = DashaTree(
            system=system,
            birth_us=birth_us,
            horizon_end_us=roots[-1].end_us,
            depth=1,
            year_us=yus,
            roots=roots,
            direction=d,
            schedule=sched,
            level_names=e.level_names,
        )
    log.debug("built sudarshana chakra: tracks=%s", ",".join(trees))
    return SudarshanaChakra(birth_us=birth_us, year_us=yus, tracks=trees, direction=base)
