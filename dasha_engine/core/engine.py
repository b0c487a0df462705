# dasha_engine/core/engine.py
"""
DashaEngine: builds, caches and queries the six systems for a chart.

Systems of one chart are independent and are built on a thread pool; the
only shared state is the read-only catalog and the cache, which guards itself
with a lock. A failure in one system is captured on that system's result and
never stops the others.

Queries past the built horizon rebuild the tree with a doubled horizon (up to
`max_horizon_years`) instead of clamping or failing.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from time import perf_counter
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from dasha_engine.core.applicability import ApplicabilityResult, evaluate
from dasha_engine.core.birth import BirthMoment, ChartContext, chart_context
from dasha_engine.core.catalog import DashaSystemId
from dasha_engine.core.chara import build_chara_tree
from dasha_engine.core.constants import DASHA_YEAR_DAYS, year_us
from dasha_engine.core.errors import DashaError, HorizonExceeded
from dasha_engine.core.locator import Instant, active_path, active_sudarshana, instant_us
from dasha_engine.core.periods import DashaTree, PeriodNode, build_tree, from_us, to_us
from dasha_engine.core.sudarshana import SudarshanaChakra, build_chakra
from dasha_engine.utils.cache import TreeCache
from dasha_engine.utils.metrics import (
    BUILD_LATENCY,
    MET_BUILD_FAILURES,
    MET_BUILDS,
    MET_CACHE,
    MET_HORIZON_EXTENSIONS,
)

__all__ = ["DashaEngine", "SystemResult", "ActiveResult", "Built"]

log = logging.getLogger(__name__)

Built = Union[DashaTree, SudarshanaChakra]


@dataclass(frozen=True)
class SystemResult:
    system: DashaSystemId
    tree: Optional[Built]
    applicability: Optional[ApplicabilityResult]
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def error_dict(self) -> Optional[Dict[str, Any]]:
        if self.error is None:
            return None
        if isinstance(self.error, DashaError):
            return {"error": "dasha_calculation_failed", "code": self.error.code, "details": self.error.errors()}
        return {"error": "dasha_calculation_failed", "code": "internal_error",
                "details": [{"msg": str(self.error), "type": type(self.error).__name__}]}


@dataclass(frozen=True)
class ActiveResult:
    system: DashaSystemId
    tree: Built
    at: datetime
    path: List[PeriodNode] = field(default_factory=list)
    tracks: Dict[str, PeriodNode] = field(default_factory=dict)


class DashaEngine:
    def __init__(
        self,
        *,
        horizon_years: float = 120.0,
        max_horizon_years: float = 1000.0,
        year_days: float = DASHA_YEAR_DAYS,
        workers: int = 6,
        cache: Optional[TreeCache] = None,
        cache_capacity: int = 256,
        default_depth: int = 3,
        sandhi_lookahead_days: int = 365,
    ):
        if horizon_years <= 0:
            raise ValueError("horizon_years must be > 0")
        self.horizon_years = float(horizon_years)
        self.max_horizon_years = max(float(max_horizon_years), self.horizon_years)
        self.year_days = float(year_days)
        self.workers = max(1, int(workers))
        self.cache = cache if cache is not None else TreeCache(cache_capacity)
        self.default_depth = max(1, min(int(default_depth), 5))
        self.sandhi_lookahead_days = max(1, int(sandhi_lookahead_days))

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "DashaEngine":
        return cls(
            horizon_years=float(cfg.get("horizon_years", 120.0)),
            max_horizon_years=float(cfg.get("max_horizon_years", 1000.0)),
            year_days=float(cfg.get("year_days", DASHA_YEAR_DAYS)),
            workers=int(cfg.get("workers", 6)),
            cache_capacity=int(cfg.get("cache_capacity", 256)),
            default_depth=int(cfg.get("default_depth", 3)),
            sandhi_lookahead_days=int(cfg.get("sandhi_lookahead_days", 365)),
        )

    # ───────────────────────── building ─────────────────────────

    def build(self, system: DashaSystemId, ctx: ChartContext, horizon_years: Optional[float] = None) -> Built:
        """Build one system, uncached."""
        system = DashaSystemId(system)
        h = self.horizon_years if horizon_years is None else float(horizon_years)
        t0 = perf_counter()
        if system is DashaSystemId.SUDARSHANA:
            built: Built = build_chakra(ctx, horizon_years=h, year_days=self.year_days)
        elif system is DashaSystemId.CHARA:
            built = build_chara_tree(ctx, horizon_years=h, year_days=self.year_days)
        else:
            built = build_tree(system, ctx, horizon_years=h, year_days=self.year_days)
        BUILD_LATENCY.labels(system=system.value).observe(perf_counter() - t0)
        MET_BUILDS.labels(system=system.value).inc()
        return built

    def _build_one(self, system: DashaSystemId, ctx: ChartContext) -> SystemResult:
        applicability = None
        try:
            applicability = evaluate(system, ctx)
            tree = self.build(system, ctx)
        except DashaError as e:
            MET_BUILD_FAILURES.labels(system=system.value, error=e.code).inc()
            log.warning("%s build failed: %s", system.value, e)
            return SystemResult(system, None, applicability, e)
        except Exception as e:
            MET_BUILD_FAILURES.labels(system=system.value, error="internal_error").inc()
            log.warning("%s build failed unexpectedly", system.value, exc_info=True)
            return SystemResult(system, None, applicability, e)
        return SystemResult(system, tree, applicability)

    def build_all(
        self,
        birth: BirthMoment,
        systems: Optional[Iterable[Union[str, DashaSystemId]]] = None,
        *,
        chart_id: Optional[str] = None,
        ctx: Optional[ChartContext] = None,
    ) -> Dict[DashaSystemId, SystemResult]:
        """
        Build (or fetch from cache) every requested system for one chart.

        Input errors of the chart itself (e.g. an invalid Moon longitude)
        raise; failures specific to one system are returned on its result.
        """
        wanted = _normalise_systems(systems)
        ctx = ctx or chart_context(birth)
        fp = birth.fingerprint()
        cid = chart_id or fp

        out: Dict[DashaSystemId, SystemResult] = {}
        cached = self.cache.get_many(cid, [s.value for s in wanted], fp)
        for s in wanted:
            if s.value in cached:
                MET_CACHE.labels(result="hit").inc()
                out[s] = cached[s.value]
        missing = [s for s in wanted if s not in out]
        if missing:
            MET_CACHE.labels(result="miss").inc(len(missing))
            fresh = self._run(missing, lambda s: self._build_one(s, ctx))
            # only successful builds are cached; failures are retried next time
            self.cache.set_many(cid, fp, {s.value: r for s, r in fresh.items() if r.ok})
            out.update(fresh)
            log.debug("chart %s: built %s", cid[:12], ",".join(s.value for s in missing))
        return {s: out[s] for s in wanted}

    def _run(self, systems: List[DashaSystemId], fn: Callable[[DashaSystemId], SystemResult]
             ) -> Dict[DashaSystemId, SystemResult]:
        if len(systems) == 1 or self.workers == 1:
            return {s: fn(s) for s in systems}
        with ThreadPoolExecutor(max_workers=min(self.workers, len(systems)),
                                thread_name_prefix="dasha") as pool:
            futures = {s: pool.submit(fn, s) for s in systems}
            return {s: f.result() for s, f in futures.items()}

    def tree(self, birth: BirthMoment, system: Union[str, DashaSystemId], *,
             chart_id: Optional[str] = None, ctx: Optional[ChartContext] = None) -> Built:
        """Single system; raises the system's DashaError instead of returning it."""
        system = DashaSystemId.parse(system)
        res = self.build_all(birth, [system], chart_id=chart_id, ctx=ctx)[system]
        if res.error is not None:
            raise res.error
        return res.tree

    def invalidate(self, chart_id: str) -> int:
        n = self.cache.invalidate(chart_id)
        log.info("invalidated %d cached systems for chart %s", n, chart_id[:12])
        return n

    # ───────────────────────── querying ─────────────────────────

    def _extend(self, birth: BirthMoment, ctx: ChartContext, system: DashaSystemId,
                built: Built, t_us: int, cid: str) -> Built:
        h = built.horizon_years
        while True:
            if h >= self.max_horizon_years:
                raise HorizonExceeded(
                    f"instant lies beyond the maximum horizon of {self.max_horizon_years:g} years",
                    loc=["at"], max_horizon_years=self.max_horizon_years,
                )
            h = min(h * 2.0, self.max_horizon_years)
            built = self.build(system, ctx, horizon_years=h)
            if t_us < built.horizon_end_us:
                break
        MET_HORIZON_EXTENSIONS.labels(system=system.value).inc()
        log.info("%s horizon extended to %.0f years for chart %s", system.value, h, cid[:12])
        applicability = evaluate(system, ctx)
        self.cache.set(cid, system.value, birth.fingerprint(), SystemResult(system, built, applicability))
        return built

    def max_horizon_end_us(self, birth: BirthMoment) -> int:
        """First instant no tree of this chart may reach."""
        return to_us(birth.birth_utc) + int(round(self.max_horizon_years * year_us(self.year_days)))

    def cover(
        self,
        birth: BirthMoment,
        system: Union[str, DashaSystemId],
        until: Instant,
        *,
        chart_id: Optional[str] = None,
        ctx: Optional[ChartContext] = None,
    ) -> Built:
        """Cached tree whose horizon contains `until`, rebuilt with a longer horizon if needed."""
        system = DashaSystemId.parse(system)
        ctx = ctx or chart_context(birth)
        cid = chart_id or birth.fingerprint()
        built = self.tree(birth, system, chart_id=cid, ctx=ctx)
        t_us = instant_us(until)
        if t_us >= built.horizon_end_us and t_us >= built.birth_us:
            built = self._extend(birth, ctx, system, built, t_us, cid)
        return built

    def active(
        self,
        birth: BirthMoment,
        system: Union[str, DashaSystemId],
        at: Instant,
        *,
        depth: Optional[int] = None,
        chart_id: Optional[str] = None,
    ) -> ActiveResult:
        """Active period path (or Sudarshana tracks) at `at`, extending the horizon on demand."""
        system = DashaSystemId.parse(system)
        built = self.cover(birth, system, at, chart_id=chart_id)
        t_us = instant_us(at)

        when = at if isinstance(at, datetime) else from_us(t_us)
        if isinstance(built, SudarshanaChakra):
            return ActiveResult(system, built, when, tracks=active_sudarshana(built, t_us))
        return ActiveResult(system, built, when, path=active_path(built, t_us, depth))


def _normalise_systems(systems: Optional[Iterable[Union[str, DashaSystemId]]]) -> List[DashaSystemId]:
    if systems is None:
        return list(DashaSystemId)
    out: List[DashaSystemId] = []
    for s in systems:
        sid = DashaSystemId.parse(s)
        if sid not in out:
            out.append(sid)
    return out
