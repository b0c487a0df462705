# tests/test_engine.py
from __future__ import annotations

from datetime import timedelta

import pytest

from dasha_engine.core.catalog import DashaSystemId
from dasha_engine.core.constants import year_us
from dasha_engine.core.engine import DashaEngine
from dasha_engine.core.errors import HorizonExceeded, InstantOutOfRange, UnresolvableDirection
from dasha_engine.core.periods import DashaTree, to_us
from dasha_engine.core.sudarshana import SudarshanaChakra

YUS = year_us()


@pytest.fixture
def engine():
    return DashaEngine(horizon_years=120, max_horizon_years=1000, workers=4, cache_capacity=8)


def test_builds_all_six_systems(engine, birth):
    results = engine.build_all(birth)
    assert list(results) == list(DashaSystemId)
    assert all(r.ok for r in results.values())
    assert isinstance(results[DashaSystemId.SUDARSHANA].tree, SudarshanaChakra)
    assert isinstance(results[DashaSystemId.CHARA].tree, DashaTree)
    assert results[DashaSystemId.ASHTOTTARI].applicability is not None


def test_one_failing_system_does_not_stop_the_others(engine, make_birth):
    birth = make_birth(ascendant_lon=None, planets={})
    results = engine.build_all(birth)
    chara = results[DashaSystemId.CHARA]
    assert not chara.ok
    assert isinstance(chara.error, UnresolvableDirection)
    err = chara.error_dict()
    assert err["error"] == "dasha_calculation_failed"
    assert err["code"] == "unresolvable_direction"
    others = [r for s, r in results.items() if s is not DashaSystemId.CHARA]
    assert all(r.ok for r in others)


def test_failures_are_not_cached(engine, make_birth):
    birth = make_birth(ascendant_lon=None, planets={})
    engine.build_all(birth, chart_id="c1")
    assert engine.cache.get("c1", "chara", birth.fingerprint()) is None
    assert engine.cache.get("c1", "vimshottari", birth.fingerprint()) is not None


def test_cache_hit_returns_same_tree(engine, birth):
    a = engine.build_all(birth, ["vimshottari"], chart_id="c1")[DashaSystemId.VIMSHOTTARI]
    b = engine.build_all(birth, ["vimshottari"], chart_id="c1")[DashaSystemId.VIMSHOTTARI]
    assert a.tree is b.tree
    assert engine.cache.stats()["hits"] >= 1


def test_changed_birth_data_replaces_whole_chart(engine, birth, make_birth):
    engine.build_all(birth, chart_id="c1")
    assert len(engine.cache) == 6
    moved = make_birth(moon_lon=100.0)
    res = engine.build_all(moved, ["yogini"], chart_id="c1")
    assert res[DashaSystemId.YOGINI].ok
    # the old fingerprint's systems are gone, not mixed with the new chart
    assert len(engine.cache) == 1
    assert engine.cache.get("c1", "vimshottari", birth.fingerprint()) is None


def test_invalidate(engine, birth):
    engine.build_all(birth, chart_id="c1")
    assert engine.invalidate("c1") == 6
    assert "c1" not in engine.cache
    assert engine.invalidate("c1") == 0


def test_tree_raises_system_error(engine, make_birth):
    with pytest.raises(UnresolvableDirection):
        engine.tree(make_birth(ascendant_lon=None, planets={}), "chara")


def test_active_extends_horizon_on_demand(birth):
    eng = DashaEngine(horizon_years=50, max_horizon_years=400, workers=1)
    at = birth.birth_utc + timedelta(days=365.2425 * 150)
    res = eng.active(birth, "vimshottari", at, depth=2, chart_id="c1")
    assert [n.depth for n in res.path] == [1, 2]
    assert res.tree.horizon_years > 150
    # the extended tree replaced the cached one
    cached = eng.cache.get("c1", "vimshottari", birth.fingerprint())
    assert cached.tree is res.tree


def test_active_beyond_max_horizon_raises(birth):
    eng = DashaEngine(horizon_years=50, max_horizon_years=100, workers=1)
    with pytest.raises(HorizonExceeded):
        eng.active(birth, "vimshottari", birth.birth_utc + timedelta(days=365.2425 * 500))


def test_cover_rebuilds_until_the_instant_fits(birth):
    eng = DashaEngine(horizon_years=50, max_horizon_years=400, workers=1)
    first = eng.cover(birth, "yogini", birth.birth_utc)
    assert 50 <= first.horizon_years < 130
    tree = eng.cover(birth, "yogini", birth.birth_utc + timedelta(days=365.2425 * 130))
    assert tree.horizon_years > 130
    assert eng.tree(birth, "yogini") is tree
    assert eng.max_horizon_end_us(birth) == to_us(birth.birth_utc) + 400 * YUS


def test_active_before_birth_raises(engine, birth):
    with pytest.raises(InstantOutOfRange):
        engine.active(birth, "yogini", birth.birth_utc - timedelta(days=1))


def test_active_accepts_epoch_microseconds(engine, birth):
    t = int(birth.birth_utc.timestamp()) * 1_000_000 + 10 * YUS
    res = engine.active(birth, DashaSystemId.VIMSHOTTARI, t)
    assert res.at.tzinfo is not None
    assert res.path[0].ruler == "Venus"


def test_active_sudarshana_returns_tracks(engine, birth):
    res = engine.active(birth, "sudarshana", birth.birth_utc + timedelta(days=400))
    assert res.path == []
    assert {k: n.ruler for k, n in res.tracks.items()} == {
        "lagna": "Taurus", "moon": "Taurus", "sun": "Aquarius",
    }


def test_from_config():
    eng = DashaEngine.from_config({"horizon_years": 80, "max_horizon_years": 40, "workers": 0,
                                   "default_depth": 9})
    assert eng.horizon_years == 80.0
    assert eng.max_horizon_years == 80.0
    assert eng.workers == 1
    assert eng.default_depth == 5
