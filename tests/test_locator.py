# tests/test_locator.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, strategies as st

from dasha_engine.core.catalog import DashaSystemId
from dasha_engine.core.constants import year_us
from dasha_engine.core.errors import HorizonExceeded, InstantOutOfRange
from dasha_engine.core.locator import active_path, active_sudarshana, instant_us, period_at_level
from dasha_engine.core.periods import build_tree
from dasha_engine.core.sudarshana import build_chakra

YUS = year_us()


@pytest.fixture
def vim(ctx):
    return build_tree(DashaSystemId.VIMSHOTTARI, ctx)


def test_path_at_birth_is_ketu_all_the_way_down(vim):
    path = active_path(vim, vim.birth_us)
    assert [n.ruler for n in path] == ["Ketu"] * 5
    assert [n.depth for n in path] == [1, 2, 3, 4, 5]


def test_depth_limits_path(vim):
    assert len(active_path(vim, vim.birth_us, depth=2)) == 2
    assert period_at_level(vim, vim.birth_us, 3).depth == 3


def test_boundaries_are_half_open(vim):
    venus = vim.roots[1]
    assert active_path(vim, venus.start_us, depth=1)[0] is venus
    assert active_path(vim, venus.start_us - 1, depth=1)[0] is vim.roots[0]


def test_pre_birth_instant_raises(vim):
    with pytest.raises(InstantOutOfRange) as ei:
        active_path(vim, vim.birth - timedelta(seconds=1))
    assert ei.value.errors()[0]["loc"] == ["at"]
    assert not isinstance(ei.value, HorizonExceeded)


def test_past_horizon_raises_horizon_exceeded(vim):
    with pytest.raises(HorizonExceeded):
        active_path(vim, vim.horizon_end_us)
    # callers catching the broader error still see it
    with pytest.raises(InstantOutOfRange):
        active_path(vim, vim.horizon_end_us + YUS)


def test_naive_datetime_is_utc():
    aware = datetime(2000, 1, 1, 12, tzinfo=timezone.utc)
    assert instant_us(aware.replace(tzinfo=None)) == instant_us(aware)


@given(frac=st.floats(min_value=0.0, max_value=1.0, exclude_max=True, allow_nan=False))
def test_every_instant_has_a_nested_path(make_ctx, frac):
    tree = build_tree(DashaSystemId.VIMSHOTTARI, make_ctx())
    t = tree.birth_us + int((tree.horizon_end_us - tree.birth_us) * frac)
    path = active_path(tree, t)
    assert len(path) == tree.depth
    for i, node in enumerate(path):
        assert node.contains_us(t)
        assert node.depth == i + 1
        if i:
            assert node.parent is path[i - 1]


def test_yogini_for_revati_starts_with_dhanya(make_ctx):
    tree = build_tree(DashaSystemId.YOGINI, make_ctx(moon_lon=350.0))
    path = active_path(tree, tree.birth_us)
    assert path[0].ruler == "Dhanya"
    # Revati is 26.25 nakshatras in: three quarters of Dhanya's 3 years remain
    assert path[0].years(YUS) == pytest.approx(0.75 * 3, abs=1e-9)


def test_sudarshana_tracks_advance_one_sign_per_year(ctx):
    chakra = build_chakra(ctx)
    at_birth = active_sudarshana(chakra, chakra.birth_us)
    assert {k: n.ruler for k, n in at_birth.items()} == {"lagna": "Aries", "moon": "Aries", "sun": "Capricorn"}
    later = active_sudarshana(chakra, chakra.birth_us + YUS)
    assert {k: n.ruler for k, n in later.items()} == {"lagna": "Taurus", "moon": "Taurus", "sun": "Aquarius"}
    with pytest.raises(InstantOutOfRange):
        active_sudarshana(chakra, chakra.birth_us - 1)
