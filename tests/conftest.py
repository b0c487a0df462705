# tests/conftest.py
from __future__ import annotations

"""
Pytest configuration for the Dasha engine suite.

- Registers Hypothesis profiles for local dev and CI.
- Freezes the process TZ to UTC (birth times always carry an IANA zone).
- Provides birth/chart factories with explicit day/night so no test depends
  on the Sun-altitude computation unless it asks for it.
- Provides a Flask test client with rate limiting switched off.
"""

import os
from typing import Any, Dict, Optional

import pytest
from hypothesis import settings, HealthCheck

from dasha_engine.core.birth import BirthMoment, chart_context


# ──────────────────────────────────────────────────────────────────────────────
# Hypothesis profiles
# ──────────────────────────────────────────────────────────────────────────────
settings.register_profile(
    "dev",
    settings(
        deadline=None,           # avoid flaky timeouts on slower runners
        max_examples=60,         # fast local runs
        suppress_health_check=[HealthCheck.too_slow],
    ),
)
settings.register_profile(
    "ci",
    settings(
        deadline=None,
        max_examples=120,        # a bit more coverage in CI
        suppress_health_check=[HealthCheck.too_slow],
    ),
)

_profile = (
    "ci"
    if (os.getenv("CI") or os.getenv("GITHUB_ACTIONS"))
    else os.getenv("HYPOTHESIS_PROFILE", "dev")
)
settings.load_profile(_profile)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "slow: mark test as slow")
    config.addinivalue_line("filterwarnings", "ignore::DeprecationWarning")


def pytest_report_header(config: pytest.Config) -> str:
    return f"Hypothesis profile: '{_profile}'"


# ──────────────────────────────────────────────────────────────────────────────
# Chart data
# ──────────────────────────────────────────────────────────────────────────────

# Sidereal longitudes of a complete chart. Signs: Sun/Mercury/Saturn Capricorn,
# Moon Aries (Ashwini, 41.1 % elapsed), Mars Gemini, Jupiter Cancer,
# Venus/Rahu Aquarius (Ketu Leo), Lagna Aries.
FULL_PLANETS: Dict[str, float] = {
    "Mars": 65.0,
    "Mercury": 290.0,
    "Jupiter": 100.0,
    "Venus": 310.0,
    "Saturn": 295.0,
    "Rahu": 305.0,
}

BASE_PAYLOAD: Dict[str, Any] = {
    "date": "1990-01-01",
    "time": "06:00:00",
    "tz": "UTC",
    "latitude": 28.6139,
    "longitude": 77.2090,
    "sun_lon": 280.0,
    "moon_lon": 5.48,
    "ayanamsa_deg": 23.72,
    "ascendant_lon": 15.0,
    "planets": dict(FULL_PLANETS),
    "is_day_birth": True,
}


def _make_birth(
    moon_lon: float = 5.48,
    sun_lon: float = 280.0,
    *,
    date: str = "1990-01-01",
    time: str = "06:00:00",
    tz: str = "UTC",
    ascendant_lon: Optional[float] = 15.0,
    planets: Optional[Dict[str, float]] = None,
    is_day_birth: Optional[bool] = True,
) -> BirthMoment:
    return BirthMoment.from_civil(
        date, time, tz,
        latitude=28.6139, longitude=77.2090,
        sun_lon=sun_lon, moon_lon=moon_lon, ayanamsa_deg=23.72,
        ascendant_lon=ascendant_lon,
        planets=dict(FULL_PLANETS) if planets is None else planets,
        is_day_birth=is_day_birth,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Global fixtures
# ──────────────────────────────────────────────────────────────────────────────

@pytest.fixture(scope="session", autouse=True)
def freeze_tz_env():
    """Process TZ is UTC so nothing accidentally depends on the host zone."""
    prev = os.environ.get("TZ")
    os.environ["TZ"] = "UTC"
    try:
        yield
    finally:
        if prev is None:
            os.environ.pop("TZ", None)
        else:
            os.environ["TZ"] = prev


@pytest.fixture(scope="session")
def make_birth():
    """Factory: make_birth(moon_lon=..., sun_lon=..., ascendant_lon=..., planets=..., ...)."""
    return _make_birth


@pytest.fixture(scope="session")
def make_ctx():
    """Factory returning the ChartContext of make_birth(**kwargs)."""
    def _ctx(*args, **kwargs):
        return chart_context(_make_birth(*args, **kwargs))
    return _ctx


@pytest.fixture
def birth():
    return _make_birth()


@pytest.fixture
def ctx(birth):
    return chart_context(birth)


@pytest.fixture
def payload():
    out = dict(BASE_PAYLOAD)
    out["planets"] = dict(FULL_PLANETS)
    return out


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("DASHA_RL_DISABLE", "1")
    from dasha_engine.main import create_app

    app = create_app()
    app.testing = True
    return app.test_client()
