# tests/test_validators.py
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from dasha_engine.core.catalog import DashaSystemId
from dasha_engine.core.validators import (
    ValidationError,
    parse_birth_payload,
    parse_chart_id,
    parse_depth,
    parse_instant,
    parse_planets,
    parse_systems,
    parse_transits,
)


def test_happy_path(payload):
    b = parse_birth_payload(payload)
    assert b.birth_utc == datetime(1990, 1, 1, 6, 0, tzinfo=timezone.utc)
    assert b.moon_lon == 5.48
    assert b.ascendant_lon == 15.0
    assert b.planets["Saturn"] == 295.0
    assert b.is_day_birth is True


def test_local_zone_converted_to_utc(payload):
    payload.update(tz="Asia/Kolkata", time="11:30")
    assert parse_birth_payload(payload).birth_utc == datetime(1990, 1, 1, 6, 0, tzinfo=timezone.utc)


def test_place_tz_alias(payload):
    payload["place_tz"] = payload.pop("tz")
    assert parse_birth_payload(payload).tz_name == "UTC"


def test_missing_moon_longitude(payload):
    del payload["moon_lon"]
    with pytest.raises(ValidationError) as ei:
        parse_birth_payload(payload)
    assert ei.value.errors()[0]["loc"] == ["moon_lon"]


@pytest.mark.parametrize("val", [360.0, -0.5, "abc", float("nan")])
def test_longitude_out_of_range_is_rejected(payload, val):
    payload["sun_lon"] = val
    with pytest.raises(ValidationError) as ei:
        parse_birth_payload(payload)
    assert ei.value.errors()[0]["loc"] == ["sun_lon"]


def test_bad_zone(payload):
    payload["tz"] = "Mars/Olympus"
    with pytest.raises(ValidationError) as ei:
        parse_birth_payload(payload)
    assert ei.value.errors()[0]["loc"] == ["tz"]


def test_midnight_24_rolls_to_next_day(payload):
    payload["time"] = "24:00"
    assert parse_birth_payload(payload).birth_utc == datetime(1990, 1, 2, tzinfo=timezone.utc)


def test_24_with_minutes_rejected(payload):
    payload["time"] = "24:01"
    with pytest.raises(ValidationError):
        parse_birth_payload(payload)


def test_is_day_birth_strings(payload):
    payload["is_day_birth"] = "no"
    assert parse_birth_payload(payload).is_day_birth is False
    payload["is_day_birth"] = "sometimes"
    with pytest.raises(ValidationError):
        parse_birth_payload(payload)


def test_planets_collects_every_error():
    with pytest.raises(ValidationError) as ei:
        parse_planets({"Pluto": 10.0, "mars": 400.0, "venus": 12.5})
    locs = [e["loc"] for e in ei.value.errors()]
    assert locs == [["planets", "Pluto"], ["planets", "Mars"]]
    assert parse_planets({"jupiter": 1.0}) == {"Jupiter": 1.0}


def test_parse_systems():
    assert parse_systems(None) is None
    assert parse_systems("vimshottari,yogini,vimshottari") == [DashaSystemId.VIMSHOTTARI, DashaSystemId.YOGINI]
    with pytest.raises(ValidationError) as ei:
        parse_systems(["vimshottari", "narayana"])
    assert "narayana" in ei.value.errors()[0]["msg"]
    with pytest.raises(ValidationError):
        parse_systems([])


@pytest.mark.parametrize("val", [0, 6, "x", True])
def test_parse_depth_rejects(val):
    with pytest.raises(ValidationError):
        parse_depth(val, 3)


def test_parse_depth_default_and_value():
    assert parse_depth(None, 3) == 3
    assert parse_depth("5", 3) == 5


def test_parse_instant():
    assert parse_instant("2000-01-01T00:00:00Z") == datetime(2000, 1, 1, tzinfo=timezone.utc)
    assert parse_instant("2000-01-01T05:30:00+05:30") == datetime(2000, 1, 1, tzinfo=timezone.utc)
    assert parse_instant("2000-01-01") == datetime(2000, 1, 1, tzinfo=timezone.utc)
    with pytest.raises(ValidationError):
        parse_instant("yesterday")


def test_chart_id_and_transits():
    assert parse_chart_id(" abc ") == "abc"
    with pytest.raises(ValidationError):
        parse_chart_id("x" * 200)
    with pytest.raises(ValidationError):
        parse_transits({})
    with pytest.raises(ValidationError) as ei:
        parse_transits({"Sun": 361})
    assert ei.value.errors()[0]["loc"] == ["transits", "Sun"]
