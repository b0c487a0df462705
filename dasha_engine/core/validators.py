# dasha_engine/core/validators.py
from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union
from zoneinfo import ZoneInfo

from dasha_engine.core.birth import BirthMoment
from dasha_engine.core.catalog import DashaSystemId
from dasha_engine.core.constants import PLANETS
from dasha_engine.core.errors import DashaError

# ───────────────────────── errors ─────────────────────────

class ValidationError(ValueError):
    """Structured request error; routes return .errors() as the 400 details."""
    def __init__(self, details: Union[str, Dict[str, Any], List[Dict[str, Any]]]):
        if isinstance(details, str):
            self._details = [{"loc": [], "msg": details, "type": "value_error"}]
            super().__init__(details)
        elif isinstance(details, dict):
            self._details = [details]
            super().__init__(details.get("msg", "validation_error"))
        else:
            self._details = list(details)
            super().__init__(self._details[0]["msg"] if self._details else "validation_error")

    def errors(self) -> List[Dict[str, Any]]:
        return list(self._details)


# ───────────────────────── helpers ─────────────────────────

def _err(loc: Union[List[str], str], msg: str, typ: str = "value_error") -> Dict[str, Any]:
    return {"loc": [loc] if isinstance(loc, str) else loc, "msg": msg, "type": typ}

def _as_float(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        x = float(v)
    except (TypeError, ValueError):
        return None
    if math.isnan(x) or math.isinf(x):
        return None
    return x

def _truthy(val: Any) -> Optional[bool]:
    if isinstance(val, bool):
        return val
    if val is None:
        return None
    s = str(val).strip().lower()
    if s in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "f", "no", "n", "off"}:
        return False
    return None

def _validate_iana_tz(tz: str, loc: Optional[List[str]] = None) -> str:
    try:
        ZoneInfo(tz)
    except Exception:
        raise ValidationError([{
            "loc": loc or ["tz"],
            "msg": "must be a valid IANA zone like 'Asia/Kolkata'",
            "type": "value_error",
        }])
    return tz


# ───────────────────────── atomic parsers ─────────────────────────

_TIME_RE = re.compile(r"^\s*(?P<h>\d{1,2}):(?P<m>\d{2})(?::(?P<s>\d{2})(?:\.(?P<f>\d+))?)?\s*$")

def _normalize_time_hms(s: str) -> str:
    """
    Accept 'HH:MM', 'HH:MM:SS' or 'HH:MM:SS.frac' (fraction kept to microseconds).
    '24:00' / '24:00:00' is allowed exactly and means midnight ending the day.
    """
    m = _TIME_RE.match(s or "")
    if not m:
        raise ValidationError(_err("time", "time must be 'HH:MM' or 'HH:MM:SS[.frac]'", "value_error.time"))
    hh = int(m.group("h")); mm = int(m.group("m"))
    ss = int(m.group("s") or 0); frac = (m.group("f") or "")[:6]
    if not (0 <= hh <= 24 and 0 <= mm <= 59 and 0 <= ss <= 59):
        raise ValidationError(_err("time", "time fields out of range", "value_error.time"))
    if hh == 24:
        if not (mm == 0 and ss == 0 and not frac.strip("0")):
            raise ValidationError(_err("time", "24:00:00 is only allowed exactly", "value_error.time"))
        return "24:00:00"
    return f"{hh:02d}:{mm:02d}:{ss:02d}" + (f".{frac}" if frac else "")

def parse_date(s: str) -> date:
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except Exception:
        raise ValidationError(_err("date", "date must be 'YYYY-MM-DD'", "value_error.date"))

def parse_latlon(lat: Any, lon: Any, lat_key="latitude", lon_key="longitude"):
    lat_f = _as_float(lat); lon_f = _as_float(lon)
    if lat_f is None or lon_f is None:
        raise ValidationError(_err([lat_key, lon_key], "latitude/longitude must be finite numbers", "type_error.float"))
    if not (-90.0 <= lat_f <= 90.0):
        raise ValidationError(_err(lat_key, "latitude must be between -90 and 90"))
    if not (-180.0 <= lon_f <= 180.0):
        raise ValidationError(_err(lon_key, "longitude must be between -180 and 180"))
    return float(lat_f), float(lon_f)

def parse_longitude(v: Any, loc: Union[List[str], str]) -> float:
    """Ecliptic longitude in [0, 360); out-of-range values are rejected, never wrapped."""
    x = _as_float(v)
    if x is None:
        raise ValidationError(_err(loc, "must be a finite number of degrees", "type_error.float"))
    if not (0.0 <= x < 360.0):
        raise ValidationError(_err(loc, "must lie in [0, 360)", "value_error.longitude"))
    return x

def parse_planets(val: Any, loc: str = "planets") -> Dict[str, float]:
    if val is None:
        return {}
    if not isinstance(val, dict):
        raise ValidationError(_err(loc, "must be an object of planet -> sidereal longitude", "type_error.dict"))
    known = {p.lower(): p for p in PLANETS}
    out: Dict[str, float] = {}
    errs: List[Dict[str, Any]] = []
    for k, v in val.items():
        name = known.get(str(k).strip().lower())
        if name is None:
            errs.append(_err([loc, str(k)], f"unknown planet; expected one of {', '.join(PLANETS)}"))
            continue
        try:
            out[name] = parse_longitude(v, [loc, name])
        except ValidationError as e:
            errs.extend(e.errors())
    if errs:
        raise ValidationError(errs)
    return out

def parse_instant(val: Any, loc: str = "at") -> datetime:
    """ISO-8601 date or datetime; naive values are read as UTC."""
    if not isinstance(val, str) or not val.strip():
        raise ValidationError(_err(loc, "must be an ISO-8601 date or datetime string", "value_error.datetime"))
    s = val.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        raise ValidationError(_err(loc, "must be an ISO-8601 date or datetime string", "value_error.datetime"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

def parse_systems(val: Any) -> Optional[List[DashaSystemId]]:
    if val is None:
        return None
    if isinstance(val, str):
        val = [s for s in val.split(",") if s.strip()]
    if not isinstance(val, list) or not val:
        raise ValidationError(_err("systems", "must be a non-empty list of system names", "type_error.list"))
    out: List[DashaSystemId] = []
    for s in val:
        try:
            sid = DashaSystemId.parse(s)
        except DashaError:
            raise ValidationError(_err("systems", f"unknown system '{s}'; expected one of "
                                       + ", ".join(x.value for x in DashaSystemId)))
        if sid not in out:
            out.append(sid)
    return out

def parse_system(val: Any) -> DashaSystemId:
    if val is None:
        raise ValidationError(_err("system", "required"))
    return parse_systems([val])[0]

def parse_depth(val: Any, default: int) -> int:
    if val is None:
        return default
    if isinstance(val, bool):
        raise ValidationError(_err("depth", "must be an integer 1..5", "type_error.integer"))
    try:
        d = int(val)
    except (TypeError, ValueError):
        raise ValidationError(_err("depth", "must be an integer 1..5", "type_error.integer"))
    if not (1 <= d <= 5):
        raise ValidationError(_err("depth", "must be an integer 1..5"))
    return d


# ───────────────────────── birth payload ─────────────────────────

def parse_birth_payload(body: Dict[str, Any]) -> BirthMoment:
    """
    Normalize the birth block shared by every /api/dasha* endpoint.

    Required: date, time, tz, latitude, longitude, sun_lon, moon_lon.
    Optional: ayanamsa_deg (default 0), ascendant_lon, planets, is_day_birth.
    Longitudes are sidereal degrees supplied by the caller's ephemeris.
    """
    if not isinstance(body, dict):
        raise ValidationError("payload must be an object")

    date_s = body.get("date")
    time_s = body.get("time")
    if not isinstance(date_s, str) or not date_s.strip():
        raise ValidationError(_err("date", "required string"))
    if not isinstance(time_s, str) or not time_s.strip():
        raise ValidationError(_err("time", "required string"))
    d = parse_date(date_s.strip())
    t_str = _normalize_time_hms(time_s)

    tz = body.get("tz") or body.get("place_tz") or body.get("timezone")
    if not isinstance(tz, str) or not tz.strip():
        raise ValidationError(_err("tz", "required string (IANA zone)"))
    tz = _validate_iana_tz(tz.strip(), ["tz"])

    lat, lon = parse_latlon(body.get("latitude"), body.get("longitude"))
    sun_lon = parse_longitude(body.get("sun_lon"), "sun_lon")
    moon_lon = parse_longitude(body.get("moon_lon"), "moon_lon")

    ayan = _as_float(body.get("ayanamsa_deg", 0.0))
    if ayan is None or not (-60.0 <= ayan <= 60.0):
        raise ValidationError(_err("ayanamsa_deg", "must be a number of degrees in [-60, 60]"))

    asc_raw = body.get("ascendant_lon")
    asc = parse_longitude(asc_raw, "ascendant_lon") if asc_raw is not None else None
    planets = parse_planets(body.get("planets"))

    is_day: Optional[bool] = None
    if body.get("is_day_birth") is not None:
        is_day = _truthy(body.get("is_day_birth"))
        if is_day is None:
            raise ValidationError(_err("is_day_birth", "must be a boolean", "type_error.bool"))

    if t_str == "24:00:00":
        d, t_str = d + timedelta(days=1), "00:00:00"

    try:
        return BirthMoment.from_civil(
            d.isoformat(), t_str, tz,
            latitude=lat, longitude=lon,
            sun_lon=sun_lon, moon_lon=moon_lon, ayanamsa_deg=float(ayan),
            ascendant_lon=asc, planets=planets, is_day_birth=is_day,
        )
    except ValueError as e:
        raise ValidationError(_err(["date", "time", "tz"], str(e)))

def parse_chart_id(val: Any) -> Optional[str]:
    if val is None:
        return None
    s = str(val).strip()
    if not s or len(s) > 128:
        raise ValidationError(_err("chart_id", "must be a non-empty string of at most 128 characters"))
    return s

def parse_transits(val: Any) -> Dict[str, float]:
    if not isinstance(val, dict) or not val:
        raise ValidationError(_err("transits", "required object of planet -> sidereal longitude"))
    return parse_planets(val, loc="transits")
