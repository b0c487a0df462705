# dasha_engine/api/routes.py
"""
Dasha Engine: API Routes
- Catalog:      GET  /api/dasha/systems
- Trees:        POST /api/dasha
- Queries:      POST /api/dasha/active, /api/dasha/sandhi, /api/dasha/transits
- Sudarshana:   POST /api/dasha/sudarshana
- Cache:        POST /api/dasha/invalidate
- Ops:          GET  /api/health, /api/config

Every POST carries the birth payload (see core.validators.parse_birth_payload)
plus endpoint-specific fields. Errors use one JSON shape:
    {"ok": false, "error": <code>, "details": [...]}
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple, Union

from flask import Blueprint, jsonify, request

from dasha_engine.version import VERSION
from dasha_engine.utils.ratelimit import rate_limit, systems_cost
from dasha_engine.api.helpers import (
    active_result_dict,
    context_dict,
    get_engine,
    path_dict,
    system_result_dict,
)
from dasha_engine.core.birth import BirthMoment, ChartContext, chart_context
from dasha_engine.core.catalog import CATALOG, DashaSystemId
from dasha_engine.core.constants import US_PER_DAY
from dasha_engine.core.engine import ActiveResult
from dasha_engine.core.errors import DashaError
from dasha_engine.core.periods import from_us, to_us
from dasha_engine.core.sandhi import current_sandhi, find_sandhis, volatility_score
from dasha_engine.core.transit_overlay import overlay
from dasha_engine.core.validators import (
    ValidationError,
    _as_float,
    _err,
    parse_birth_payload,
    parse_chart_id,
    parse_depth,
    parse_instant,
    parse_system,
    parse_systems,
    parse_transits,
)

log = logging.getLogger(__name__)
api = Blueprint("api", __name__)

DEBUG_VERBOSE = os.getenv("DASHA_DEBUG_VERBOSE", "0").lower() in ("1", "true", "yes", "on")

# ── per-endpoint rate-limit caps (calls per minute, env-overridable) ───────────
_RL = lambda k, d: int(os.getenv(k, str(d)))
RL_SYSTEMS    = _RL("DASHA_RL_SYSTEMS_PER_MIN",    60)
RL_DASHA      = _RL("DASHA_RL_DASHA_PER_MIN",      24)
RL_ACTIVE     = _RL("DASHA_RL_ACTIVE_PER_MIN",     60)
RL_SANDHI     = _RL("DASHA_RL_SANDHI_PER_MIN",     24)
RL_TRANSITS   = _RL("DASHA_RL_TRANSITS_PER_MIN",   24)
RL_SUDARSHANA = _RL("DASHA_RL_SUDARSHANA_PER_MIN", 30)
RL_INVALIDATE = _RL("DASHA_RL_INVALIDATE_PER_MIN", 30)


# ───────────────────────── helpers ─────────────────────────
def _json_error(code: str, details: Any = None, http: int = 400):
    out: Dict[str, Any] = {"ok": False, "error": code}
    if details is not None:
        out["details"] = details
    return jsonify(out), http


def _birth(body: Dict[str, Any]) -> Tuple[BirthMoment, ChartContext, Optional[str]]:
    birth = parse_birth_payload(body)
    return birth, chart_context(birth), parse_chart_id(body.get("chart_id"))


def _instant(body: Dict[str, Any], key: str = "at", default_now: bool = True) -> Optional[datetime]:
    raw = body.get(key)
    if raw is None:
        return datetime.now(timezone.utc) if default_now else None
    return parse_instant(raw, key)


def _int_field(body: Dict[str, Any], key: str, default: int, lo: int, hi: int) -> int:
    raw = body.get(key)
    if raw is None:
        return default
    x = _as_float(raw)
    if x is None or x != int(x) or not (lo <= int(x) <= hi):
        raise ValidationError(_err(key, f"must be an integer {lo}..{hi}", "type_error.integer"))
    return int(x)


def _tree_system(body: Dict[str, Any]) -> DashaSystemId:
    """Queries that walk a period tree; the Sudarshana chakra has no sub-periods."""
    system = parse_system(body.get("system", DashaSystemId.VIMSHOTTARI.value))
    if system is DashaSystemId.SUDARSHANA:
        raise ValidationError(_err("system", "not supported for sudarshana; use /api/dasha/sudarshana"))
    return system


# ───────────────────────── ops ─────────────────────────
@api.get("/api/health")
def health():
    return jsonify({"ok": True, "status": "up", "version": VERSION}), 200


@api.get("/api/config")
@rate_limit(1)
def config_info():
    eng = get_engine()
    return jsonify(
        {
            "ok": True,
            "horizon_years": eng.horizon_years,
            "max_horizon_years": eng.max_horizon_years,
            "year_days": eng.year_days,
            "workers": eng.workers,
            "cache": {"capacity": eng.cache.capacity, **eng.cache.stats()},
            "systems": [s.value for s in DashaSystemId],
            "version": VERSION,
        }
    ), 200


# ───────────────────────── catalog ─────────────────────────
@api.get("/api/dasha/systems")
@rate_limit(RL_SYSTEMS)
def systems_catalog():
    return jsonify({"ok": True, "systems": [CATALOG[s].to_dict() for s in DashaSystemId]}), 200


# ───────────────────────── trees ─────────────────────────
@api.post("/api/dasha")
@rate_limit(RL_DASHA, cost_fn=systems_cost)
def dasha():
    body = request.get_json(force=True) or {}
    eng = get_engine()
    try:
        birth, ctx, chart_id = _birth(body)
        systems = parse_systems(body.get("systems"))
        depth = parse_depth(body.get("depth"), eng.default_depth)
        at = _instant(body, default_now=False)
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    except DashaError as e:
        return _json_error(e.code, e.errors(), 400)

    actives: Dict[DashaSystemId, Union[ActiveResult, DashaError]] = {}
    try:
        results = eng.build_all(birth, systems, chart_id=chart_id, ctx=ctx)
        if at is not None:
            for s, r in results.items():
                if not r.ok:
                    continue
                try:
                    actives[s] = eng.active(birth, s, at, depth=depth, chart_id=chart_id)
                except DashaError as e:
                    actives[s] = e
    except DashaError as e:
        return _json_error(e.code, e.errors(), 400)
    except Exception as e:
        log.exception("dasha build failed")
        return _json_error("dasha_internal", str(e) if DEBUG_VERBOSE else "internal_error", 500)

    failed = [s.value for s, r in results.items() if not r.ok]
    return jsonify(
        {
            "ok": True,
            "chart_id": chart_id or birth.fingerprint(),
            "chart": context_dict(ctx),
            "depth": depth,
            "systems": {s.value: system_result_dict(r, depth, actives.get(s), ctx) for s, r in results.items()},
            "failed": failed,
        }
    ), 200


# ───────────────────────── queries ─────────────────────────
@api.post("/api/dasha/active")
@rate_limit(RL_ACTIVE)
def dasha_active():
    body = request.get_json(force=True) or {}
    eng = get_engine()
    try:
        birth, _ctx, chart_id = _birth(body)
        system = parse_system(body.get("system", DashaSystemId.VIMSHOTTARI.value))
        depth = parse_depth(body.get("depth"), eng.default_depth)
        at = _instant(body)
        res = eng.active(birth, system, at, depth=depth, chart_id=chart_id)
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    except DashaError as e:
        return _json_error(e.code, e.errors(), 400)
    except Exception as e:
        log.exception("active period lookup failed")
        return _json_error("active_internal", str(e) if DEBUG_VERBOSE else "internal_error", 500)
    return jsonify({"ok": True, **active_result_dict(res)}), 200


@api.post("/api/dasha/sandhi")
@rate_limit(RL_SANDHI)
def dasha_sandhi():
    body = request.get_json(force=True) or {}
    eng = get_engine()
    try:
        birth, ctx, chart_id = _birth(body)
        system = _tree_system(body)
        max_level = _int_field(body, "max_level", 2, 1, 5)
        lookahead = _int_field(body, "lookahead_days", eng.sandhi_lookahead_days, 1, 36525)
        at = _instant(body)
        t_us = to_us(at)
        # rejects `at` before birth or past the maximum horizon; the lookahead stops at that limit
        eng.active(birth, system, at, depth=1, chart_id=chart_id)
        end_us = max(t_us, min(t_us + lookahead * US_PER_DAY, eng.max_horizon_end_us(birth) - 1))
        tree = eng.cover(birth, system, end_us, chart_id=chart_id, ctx=ctx)
        upcoming = [s for s in find_sandhis(tree, t_us, end_us, max_level=max_level, ctx=ctx)
                    if s.transition_us > t_us]
        current = current_sandhi(tree, t_us, ctx=ctx, max_level=max_level)
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    except DashaError as e:
        return _json_error(e.code, e.errors(), 400)
    except Exception as e:
        log.exception("sandhi analysis failed")
        return _json_error("sandhi_internal", str(e) if DEBUG_VERBOSE else "internal_error", 500)

    return jsonify(
        {
            "ok": True,
            "system": system.value,
            "at": at.isoformat(),
            "lookahead_days": lookahead,
            "window_end": from_us(end_us).isoformat(),
            "in_sandhi": current is not None,
            "current": current.to_dict() if current is not None else None,
            "upcoming": [s.to_dict() for s in upcoming],
            "volatility_score": volatility_score(current, upcoming, t_us, lookahead),
        }
    ), 200


@api.post("/api/dasha/transits")
@rate_limit(RL_TRANSITS)
def dasha_transits():
    body = request.get_json(force=True) or {}
    eng = get_engine()
    try:
        birth, ctx, chart_id = _birth(body)
        system = _tree_system(body)
        depth = parse_depth(body.get("depth"), eng.default_depth)
        transits = parse_transits(body.get("transits"))
        at = _instant(body)
        res = eng.active(birth, system, at, depth=depth, chart_id=chart_id)
        result = overlay(res.path, ctx, transits, system=system)
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    except DashaError as e:
        return _json_error(e.code, e.errors(), 400)
    except Exception as e:
        log.exception("transit overlay failed")
        return _json_error("transits_internal", str(e) if DEBUG_VERBOSE else "internal_error", 500)

    return jsonify(
        {
            "ok": True,
            "system": system.value,
            "at": at.isoformat(),
            "path": path_dict(res.path, res.tree),
            "overlay": result.to_dict(),
        }
    ), 200


@api.post("/api/dasha/sudarshana")
@rate_limit(RL_SUDARSHANA)
def dasha_sudarshana():
    body = request.get_json(force=True) or {}
    eng = get_engine()
    try:
        birth, ctx, chart_id = _birth(body)
        age_from = _int_field(body, "age_from", 0, 0, 999)
        age_to = _int_field(body, "age_to", age_from + 11, 0, 999)
        at = _instant(body, default_now=False)
        if at is not None:
            res = eng.active(birth, DashaSystemId.SUDARSHANA, at, chart_id=chart_id)
            chakra = res.tree
            active = {k: n.ruler for k, n in res.tracks.items()}
        else:
            chakra = eng.tree(birth, DashaSystemId.SUDARSHANA, chart_id=chart_id, ctx=ctx)
            active = None
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    except DashaError as e:
        return _json_error(e.code, e.errors(), 400)
    except Exception as e:
        log.exception("sudarshana failed")
        return _json_error("sudarshana_internal", str(e) if DEBUG_VERBOSE else "internal_error", 500)

    return jsonify(
        {
            "ok": True,
            "natal_signs": chakra.to_dict(max_years=1)["natal_signs"],
            "progression": chakra.yearly_progression(age_from, age_to),
            "active": active,
        }
    ), 200


# ───────────────────────── cache ─────────────────────────
@api.post("/api/dasha/invalidate")
@rate_limit(RL_INVALIDATE)
def dasha_invalidate():
    body = request.get_json(force=True) or {}
    try:
        chart_id = parse_chart_id(body.get("chart_id"))
        if chart_id is None:
            raise ValidationError(_err("chart_id", "required"))
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    n = get_engine().invalidate(chart_id)
    return jsonify({"ok": True, "chart_id": chart_id, "invalidated": n}), 200
