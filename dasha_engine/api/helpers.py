# dasha_engine/api/helpers.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from flask import current_app

from dasha_engine.core.birth import ChartContext
from dasha_engine.core.catalog import DashaSystemId, entry
from dasha_engine.core.chara import chara_karakas, karakamsha, sign_table
from dasha_engine.core.constants import SIGNS
from dasha_engine.core.engine import ActiveResult, Built, DashaEngine, SystemResult
from dasha_engine.core.errors import DashaError
from dasha_engine.core.periods import DashaTree, PeriodNode
from dasha_engine.core.sudarshana import SudarshanaChakra
from dasha_engine.utils.config import load_config

ENGINE_KEY = "dasha_engine"


def get_engine() -> DashaEngine:
    """Engine stored on the app by create_app(); built lazily for bare blueprints (tests)."""
    eng = current_app.extensions.get(ENGINE_KEY)
    if eng is None:
        eng = DashaEngine.from_config(load_config())
        current_app.extensions[ENGINE_KEY] = eng
    return eng


def context_dict(ctx: ChartContext) -> Dict[str, Any]:
    return {
        "birth_utc": ctx.birth.birth_utc.isoformat(),
        "birth_local": ctx.birth.local_time().isoformat(),
        "tz": ctx.birth.tz_name,
        "utc_offset_seconds": ctx.birth.utc_offset_seconds,
        "nakshatra": ctx.nakshatra.to_dict(),
        "moon_sign": SIGNS[ctx.moon_sign],
        "sun_sign": SIGNS[ctx.sun_sign],
        "lagna_sign": SIGNS[ctx.lagna_sign] if ctx.lagna_sign is not None else None,
        "is_day_birth": ctx.is_day_birth,
        "paksha": ctx.paksha,
        "warnings": list(ctx.birth.warnings),
    }


def node_dict(node: PeriodNode, tree: Built) -> Dict[str, Any]:
    names = tree.level_names if isinstance(tree, DashaTree) else ("Year",)
    return node.to_dict(yus=tree.year_us, max_depth=node.depth, level_names=names)


def path_dict(path: List[PeriodNode], tree: Built) -> List[Dict[str, Any]]:
    return [node_dict(n, tree) for n in path]


def _active_block(active: Union[ActiveResult, DashaError]) -> Dict[str, Any]:
    if isinstance(active, DashaError):
        return {"error": active.code, "details": active.errors()}
    if active.tracks:
        return {"tracks": {k: node_dict(n, active.tree) for k, n in active.tracks.items()}}
    return {"path": path_dict(active.path, active.tree)}


def jaimini_dict(ctx: ChartContext) -> Dict[str, Any]:
    """Chara karakas, Karakamsha and the per-sign duration table."""
    try:
        karakas = chara_karakas(ctx)
    except DashaError as e:
        return {"error": e.code, "details": e.errors(), "sign_table": sign_table(ctx)}
    return {
        "karakas": karakas,
        "karakamsha": SIGNS[karakamsha(ctx)],
        "sign_table": sign_table(ctx),
    }


def system_result_dict(res: SystemResult, depth: int,
                       active: Optional[Union[ActiveResult, DashaError]] = None,
                       ctx: Optional[ChartContext] = None) -> Dict[str, Any]:
    e = entry(res.system)
    out: Dict[str, Any] = {
        "system": res.system.value,
        "ok": res.ok,
        "level_names": list(e.level_names),
        "applicability": res.applicability.to_dict() if res.applicability is not None else None,
    }
    if not res.ok:
        out.update(res.error_dict() or {})
        return out
    tree = res.tree
    if isinstance(tree, SudarshanaChakra):
        out.update(tree.to_dict())
    else:
        out.update(tree.to_dict(max_depth=depth))
    if res.system is DashaSystemId.CHARA and ctx is not None:
        out["jaimini"] = jaimini_dict(ctx)
    if active is not None:
        out["active"] = _active_block(active)
    return out


def active_result_dict(res: ActiveResult) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "system": res.system.value,
        "at": res.at.isoformat(),
        "horizon_end": res.tree.horizon_end.isoformat(),
    }
    if res.tracks:
        out["tracks"] = {k: node_dict(n, res.tree) for k, n in res.tracks.items()}
    else:
        out["path"] = path_dict(res.path, res.tree)
        out["rulers"] = [n.ruler for n in res.path]
    return out
