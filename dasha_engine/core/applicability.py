# dasha_engine/core/applicability.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Set

from dasha_engine.core.birth import ChartContext
from dasha_engine.core.catalog import DashaSystemId
from dasha_engine.core.constants import houses_from, is_odd_sign, sign_lord
from dasha_engine.core.direction import chara_start, kalachakra_group
from dasha_engine.core.errors import UnresolvableDirection

__all__ = ["Reason", "ApplicabilityResult", "evaluate"]

KENDRA_TRIKONA = frozenset({1, 4, 5, 7, 9, 10})


class Reason(str, Enum):
    ALWAYS_APPLICABLE = "ALWAYS_APPLICABLE"
    DAY_BIRTH_KRISHNA_PAKSHA = "DAY_BIRTH_KRISHNA_PAKSHA"
    NIGHT_BIRTH_SHUKLA_PAKSHA = "NIGHT_BIRTH_SHUKLA_PAKSHA"
    PAKSHA_MISMATCH = "PAKSHA_MISMATCH"
    RAHU_KENDRA_TRIKONA_FROM_LAGNA_LORD = "RAHU_KENDRA_TRIKONA_FROM_LAGNA_LORD"
    SUPPLEMENTARY_SIGN_DASHA = "SUPPLEMENTARY_SIGN_DASHA"
    LAGNA_ODD_DIRECT = "LAGNA_ODD_DIRECT"
    LAGNA_EVEN_INDIRECT = "LAGNA_EVEN_INDIRECT"
    LAGNA_LORD_IN_LAGNA = "LAGNA_LORD_IN_LAGNA"
    LAGNA_UNKNOWN = "LAGNA_UNKNOWN"
    SAVYA_GROUP = "SAVYA_GROUP"
    APSAVYA_GROUP = "APSAVYA_GROUP"


@dataclass(frozen=True)
class ApplicabilityResult:
    is_applicable: bool
    reason_codes: FrozenSet[Reason]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_applicable": self.is_applicable,
            "reason_codes": sorted(r.value for r in self.reason_codes),
        }


def _ashtottari(ctx: ChartContext) -> ApplicabilityResult:
    reasons: Set[Reason] = set()
    krishna = ctx.paksha == "krishna"
    if ctx.is_day_birth and krishna:
        reasons.add(Reason.DAY_BIRTH_KRISHNA_PAKSHA)
    elif not ctx.is_day_birth and not krishna:
        reasons.add(Reason.NIGHT_BIRTH_SHUKLA_PAKSHA)
    else:
        reasons.add(Reason.PAKSHA_MISMATCH)

    rahu = ctx.planet_signs.get("Rahu")
    if ctx.lagna_sign is not None and rahu is not None:
        lord_sign = ctx.planet_signs.get(sign_lord(ctx.lagna_sign))
        if lord_sign is not None and houses_from(lord_sign, rahu) in KENDRA_TRIKONA:
            reasons.add(Reason.RAHU_KENDRA_TRIKONA_FROM_LAGNA_LORD)

    return ApplicabilityResult(Reason.PAKSHA_MISMATCH not in reasons, frozenset(reasons))


def _chara(ctx: ChartContext) -> ApplicabilityResult:
    reasons: Set[Reason] = {Reason.SUPPLEMENTARY_SIGN_DASHA}
    if ctx.lagna_sign is None:
        reasons.add(Reason.LAGNA_UNKNOWN)
        return ApplicabilityResult(True, frozenset(reasons))
    reasons.add(Reason.LAGNA_ODD_DIRECT if is_odd_sign(ctx.lagna_sign) else Reason.LAGNA_EVEN_INDIRECT)
    try:
        _, _, carved = chara_start(ctx)
    except UnresolvableDirection:
        # the tree build reports this; applicability only annotates
        carved = False
    if carved:
        reasons.add(Reason.LAGNA_LORD_IN_LAGNA)
    return ApplicabilityResult(True, frozenset(reasons))


def evaluate(system: DashaSystemId, ctx: ChartContext) -> ApplicabilityResult:
    """Annotate how well `system` suits this chart. Never blocks a computation."""
    system = DashaSystemId(system)
    if system is DashaSystemId.ASHTOTTARI:
        return _ashtottari(ctx)
    if system is DashaSystemId.CHARA:
        return _chara(ctx)
    reasons: Set[Reason] = {Reason.ALWAYS_APPLICABLE}
    if system is DashaSystemId.KALACHAKRA:
        _, _, savya = kalachakra_group(ctx.nakshatra.index)
        reasons.add(Reason.SAVYA_GROUP if savya else Reason.APSAVYA_GROUP)
    return ApplicabilityResult(True, frozenset(reasons))
