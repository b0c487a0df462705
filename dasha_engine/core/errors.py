# dasha_engine/core/errors.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

__all__ = [
    "DashaError",
    "InvalidLongitude",
    "EmptyRulerSequence",
    "NonPositiveDuration",
    "InstantOutOfRange",
    "HorizonExceeded",
    "UnresolvableDirection",
]

# ───────────────────────── errors ─────────────────────────

class DashaError(ValueError):
    """
    Base for every recoverable engine error.

    Mirrors ValidationError's shape so routes can return `e.errors()` as-is.
    `code` is the stable machine-readable name used in JSON responses.
    """
    code = "dasha_error"

    def __init__(self, msg: str, *, loc: Optional[List[str]] = None, **context: Any):
        super().__init__(msg)
        self.msg = msg
        self.loc = list(loc or [])
        self.context = context

    def errors(self) -> List[Dict[str, Any]]:
        out: Dict[str, Any] = {"loc": list(self.loc), "msg": self.msg, "type": self.code}
        if self.context:
            out["ctx"] = {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in self.context.items()}
        return [out]


class InvalidLongitude(DashaError):
    code = "invalid_longitude"


class EmptyRulerSequence(DashaError):
    code = "empty_ruler_sequence"


class NonPositiveDuration(DashaError):
    code = "non_positive_duration"


class InstantOutOfRange(DashaError):
    code = "instant_out_of_range"


class HorizonExceeded(InstantOutOfRange):
    """Query instant lies at/after the built horizon; rebuild with a longer one."""
    code = "horizon_exceeded"


class UnresolvableDirection(DashaError):
    code = "unresolvable_direction"
