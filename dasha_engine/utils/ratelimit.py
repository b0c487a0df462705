# dasha_engine/utils/ratelimit.py
from __future__ import annotations

"""
Per-client token-bucket rate limiter for the Flask routes.

- Bucket key: X-API-Key / bearer token when present, else the client IP;
  always scoped to the route.
- Request cost can depend on the request (see `systems_cost`).
- 429 responses use the same JSON error shape as every other route and carry
  Retry-After plus X-RateLimit-* headers.
- Env toggles:
    DASHA_RL_DISABLE    -> disable limiter entirely
    DASHA_RL_ALLOWLIST  -> comma-separated client ids/IPs that skip limits
"""

import math
import os
import time
from dataclasses import dataclass
from functools import wraps
from threading import RLock
from typing import Any, Callable, Dict, Optional

from flask import jsonify, make_response, request

__all__ = ["rate_limit", "client_key", "systems_cost", "reset_buckets"]

_buckets: Dict[str, "Bucket"] = {}
_lock = RLock()

_IDLE_SECONDS = 180.0
_SWEEP_EVERY = 30.0
_last_sweep = 0.0


def _disabled() -> bool:
    return os.getenv("DASHA_RL_DISABLE", "0").lower() in ("1", "true", "yes", "on")


def _allowlist() -> set:
    return {s.strip() for s in os.getenv("DASHA_RL_ALLOWLIST", "").split(",") if s.strip()}


def _client_ip(req) -> str:
    xff = req.headers.get("X-Forwarded-For", "")
    return (xff.split(",")[0].strip() if xff else "") or (req.remote_addr or "anon")


def client_key(req) -> str:
    ident = (req.headers.get("X-API-Key") or "").strip()
    if not ident:
        auth = (req.headers.get("Authorization") or "").strip()
        if auth.lower().startswith("bearer "):
            ident = auth.split(None, 1)[1]
    return f"{ident or _client_ip(req)}:{req.endpoint or req.path or '*'}"


def systems_cost(req) -> float:
    """Building all six systems costs 3 tokens, a single system 1."""
    body = req.get_json(silent=True) or {}
    systems = body.get("systems") if isinstance(body, dict) else None
    n = len(systems) if isinstance(systems, list) and systems else 6
    return max(1.0, n / 2.0)


@dataclass
class Bucket:
    tokens: float
    capacity: float
    rate: float      # tokens per second
    ts: float        # last refill (monotonic)

    def refill(self, now: float) -> None:
        if now > self.ts:
            self.tokens = min(self.capacity, self.tokens + (now - self.ts) * self.rate)
            self.ts = now


def _sweep(now: float) -> None:
    global _last_sweep
    if now - _last_sweep < _SWEEP_EVERY:
        return
    _last_sweep = now
    for k in [k for k, b in _buckets.items() if b.tokens >= b.capacity and now - b.ts > _IDLE_SECONDS]:
        _buckets.pop(k, None)


def reset_buckets() -> None:
    with _lock:
        _buckets.clear()


def rate_limit(
    max_per_minute: int,
    key_fn: Optional[Callable[[Any], str]] = None,
    *,
    burst: Optional[int] = None,
    cost_fn: Optional[Callable[[Any], float]] = None,
):
    """Limit a view to `max_per_minute` tokens per client (burst defaults to the same)."""
    if max_per_minute <= 0:
        raise ValueError("max_per_minute must be > 0")
    limit = int(max_per_minute)
    capacity = float(burst if burst is not None else limit)
    rate = limit / 60.0
    policy = f"{limit};w=60;burst={int(capacity)}"

    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            if _disabled() or request.method in ("HEAD", "OPTIONS"):
                return f(*args, **kwargs)
            key = (key_fn or client_key)(request)
            if key in _allowlist() or key.split(":", 1)[0] in _allowlist():
                return f(*args, **kwargs)

            now = time.monotonic()
            cost = max(0.0, float(cost_fn(request)) if cost_fn else 1.0)
            with _lock:
                _sweep(now)
                b = _buckets.get(key)
                if b is None:
                    b = _buckets[key] = Bucket(tokens=capacity, capacity=capacity, rate=rate, ts=now)
                else:
                    b.refill(now)
                if b.tokens + 1e-12 < cost:
                    retry = max(1, math.ceil((cost - b.tokens) / b.rate))
                    resp = make_response(jsonify({
                        "ok": False,
                        "error": "rate_limited",
                        "details": {"retry_after_seconds": retry},
                    }), 429)
                    resp.headers["Retry-After"] = str(retry)
                    resp.headers["X-RateLimit-Limit"] = str(limit)
                    resp.headers["X-RateLimit-Remaining"] = "0"
                    resp.headers["X-RateLimit-Policy"] = policy
                    return resp
                b.tokens -= cost
                remaining = max(0, int(b.tokens))

            resp = make_response(f(*args, **kwargs))
            resp.headers.setdefault("X-RateLimit-Limit", str(limit))
            resp.headers["X-RateLimit-Remaining"] = str(remaining)
            resp.headers.setdefault("X-RateLimit-Policy", policy)
            return resp

        return wrapper

    return decorator
