# dasha_engine/utils/config.py
import os
import yaml

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "..", "..", "config", "defaults.yaml")

DEFAULTS = {
    "horizon_years": 120.0,
    "max_horizon_years": 1000.0,
    "year_days": 365.2425,
    "workers": 6,
    "cache_capacity": 256,
    "default_depth": 3,
    "sandhi_lookahead_days": 365,
}

# env var -> (key, type)
_ENV_OVERRIDES = {
    "DASHA_HORIZON_YEARS": ("horizon_years", float),
    "DASHA_MAX_HORIZON_YEARS": ("max_horizon_years", float),
    "DASHA_YEAR_DAYS": ("year_days", float),
    "DASHA_WORKERS": ("workers", int),
    "DASHA_CACHE_CAPACITY": ("cache_capacity", int),
    "DASHA_DEFAULT_DEPTH": ("default_depth", int),
    "DASHA_SANDHI_LOOKAHEAD_DAYS": ("sandhi_lookahead_days", int),
}


class AttrDict(dict):
    """Dict that also supports attribute access: cfg.workers and cfg['workers'] both work."""
    def __getattr__(self, item):
        try:
            return self[item]
        except KeyError as e:
            raise AttributeError(item) from e
    def __setattr__(self, key, value):
        self[key] = value


def _to_attr(obj):
    if isinstance(obj, dict):
        return AttrDict({k: _to_attr(v) for k, v in obj.items()})
    if isinstance(obj, list):
        return [_to_attr(x) for x in obj]
    return obj


def load_config(path: str = None):
    """
    Load engine settings from YAML at `path` (default: DASHA_CONFIG, then
    config/defaults.yaml), fill missing keys from DEFAULTS and apply env
    overrides:
      - DASHA_HORIZON_YEARS, DASHA_MAX_HORIZON_YEARS, DASHA_YEAR_DAYS
      - DASHA_WORKERS, DASHA_CACHE_CAPACITY, DASHA_DEFAULT_DEPTH
      - DASHA_SANDHI_LOOKAHEAD_DAYS
    A missing file is not an error; a malformed value in an env var is.
    Returns an AttrDict.
    """
    path = path or os.getenv("DASHA_CONFIG") or DEFAULT_CONFIG_PATH
    data = dict(DEFAULTS)
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            data.update(yaml.safe_load(f) or {})

    for env, (key, cast) in _ENV_OVERRIDES.items():
        raw = os.getenv(env)
        if raw not in (None, ""):
            try:
                data[key] = cast(raw)
            except ValueError as e:
                raise ValueError(f"{env} must be {cast.__name__}, got {raw!r}") from e

    if float(data["max_horizon_years"]) < float(data["horizon_years"]):
        data["max_horizon_years"] = data["horizon_years"]
    data["workers"] = max(1, int(data["workers"]))
    data["cache_capacity"] = max(1, int(data["cache_capacity"]))
    return _to_attr(data)
