# dasha_engine/utils/metrics.py
from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Gauge, Histogram

# keep names stable: dashboards key on them
MET_REQUESTS: Final = Counter("dasha_api_requests_total", "API requests", ["route"])
REQ_LATENCY: Final = Histogram("dasha_request_seconds", "API request latency", ["route"])
GAUGE_APP_UP: Final = Gauge("dasha_app_up", "1 if app is running")

MET_BUILDS: Final = Counter("dasha_tree_builds_total", "Dasha trees built", ["system"])
MET_BUILD_FAILURES: Final = Counter("dasha_tree_build_failures_total", "Failed Dasha builds", ["system", "error"])
MET_HORIZON_EXTENSIONS: Final = Counter(
    "dasha_horizon_extensions_total", "Trees rebuilt with a longer horizon", ["system"]
)
MET_CACHE: Final = Counter("dasha_cache_lookups_total", "Tree cache lookups", ["result"])
BUILD_LATENCY: Final = Histogram("dasha_build_seconds", "Time to build one system for one chart", ["system"])
