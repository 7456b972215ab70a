"""
Prometheus metrics for the lending position exporter.

Exposes per-wallet position gauges together with process and service metrics.
"""

import time

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    GCCollector,
    PlatformCollector,
    ProcessCollector,
)

from lending_exporter.protocols.base import WalletPosition

# Create a custom registry to avoid conflicts
REGISTRY = CollectorRegistry()

# Process-wide default metrics (memory, CPU, fds, GC)
ProcessCollector(registry=REGISTRY)
PlatformCollector(registry=REGISTRY)
GCCollector(registry=REGISTRY)

# Application info
APP_INFO = Info(
    "lending_exporter",
    "Lending position exporter application info",
    registry=REGISTRY,
)
APP_INFO.info({
    "version": "1.0.0",
    "name": "lending-position-exporter",
})

# Position metrics
SUPPLY_USD = Gauge(
    "supply",
    "deposited amount",
    ["wallet"],
    registry=REGISTRY,
)

BORROW_USD = Gauge(
    "borrow",
    "borrowed amount",
    ["wallet"],
    registry=REGISTRY,
)

BORROW_LIMIT_USD = Gauge(
    "borrow_limit",
    "borrow limit amount",
    ["wallet"],
    registry=REGISTRY,
)

BORROW_LIMIT_PERCENT = Gauge(
    "borrow_limit_percent",
    "borrowed percentage",
    ["wallet"],
    registry=REGISTRY,
)

# RPC metrics
RPC_REQUESTS_TOTAL = Counter(
    "lending_exporter_rpc_requests_total",
    "Total number of RPC requests",
    ["method", "status"],
    registry=REGISTRY,
)

RPC_REQUEST_DURATION_SECONDS = Histogram(
    "lending_exporter_rpc_request_duration_seconds",
    "RPC request duration in seconds",
    ["method"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY,
)

RPC_ERRORS_TOTAL = Counter(
    "lending_exporter_rpc_errors_total",
    "Total number of RPC errors",
    ["method", "error_type"],
    registry=REGISTRY,
)

# Cache metrics
CACHE_ENTRIES = Gauge(
    "lending_exporter_cache_entries",
    "Number of entries in the lookup cache",
    registry=REGISTRY,
)

CACHE_HIT_RATE_PERCENT = Gauge(
    "lending_exporter_cache_hit_rate_percent",
    "Lookup cache hit rate",
    registry=REGISTRY,
)

# Poll cycle metrics
WALLET_UPDATE_FAILURES_TOTAL = Counter(
    "lending_exporter_wallet_update_failures_total",
    "Total number of failed wallet position updates",
    ["wallet"],
    registry=REGISTRY,
)

POLL_CYCLE_DURATION_SECONDS = Histogram(
    "lending_exporter_poll_cycle_duration_seconds",
    "Duration of poll cycles in seconds",
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
    registry=REGISTRY,
)

POLL_CYCLES_TOTAL = Counter(
    "lending_exporter_poll_cycles_total",
    "Total number of poll cycles",
    ["status"],
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Get all metrics in Prometheus format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get the Prometheus content type."""
    return CONTENT_TYPE_LATEST


class MetricsPublisher:
    """Writes computed wallet positions to the position gauges.

    The percent gauge tracks borrowed against the borrow limit when limit
    computation is enabled, and against the supplied amount otherwise.
    """

    def __init__(self, compute_limit: bool = True):
        self._compute_limit = compute_limit

    def publish(self, wallet_name: str, position: WalletPosition) -> None:
        SUPPLY_USD.labels(wallet=wallet_name).set(position.supplied)
        BORROW_USD.labels(wallet=wallet_name).set(position.borrowed)
        if self._compute_limit:
            BORROW_LIMIT_USD.labels(wallet=wallet_name).set(position.limit)
            percent = position.limit_used_percent
        else:
            percent = position.borrow_percent
        BORROW_LIMIT_PERCENT.labels(wallet=wallet_name).set(percent)

    def record_failure(self, wallet_name: str) -> None:
        WALLET_UPDATE_FAILURES_TOTAL.labels(wallet=wallet_name).inc()

    def update_cache_stats(self, stats: dict) -> None:
        CACHE_ENTRIES.set(stats["entries"])
        CACHE_HIT_RATE_PERCENT.set(stats["hit_rate_percent"])


class PollCycleTimer:
    """Context manager for timing poll cycles."""

    def __init__(self):
        self._start_time = None
        # Set to "partial" when some wallets failed but the cycle completed
        self.status = "success"

    def __enter__(self):
        self._start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self._start_time
        POLL_CYCLE_DURATION_SECONDS.observe(duration)

        status = self.status if exc_type is None else "error"
        POLL_CYCLES_TOTAL.labels(status=status).inc()

        return False  # Don't suppress exceptions
