"""
Prometheus metrics definitions for HabitFlow.

Organized by category:
- HTTP/API metrics: Request counts, latency, in-flight requests
- Ledger metrics: Completions recorded and reversed
- Gamification metrics: XP and coins awarded, achievements, challenges, powerups
- Storage metrics: Retried transactions

Metrics are exposed at the /metrics endpoint for Prometheus scraping.
"""

import logging
from prometheus_client import Counter, Gauge, Histogram, Info

from habitflow import __version__

logger = logging.getLogger(__name__)

# =============================================================================
# HTTP/API Metrics
# =============================================================================

http_requests_total = Counter(
    "habitflow_http_requests_total",
    "Total HTTP requests received",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "habitflow_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0],
)

http_requests_in_progress = Gauge(
    "habitflow_http_requests_in_progress",
    "Number of HTTP requests currently being processed",
    ["method", "endpoint"],
)

# =============================================================================
# Ledger Metrics
# =============================================================================

completions_total = Counter(
    "habitflow_completions_total",
    "Completion ledger writes",
    ["action"],  # action: recorded/removed/duplicate
)

# =============================================================================
# Gamification Metrics
# =============================================================================

xp_awarded_total = Counter(
    "habitflow_xp_awarded_total",
    "Total XP awarded",
    ["source"],
)

coins_awarded_total = Counter(
    "habitflow_coins_awarded_total",
    "Total coins awarded",
    ["source"],
)

achievements_unlocked_total = Counter(
    "habitflow_achievements_unlocked_total",
    "Total achievements unlocked",
    ["achievement"],
)

challenge_rewards_total = Counter(
    "habitflow_challenge_rewards_total",
    "Challenge completion rewards granted",
)

powerup_purchases_total = Counter(
    "habitflow_powerup_purchases_total",
    "Powerup purchases",
    ["powerup", "status"],  # status: success/insufficient_funds
)

level_ups_total = Counter(
    "habitflow_level_ups_total",
    "Level-ups across all users",
)

# =============================================================================
# Storage Metrics
# =============================================================================

storage_retries_total = Counter(
    "habitflow_storage_retries_total",
    "Retried storage operations",
    ["operation"],
)

# =============================================================================
# Application Info
# =============================================================================

app_info = Info(
    "habitflow_app",
    "Application information",
)


def init_metrics(store_backend: str) -> None:
    """
    Initialize metrics with application information.

    Called once at application startup.
    """
    app_info.info({"version": __version__, "store_backend": store_backend})
    logger.info("Prometheus metrics initialized")


def record_retry(operation: str) -> None:
    storage_retries_total.labels(operation=operation).inc()


def record_reward(source: str, xp: int, coins: int) -> None:
    """Count XP and coins granted from one ledger event (negative amounts are ignored)"""
    if xp > 0:
        xp_awarded_total.labels(source=source).inc(xp)
    if coins > 0:
        coins_awarded_total.labels(source=source).inc(coins)
