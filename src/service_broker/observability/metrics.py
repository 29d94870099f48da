"""Prometheus metrics for the broker.

Usage::

    from service_broker.observability.metrics import OSB_ACTIONS_TOTAL

    OSB_ACTIONS_TOTAL.labels(action="provision").inc()
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)

# ---------------------------------------------------------------------------
# OSB operations
# ---------------------------------------------------------------------------

OSB_ACTIONS_TOTAL = Counter(
    "osb_broker_actions_total",
    "OSB operations received, by action.",
    labelnames=["action"],
    registry=REGISTRY,
)

OSB_ACTION_ERRORS_TOTAL = Counter(
    "osb_broker_action_errors_total",
    "OSB operations that failed, by action and broker error code.",
    labelnames=["action", "code"],
    registry=REGISTRY,
)

OSB_ACTION_DURATION_SECONDS = Histogram(
    "osb_broker_action_duration_seconds",
    "Time spent completing an OSB operation, including lock waits.",
    labelnames=["action"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0),
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
