"""Observability infrastructure for the broker.

Provides structured logging, Prometheus metrics, and request-ID
correlation middleware.
"""

from .logging import configure_logging, get_logger, request_id_ctx
from .metrics import metrics_text
from .middleware import RequestIdMiddleware

__all__ = [
    "RequestIdMiddleware",
    "configure_logging",
    "get_logger",
    "metrics_text",
    "request_id_ctx",
]
