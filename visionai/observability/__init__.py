"""
Observability module - Logging, Metrics, and Tracing.
"""

from visionai.observability.logging import log_context, setup_logging
from visionai.observability.metrics import metrics
from visionai.observability.tracing import setup_tracing

__all__ = [
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
