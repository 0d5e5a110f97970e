"""
Observability module: Metrics and structured logging.
"""

from authgate.observability.metrics import MetricsCollector, Counter, Gauge, GateMetrics
from authgate.observability.logging import StructuredLogger, LogLevel, setup_logging

__all__ = [
    "MetricsCollector",
    "Counter",
    "Gauge",
    "GateMetrics",
    "StructuredLogger",
    "LogLevel",
    "setup_logging",
]
