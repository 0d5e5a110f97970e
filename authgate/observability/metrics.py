"""
Gate Metrics: Prometheus-Compatible Counters and Gauges

Metric set:
    authgate_sessions_gated                 gauge, sessions waiting to authenticate
    authgate_auth_success_total{method}     register / login completions
    authgate_auth_failure_total{code}       rejected operations by ErrorCode name
    authgate_evictions_total                kicks at the grace deadline

Values are kept in process; export_prometheus() renders the text
exposition format for whatever endpoint the host provides.
"""

from __future__ import annotations

import threading
from typing import Iterator, Optional, Sequence

# Label values in label-name order; () for unlabelled metrics
LabelKey = tuple[str, ...]


class _Metric:
    """Shared label handling for counters and gauges."""

    kind = "untyped"

    __slots__ = ("_name", "_help", "_label_names", "_values", "_lock")

    def __init__(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
    ) -> None:
        self._name = name
        self._help = help_text
        self._label_names = tuple(label_names)
        self._values: dict[LabelKey, float] = {}
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def help_text(self) -> str:
        return self._help

    def get(self, **labels: str) -> float:
        with self._lock:
            return self._values.get(self._key(labels), 0.0)

    def collect(self) -> Iterator[tuple[dict[str, str], float]]:
        """Yield (labels, value) for every label set seen so far."""
        with self._lock:
            items = sorted(self._values.items())
        for key, value in items:
            yield dict(zip(self._label_names, key)), value

    def _key(self, labels: dict[str, str]) -> LabelKey:
        unknown = set(labels) - set(self._label_names)
        if unknown:
            raise ValueError(f"{self._name}: unknown labels {sorted(unknown)}")
        return tuple(str(labels.get(name, "")) for name in self._label_names)


class Counter(_Metric):
    """
    Monotonically increasing counter.

    Usage:
        failures = Counter("authgate_auth_failure_total", ["code"])
        failures.inc(code="WRONG_PASSWORD")
    """

    kind = "counter"
    __slots__ = ()

    def inc(self, value: float = 1.0, **labels: str) -> None:
        if value < 0:
            raise ValueError("Counter can only increase")
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + value


class Gauge(_Metric):
    """Point-in-time value; last write wins."""

    kind = "gauge"
    __slots__ = ()

    def set(self, value: float, **labels: str) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = float(value)

    def inc(self, value: float = 1.0, **labels: str) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + value


class MetricsCollector:
    """
    Registry of named metrics.

    Asking twice for the same name returns the same metric object, so
    several GateMetrics bound to one collector share their values.

    Usage:
        collector = MetricsCollector()
        metrics = GateMetrics(collector)
        print(collector.export_prometheus())
    """

    __slots__ = ("_metrics", "_lock")

    _instance: Optional[MetricsCollector] = None

    def __init__(self) -> None:
        self._metrics: dict[str, _Metric] = {}
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> MetricsCollector:
        """Process-wide collector."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def counter(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
    ) -> Counter:
        return self._get_or_create(Counter, name, label_names, help_text)

    def gauge(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
    ) -> Gauge:
        return self._get_or_create(Gauge, name, label_names, help_text)

    def export_prometheus(self) -> str:
        """Text exposition format, metrics in registration order."""
        with self._lock:
            metrics = list(self._metrics.values())

        lines: list[str] = []
        for metric in metrics:
            if metric.help_text:
                lines.append(f"# HELP {metric.name} {metric.help_text}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            for labels, value in metric.collect():
                lines.append(f"{metric.name}{_format_labels(labels)} {value}")
        return "\n".join(lines)

    def _get_or_create(self, cls, name, label_names, help_text):
        with self._lock:
            existing = self._metrics.get(name)
            if existing is None:
                existing = cls(name, label_names, help_text)
                self._metrics[name] = existing
            elif not isinstance(existing, cls):
                raise TypeError(f"Metric '{name}' is already registered as a {existing.kind}")
            return existing


def _format_labels(labels: dict[str, str]) -> str:
    if not labels:
        return ""
    escaped = (
        f'{k}="{v}"'.replace("\n", "\\n")
        for k, v in labels.items()
    )
    return "{" + ",".join(escaped) + "}"


class GateMetrics:
    """The gate's own metric set, bound to one collector."""

    __slots__ = ("sessions_gated", "auth_success", "auth_failure", "evictions")

    def __init__(self, collector: Optional[MetricsCollector] = None) -> None:
        collector = collector or MetricsCollector.get_instance()
        self.sessions_gated = collector.gauge(
            "authgate_sessions_gated",
            help_text="Sessions waiting for authentication",
        )
        self.auth_success = collector.counter(
            "authgate_auth_success_total",
            ["method"],
            help_text="Successful register/login operations",
        )
        self.auth_failure = collector.counter(
            "authgate_auth_failure_total",
            ["code"],
            help_text="Rejected credential operations by error code",
        )
        self.evictions = collector.counter(
            "authgate_evictions_total",
            help_text="Entities kicked for not authenticating in time",
        )
