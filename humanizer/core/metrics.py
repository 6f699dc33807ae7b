"""
In-process metrics exported in Prometheus text format at /metrics.

Counters, gauges and a fixed-bucket histogram, each keyed by an ordered
label tuple. All updates take the metric's lock, so worker threads can
share them.
"""

from __future__ import annotations

import re
import threading
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

LabelValues = Tuple[str, ...]


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, label_names: Optional[Iterable[str]] = None):
        self.name = name
        self.label_names = tuple(label_names or ())
        self._values: Dict[LabelValues, float] = {}
        self._lock = threading.Lock()

    def _key(self, labels: Optional[Dict[str, str]]) -> LabelValues:
        labels = labels or {}
        return tuple(str(labels.get(name, "")) for name in self.label_names)

    def _render_labels(self, values: LabelValues, extra: Sequence[Tuple[str, str]] = ()) -> str:
        pairs = list(zip(self.label_names, values)) + list(extra)
        if not pairs:
            return ""
        return "{" + ",".join(f'{k}="{_escape(v)}"' for k, v in pairs) + "}"

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._values.get(self._key(labels), 0.0)

    def samples(self) -> List[str]:
        with self._lock:
            return [f"{self.name}{self._render_labels(k)} {v}" for k, v in self._values.items()]

    def export(self) -> List[str]:
        return [f"# TYPE {self.name} {self.kind}"] + self.samples()

    def reset(self) -> None:
        with self._lock:
            self._values.clear()


class Counter(_Metric):
    kind = "counter"

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("counters only go up")
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + amount


class Gauge(_Metric):
    kind = "gauge"

    def set(self, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        with self._lock:
            self._values[self._key(labels)] = float(value)

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + amount

    def dec(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0) -> None:
        self.inc(labels, -amount)


class Histogram(_Metric):
    """Cumulative buckets plus _sum and _count, per label set."""

    kind = "histogram"

    def __init__(self, name: str, buckets: Sequence[float], label_names: Optional[Iterable[str]] = None):
        super().__init__(name, label_names)
        self.buckets = tuple(sorted(buckets))
        self._observations: Dict[LabelValues, List[float]] = {}

    def observe(self, amount: float, labels: Optional[Dict[str, str]] = None) -> None:
        key = self._key(labels)
        with self._lock:
            counts = self._observations.setdefault(key, [0.0] * (len(self.buckets) + 2))
            for i, bound in enumerate(self.buckets):
                if amount <= bound:
                    counts[i] += 1
            counts[-2] += amount
            counts[-1] += 1

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        """Number of observations."""
        with self._lock:
            counts = self._observations.get(self._key(labels))
            return counts[-1] if counts else 0.0

    def samples(self) -> List[str]:
        lines = []
        with self._lock:
            for key, counts in self._observations.items():
                for bound, count in zip(self.buckets, counts):
                    lines.append(f"{self.name}_bucket{self._render_labels(key, [('le', str(bound))])} {count}")
                lines.append(f"{self.name}_bucket{self._render_labels(key, [('le', '+Inf')])} {counts[-1]}")
                lines.append(f"{self.name}_sum{self._render_labels(key)} {counts[-2]}")
                lines.append(f"{self.name}_count{self._render_labels(key)} {counts[-1]}")
        return lines

    def reset(self) -> None:
        with self._lock:
            self._observations.clear()


class MetricsRegistry:
    def __init__(self):
        self._metrics: Dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def _register(self, name: str, factory) -> _Metric:
        with self._lock:
            if name not in self._metrics:
                self._metrics[name] = factory()
            return self._metrics[name]

    def counter(self, name: str, label_names: Optional[Iterable[str]] = None) -> Counter:
        return self._register(name, lambda: Counter(name, label_names))

    def gauge(self, name: str, label_names: Optional[Iterable[str]] = None) -> Gauge:
        return self._register(name, lambda: Gauge(name, label_names))

    def histogram(self, name: str, buckets: Sequence[float], label_names: Optional[Iterable[str]] = None) -> Histogram:
        return self._register(name, lambda: Histogram(name, buckets, label_names))

    def export_prometheus(self) -> str:
        lines: List[str] = []
        for metric in list(self._metrics.values()):
            lines.extend(metric.export())
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        for metric in list(self._metrics.values()):
            metric.reset()


METRICS = MetricsRegistry()

http_requests_total = METRICS.counter("http_requests_total", ["method", "path", "status"])
transformations_total = METRICS.counter("transformations_total", ["strategy", "level"])
transform_fallback_total = METRICS.counter("transform_fallback_total", ["strategy"])
transform_failures_total = METRICS.counter("transform_failures_total", ["stage"])
credit_reservations_total = METRICS.counter("credit_reservations_total", ["outcome"])

pipelines_in_flight = METRICS.gauge("pipelines_in_flight")
pipeline_duration_seconds = METRICS.histogram(
    "pipeline_duration_seconds", [0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0], ["outcome"]
)


_ID_SEGMENT = re.compile(r"^(\d+|[0-9a-fA-F-]{8,})$")


def normalize_path(path: str) -> str:
    """Collapse numeric and UUID path segments to :id to bound label cardinality."""
    segments = [":id" if _ID_SEGMENT.match(s) else s for s in path.split("/") if s]
    return "/" + "/".join(segments)
