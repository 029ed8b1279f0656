"""
Metrics Collection Module for SchemaForge
In-process counters, gauges, timers and value distributions for the
inference, validation, suggestion and emission stages
"""
from __future__ import annotations

import json
import statistics
import threading
import time
from collections import Counter as TallyCounter
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterable, List, Optional

# Upper bounds for durations in seconds; value distributions pass their own
DURATION_BOUNDS = (0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0)
COUNT_BOUNDS = (0, 1, 2, 5, 10, 25, 50, 100)
SIZE_BOUNDS = (256, 1024, 4096, 16384, 65536, 262144)


class Distribution:
    """Bucketed distribution of observed values (durations, counts, sizes)"""

    def __init__(self, name: str, bounds: Iterable[float] = DURATION_BOUNDS, labels: Optional[Dict[str, str]] = None):
        self.name = name
        self.labels = dict(labels or {})
        self.bounds = tuple(sorted(bounds))
        self._buckets = [0] * (len(self.bounds) + 1)
        self._total = 0.0
        self._count = 0
        self._low: Optional[float] = None
        self._high: Optional[float] = None
        self._lock = threading.Lock()

    def observe(self, value: float) -> None:
        with self._lock:
            self._count += 1
            self._total += value
            self._low = value if self._low is None else min(self._low, value)
            self._high = value if self._high is None else max(self._high, value)
            for i, bound in enumerate(self.bounds):
                if value <= bound:
                    self._buckets[i] += 1
                    break
            else:
                self._buckets[-1] += 1

    def quantile(self, q: float) -> float:
        """Upper bound of the bucket holding the q-th observation"""
        if self._count == 0:
            return 0.0
        seen = 0
        for i, count in enumerate(self._buckets[:-1]):
            seen += count
            if seen >= q * self._count:
                return float(self.bounds[i])
        return float(self._high or 0.0)

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            buckets = {f"le_{b}": c for b, c in zip(self.bounds, self._buckets)}
            buckets["overflow"] = self._buckets[-1]
            return {
                "name": self.name,
                "labels": self.labels,
                "count": self._count,
                "sum": self._total,
                "min": self._low,
                "max": self._high,
                "buckets": buckets,
                "p50": self.quantile(0.5),
                "p90": self.quantile(0.9),
            }


class MetricsCollector:
    """Thread-safe, process-wide metrics collector"""

    _instance: Optional["MetricsCollector"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "MetricsCollector":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._counters: Dict[str, float] = defaultdict(float)
        self._gauges: Dict[str, float] = {}
        self._distributions: Dict[str, Distribution] = {}
        self._timings: Dict[str, List[float]] = defaultdict(list)
        self._data_lock = threading.Lock()
        self._enabled = True
        self._initialized = True

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    @staticmethod
    def key(name: str, labels: Optional[Dict[str, str]] = None) -> str:
        """Render ``name{a=1,b=2}`` with labels sorted by name"""
        if not labels:
            return name
        rendered = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{rendered}}}"

    def counter(self, name: str, value: float = 1.0, labels: Optional[Dict[str, str]] = None) -> None:
        if not self._enabled:
            return
        with self._data_lock:
            self._counters[self.key(name, labels)] += value

    def gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        if not self._enabled:
            return
        with self._data_lock:
            self._gauges[self.key(name, labels)] = value

    def observe(
        self,
        name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None,
        bounds: Iterable[float] = DURATION_BOUNDS,
    ) -> None:
        """Add a value to a distribution, creating it with ``bounds`` on first use"""
        if not self._enabled:
            return
        key = self.key(name, labels)
        with self._data_lock:
            dist = self._distributions.get(key)
            if dist is None:
                dist = self._distributions[key] = Distribution(name, bounds, labels)
        dist.observe(value)

    def timer(self, name: str, duration: float, labels: Optional[Dict[str, str]] = None) -> None:
        """Record a duration as a raw timing and in ``<name>_histogram``"""
        if not self._enabled:
            return
        with self._data_lock:
            self._timings[self.key(name, labels)].append(duration)
        self.observe(f"{name}_histogram", duration, labels)

    @contextmanager
    def time_operation(self, name: str, labels: Optional[Dict[str, str]] = None) -> Generator[None, None, None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timer(name, time.perf_counter() - start, labels)

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        with self._data_lock:
            return self._counters.get(self.key(name, labels), 0.0)

    def cache_stats(self, cache_type: str = "validation") -> Dict[str, float]:
        """Hits, misses and hit ratio of one cache"""
        labels = {"cache_type": cache_type}
        hits = self.get_counter("cache_hits_total", labels)
        misses = self.get_counter("cache_misses_total", labels)
        lookups = hits + misses
        return {"hits": hits, "misses": misses, "hit_ratio": hits / lookups if lookups else 0.0}

    def get_metrics(self) -> Dict[str, Any]:
        """Snapshot of every metric"""
        with self._data_lock:
            timers = {
                key: {
                    "count": len(values),
                    "sum": sum(values),
                    "min": min(values),
                    "max": max(values),
                    "mean": statistics.mean(values),
                    "median": statistics.median(values),
                }
                for key, values in self._timings.items() if values
            }
            snapshot = {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "histograms": {k: d.to_dict() for k, d in self._distributions.items()},
                "timers": timers,
            }
        snapshot["caches"] = {"validation": self.cache_stats("validation")}
        return snapshot

    def reset(self) -> None:
        with self._data_lock:
            self._counters.clear()
            self._gauges.clear()
            self._distributions.clear()
            self._timings.clear()

    def export_json(self) -> str:
        return json.dumps(self.get_metrics(), indent=2, default=str)


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance"""
    return MetricsCollector()


def counter(name: str, value: float = 1.0, labels: Optional[Dict[str, str]] = None) -> None:
    get_metrics_collector().counter(name, value, labels)


def gauge(name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
    get_metrics_collector().gauge(name, value, labels)


def histogram(
    name: str,
    value: float,
    labels: Optional[Dict[str, str]] = None,
    bounds: Iterable[float] = DURATION_BOUNDS,
) -> None:
    get_metrics_collector().observe(name, value, labels, bounds)


def timer(name: str, duration: float, labels: Optional[Dict[str, str]] = None) -> None:
    get_metrics_collector().timer(name, duration, labels)


@contextmanager
def time_operation(name: str, labels: Optional[Dict[str, str]] = None) -> Generator[None, None, None]:
    with get_metrics_collector().time_operation(name, labels):
        yield


class SchemaForgeMetrics:
    """Named metrics for each pipeline stage"""

    @staticmethod
    def record_file_analysis(duration: float, inferred_types: Iterable[str], findings: int) -> None:
        """Record one analyzed file: per-type column tallies and finding count"""
        tally = TallyCounter(inferred_types)
        timer("inference_duration", duration)
        for data_type, columns in sorted(tally.items()):
            counter("inferred_columns_total", float(columns), {"type": data_type})
        histogram("columns_per_file", float(sum(tally.values())), bounds=COUNT_BOUNDS)
        histogram("structural_findings", float(findings), bounds=COUNT_BOUNDS)
        counter("files_analyzed_total")

    @staticmethod
    def record_validation(duration: float, is_valid: bool, errors: int, warnings: int) -> None:
        labels = {"valid": str(is_valid).lower()}
        timer("validation_duration", duration, labels)
        counter("validation_total", 1.0, labels)
        histogram("validation_errors", float(errors), bounds=COUNT_BOUNDS)
        histogram("validation_warnings", float(warnings), bounds=COUNT_BOUNDS)

    @staticmethod
    def record_cache_lookup(hit: bool, cache_type: str = "validation") -> None:
        name = "cache_hits_total" if hit else "cache_misses_total"
        counter(name, 1.0, {"cache_type": cache_type})

    @staticmethod
    def record_emission(duration: float, target: str, success: bool, artifacts: int = 0, size: int = 0) -> None:
        """Record one emit call; ``size`` is the total artifact length in characters"""
        labels = {"target": target, "success": str(success).lower()}
        timer("emission_duration", duration, labels)
        counter("emission_total", 1.0, labels)
        if success:
            counter("artifacts_total", float(artifacts), {"target": target})
            histogram("artifact_size", float(size), {"target": target}, bounds=SIZE_BOUNDS)

    @staticmethod
    def record_suggestion_fallback(reason: str) -> None:
        """Count a switch to the rule-based schema (low_confidence, provider_error)"""
        counter("suggestion_fallback_total", 1.0, {"reason": reason})

    @staticmethod
    def record_cycles(count: int) -> None:
        """Dependency cycles in the most recently resolved schema"""
        gauge("dependency_cycles", float(count))

    @staticmethod
    def record_error(error_type: str, category: str) -> None:
        counter("errors_total", 1.0, {"error_type": error_type, "category": category})
