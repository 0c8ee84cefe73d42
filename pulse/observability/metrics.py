"""
In-process metrics for digest and report requests.

Counters and timing summaries, exported as Prometheus text at /api/metrics.
"""

import functools
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field


@dataclass
class Counter:
    """Thread-safe counter metric."""

    name: str
    description: str
    _value: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def inc(self, amount: int = 1) -> None:
        with self._lock:
            self._value += amount

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


@dataclass
class Histogram:
    """Timing observations, bounded to the most recent 1000."""

    name: str
    description: str
    _values: list[float] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def observe(self, value: float) -> None:
        with self._lock:
            self._values.append(value)
            if len(self._values) > 1000:
                self._values = self._values[-1000:]

    @contextmanager
    def time(self) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe(time.perf_counter() - start)

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._values)

    @property
    def sum(self) -> float:
        with self._lock:
            return sum(self._values)


class MetricsRegistry:
    """Central registry for all metrics."""

    def __init__(self) -> None:
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, description: str = "") -> Counter:
        """Get or create a counter."""
        with self._lock:
            if name not in self._counters:
                self._counters[name] = Counter(name, description)
            return self._counters[name]

    def histogram(self, name: str, description: str = "") -> Histogram:
        """Get or create a histogram."""
        with self._lock:
            if name not in self._histograms:
                self._histograms[name] = Histogram(name, description)
            return self._histograms[name]

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines: list[str] = []
        with self._lock:
            counters = sorted(self._counters.items())
            histograms = sorted(self._histograms.items())
        for name, c in counters:
            if c.description:
                lines.append(f"# HELP {name} {c.description}")
            lines.append(f"# TYPE {name} counter")
            lines.append(f"{name} {c.value}")
        for name, h in histograms:
            if h.description:
                lines.append(f"# HELP {name} {h.description}")
            lines.append(f"# TYPE {name} summary")
            lines.append(f"{name}_count {h.count}")
            lines.append(f"{name}_sum {h.sum}")
        return "\n".join(lines) + "\n"


REGISTRY = MetricsRegistry()

digest_requests = REGISTRY.counter("digest_requests_total", "Due digest requests")
report_requests = REGISTRY.counter("report_requests_total", "Delivery report requests")
request_errors = REGISTRY.counter("request_errors_total", "Requests rejected or failed")
domain_failures = REGISTRY.counter(
    "domain_query_failures_total", "Domain queries degraded to empty after a store error"
)
schema_fallbacks = REGISTRY.counter(
    "schema_fallbacks_total", "Domain queries retried without optional columns"
)
digest_duration = REGISTRY.histogram("digest_duration_seconds", "Digest build duration")
report_duration = REGISTRY.histogram("report_duration_seconds", "Report build duration")
db_queries = REGISTRY.counter("db_queries_total", "Total database queries")
db_latency = REGISTRY.histogram("db_latency_seconds", "Database query latency")


def timed(histogram: Histogram) -> Callable:
    """Decorator timing an async function into *histogram*."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with histogram.time():
                return await func(*args, **kwargs)

        return wrapper

    return decorator
