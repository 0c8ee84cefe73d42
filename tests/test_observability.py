"""
Tests for structured logging, request context and metrics.
"""

import asyncio
import json
import logging

from pulse.observability import (
    REGISTRY,
    HumanFormatter,
    JSONFormatter,
    RequestContext,
    get_request_id,
    get_user_id,
    timed,
)
from pulse.observability.metrics import MetricsRegistry


def _record(message="Domain query failed", **extra):
    record = logging.LogRecord("pulse.queries", logging.WARNING, __file__, 1, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRequestContext:
    def test_sets_and_restores(self):
        assert get_request_id() is None
        with RequestContext(request_id="req-1", user_id="user-pm") as ctx:
            assert ctx.request_id == "req-1"
            assert get_request_id() == "req-1"
            assert get_user_id() == "user-pm"
        assert get_request_id() is None
        assert get_user_id() is None

    def test_generates_request_id(self):
        with RequestContext() as ctx:
            assert ctx.request_id.startswith("req-")
            assert len(ctx.request_id) == 20

    def test_visible_in_worker_threads(self):
        async def read_in_thread():
            return await asyncio.to_thread(get_request_id)

        async def run():
            with RequestContext(request_id="req-thread"):
                return await read_in_thread()

        assert asyncio.run(run()) == "req-thread"


class TestFormatters:
    def test_json_includes_context_and_extras(self):
        with RequestContext(request_id="req-json", user_id="user-pm"):
            line = JSONFormatter().format(_record(domain="raid"))
        payload = json.loads(line)
        assert payload["level"] == "WARNING"
        assert payload["logger"] == "pulse.queries"
        assert payload["message"] == "Domain query failed"
        assert payload["request_id"] == "req-json"
        assert payload["user_id"] == "user-pm"
        assert payload["domain"] == "raid"
        assert payload["timestamp"].endswith("Z")

    def test_json_without_context(self):
        payload = json.loads(JSONFormatter().format(_record()))
        assert "request_id" not in payload

    def test_human_format(self):
        with RequestContext(request_id="req-human-12345"):
            line = HumanFormatter().format(_record())
        assert "[WARNING] pulse.queries: [req-human-12] Domain query failed" in line


class TestMetrics:
    def test_counter_and_histogram_export(self):
        registry = MetricsRegistry()
        counter = registry.counter("things_total", "Things")
        counter.inc()
        counter.inc(2)
        histogram = registry.histogram("thing_seconds")
        with histogram.time():
            pass
        text = registry.to_prometheus()
        assert "# HELP things_total Things" in text
        assert "things_total 3" in text
        assert "thing_seconds_count 1" in text

    def test_registry_returns_same_metric(self):
        assert REGISTRY.counter("digest_requests_total") is REGISTRY.counter("digest_requests_total")

    def test_histogram_bounded(self):
        histogram = MetricsRegistry().histogram("h")
        for i in range(1100):
            histogram.observe(float(i))
        assert histogram.count == 1000

    def test_timed_decorator(self):
        histogram = MetricsRegistry().histogram("timed_seconds")

        @timed(histogram)
        async def work(x):
            """Doubles x."""
            return x * 2

        assert asyncio.run(work(4)) == 8
        assert histogram.count == 1
        assert work.__doc__ == "Doubles x."
