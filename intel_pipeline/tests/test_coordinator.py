"""
Tests for the fan-out fetch coordinator.

Timing tests use generous margins: slow adapters wait on an Event that the
test releases afterwards, so abandoned threads exit promptly.
"""
import threading
import time

import pytest

from intel_pipeline.aggregation.coordinator import FanOutCoordinator
from intel_pipeline.ingestion.base_adapter import ErrorKind
from intel_pipeline.tests.fakes import ScriptedAdapter, ip_payload, make_config


def collect(coordinator, configs, adapters):
    return coordinator.collect(configs, lambda config: adapters[config.name].fetch)


@pytest.fixture
def release():
    event = threading.Event()
    yield event
    event.set()


class TestAccounting:

    @pytest.mark.parametrize("count", [1, 2, 5, 12])
    def test_one_result_per_config_in_order(self, count):
        configs = [make_config(f"feed{i}") for i in range(count)]
        adapters = {
            c.name: ScriptedAdapter(failure_kind=ErrorKind.NETWORK) if i % 3 == 0
            else ScriptedAdapter(payload=ip_payload(f"10.0.0.{i}"))
            for i, c in enumerate(configs)
        }

        results = collect(FanOutCoordinator(max_in_flight=4), configs, adapters)

        assert [r.source for r in results] == [c.name for c in configs]
        successes = sum(1 for r in results if r.ok)
        failures = sum(1 for r in results if not r.ok)
        assert successes + failures == count
        assert all(a.calls == 1 for a in adapters.values())

    def test_empty_config_list(self):
        assert FanOutCoordinator().collect([], lambda config: None) == []

    def test_adapter_exception_becomes_network_failure(self):
        configs = [make_config("broken"), make_config("fine")]
        adapters = {
            "broken": ScriptedAdapter(error=ValueError("unexpected")),
            "fine": ScriptedAdapter(payload=ip_payload("10.0.0.1")),
        }

        broken, fine = collect(FanOutCoordinator(), configs, adapters)

        assert broken.error_kind == ErrorKind.NETWORK
        assert "ValueError" in broken.message
        assert fine.ok

    def test_invalid_settings(self):
        with pytest.raises(ValueError):
            FanOutCoordinator(max_in_flight=0)
        with pytest.raises(ValueError):
            FanOutCoordinator(global_deadline=0)


class TestDeadlines:

    def test_slow_feed_does_not_delay_others(self, release):
        configs = [make_config("slow", timeout=0.3), make_config("fast1"), make_config("fast2")]
        adapters = {
            "slow": ScriptedAdapter(delay=10, release=release),
            "fast1": ScriptedAdapter(payload=ip_payload("10.0.0.1")),
            "fast2": ScriptedAdapter(payload=ip_payload("10.0.0.2"), delay=0.05),
        }

        started = time.monotonic()
        slow, fast1, fast2 = collect(FanOutCoordinator(global_deadline=5), configs, adapters)
        elapsed = time.monotonic() - started

        assert slow.error_kind == ErrorKind.TIMEOUT
        assert "feed deadline" in slow.message
        assert fast1.ok and fast2.ok
        assert elapsed < 1.5

    def test_global_deadline_is_a_hard_cutoff(self, release):
        configs = [make_config(f"hang{i}", timeout=30) for i in range(3)] + [make_config("quick")]
        adapters = {c.name: ScriptedAdapter(delay=10, release=release) for c in configs}
        adapters["quick"] = ScriptedAdapter(payload=ip_payload("10.0.0.1"))

        started = time.monotonic()
        results = collect(FanOutCoordinator(max_in_flight=4, global_deadline=0.4), configs, adapters)
        elapsed = time.monotonic() - started

        assert elapsed < 0.4 + 0.5
        assert [r.error_kind for r in results[:3]] == [ErrorKind.TIMEOUT] * 3
        assert all("global aggregation deadline" in r.message for r in results[:3])
        assert results[3].ok

    def test_queued_tasks_cancelled_at_global_deadline(self, release):
        configs = [make_config(f"hang{i}", timeout=30) for i in range(4)]
        adapters = {c.name: ScriptedAdapter(delay=10, release=release) for c in configs}

        results = collect(FanOutCoordinator(max_in_flight=1, global_deadline=0.3), configs, adapters)

        assert len(results) == 4
        assert all(r.error_kind == ErrorKind.TIMEOUT for r in results)
        # only the first ever started
        assert sum(a.calls for a in adapters.values()) == 1

    def test_feed_deadline_counts_from_task_start(self):
        configs = [make_config("first", timeout=0.5), make_config("second", timeout=0.5)]
        adapters = {
            "first": ScriptedAdapter(payload=ip_payload("10.0.0.1"), delay=0.3),
            "second": ScriptedAdapter(payload=ip_payload("10.0.0.2"), delay=0.3),
        }

        results = collect(FanOutCoordinator(max_in_flight=1, global_deadline=5), configs, adapters)

        assert all(r.ok for r in results)


class TestConcurrency:

    def test_max_in_flight_is_respected(self):
        lock = threading.Lock()
        state = {"running": 0, "peak": 0}

        class CountingAdapter(ScriptedAdapter):
            def fetch(self, config, deadline):
                with lock:
                    state["running"] += 1
                    state["peak"] = max(state["peak"], state["running"])
                try:
                    return super().fetch(config, deadline)
                finally:
                    with lock:
                        state["running"] -= 1

        configs = [make_config(f"feed{i}") for i in range(8)]
        adapters = {c.name: CountingAdapter(payload=ip_payload("10.0.0.1"), delay=0.05) for c in configs}

        results = collect(FanOutCoordinator(max_in_flight=2), configs, adapters)

        assert all(r.ok for r in results)
        assert state["peak"] <= 2

    def test_feeds_run_in_parallel(self):
        configs = [make_config(f"feed{i}") for i in range(4)]
        adapters = {c.name: ScriptedAdapter(payload=ip_payload("10.0.0.1"), delay=0.3) for c in configs}

        started = time.monotonic()
        collect(FanOutCoordinator(max_in_flight=4), configs, adapters)

        assert time.monotonic() - started < 1.0

    def test_coordinator_is_reusable(self):
        coordinator = FanOutCoordinator()
        configs = [make_config("feed")]
        adapters = {"feed": ScriptedAdapter(payload=ip_payload("10.0.0.1"))}

        first = collect(coordinator, configs, adapters)
        second = collect(coordinator, configs, adapters)

        assert first[0].ok and second[0].ok
        assert adapters["feed"].calls == 2
