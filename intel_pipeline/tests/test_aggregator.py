"""
Tests for ThreatIntelAggregator: full cycles, partial failure, caching and
source configuration.
"""
import threading
import time

import pytest

from intel_pipeline.aggregation import AggregationCache, ThreatIntelAggregator
from intel_pipeline.errors import AggregationError, ConfigError
from intel_pipeline.ingestion import ErrorKind, HttpClient, JsonObjectWrapped
from intel_pipeline.tests.fakes import (
    FakeResponse,
    ScriptedAdapter,
    adapter_factory,
    ip_payload,
    make_config,
)


@pytest.fixture
def aggregator(five_source_setup):
    configs, adapters = five_source_setup
    return ThreatIntelAggregator(configs, adapter_factory=adapter_factory(adapters))


class TestFiveSourceScenario:

    def test_counts(self, aggregator):
        result = aggregator.get_fresh_aggregation()

        assert result.total_sources == 5
        assert result.successful_sources == 3
        assert len(result.failed_sources) == 2
        assert result.indicator_total == 14
        assert result.duplicates_merged == 1
        assert result.successful_sources + len(result.failed_sources) == result.total_sources

    def test_failed_sources_in_registry_order(self, aggregator):
        result = aggregator.get_fresh_aggregation()

        assert result.failed_source_names == ["delta", "epsilon"]
        assert all(f.error_kind == ErrorKind.TIMEOUT for f in result.failed_sources)

    def test_shared_indicator_has_both_sources(self, aggregator):
        result = aggregator.get_fresh_aggregation()
        shared = [i for i in result.indicators if i.value == "1.2.3.4"]

        assert len(shared) == 1
        assert shared[0].sources == ("alpha", "gamma")
        assert shared[0].source == "alpha"

    def test_classification(self, aggregator):
        formatted = aggregator.get_fresh_aggregation().formatted

        assert formatted.severity_counts["high"] == 14
        assert formatted.detections.to_dict() == {"malicious": 2, "suspicious": 0, "clean": 1, "undetected": 2}
        assert formatted.risk_score == 72
        assert formatted.risk_level == "high"
        assert formatted.categories == ["botnet_c2"]
        assert "Block egress traffic to 14 botnet C2 address(es) at the perimeter firewall" in formatted.recommendations
        assert formatted.recommendations[-1].startswith("2 of 5 feeds were unavailable")
        assert formatted.summary.startswith("High risk: 14 unique indicators from 3 of 5 feeds")

    def test_source_stats_and_metrics(self, aggregator):
        result = aggregator.get_fresh_aggregation()

        assert result.source_stats["alpha"].indicators == 10
        assert result.source_stats["beta"].ok
        assert result.source_stats["delta"].error_kind == ErrorKind.TIMEOUT

        metrics = aggregator.last_metrics
        assert metrics.sources_succeeded == 3
        assert metrics.sources_failed == 2
        assert dict(metrics.failures_by_kind) == {"timeout": 2}
        assert metrics.indicators_total == 14
        assert metrics.completed_at is not None

    def test_to_dict_is_json_ready(self, aggregator):
        data = aggregator.get_fresh_aggregation().to_dict()
        assert data["indicator_total"] == 14
        assert [f["source"] for f in data["failed_sources"]] == ["delta", "epsilon"]
        assert len(data["indicators_by_category"]["botnet_c2"]) == 14


class TestFailures:

    def test_all_sources_failed(self):
        configs = [make_config("a"), make_config("b")]
        adapters = {
            "a": ScriptedAdapter(failure_kind=ErrorKind.NETWORK),
            "b": ScriptedAdapter(failure_kind=ErrorKind.HTTP_STATUS),
        }
        aggregator = ThreatIntelAggregator(configs, adapter_factory=adapter_factory(adapters))

        with pytest.raises(AggregationError) as excinfo:
            aggregator.get_fresh_aggregation()

        assert [f.source for f in excinfo.value.failed_sources] == ["a", "b"]
        assert aggregator.cache.peek() is None
        assert aggregator.last_metrics.errors == 1

    def test_failed_cycle_keeps_previous_snapshot(self):
        adapters = {"a": ScriptedAdapter(payload=ip_payload("10.0.0.1"))}
        aggregator = ThreatIntelAggregator([make_config("a")], adapter_factory=adapter_factory(adapters))
        first = aggregator.get_fresh_aggregation()

        adapters["a"].failure_kind = ErrorKind.NETWORK
        with pytest.raises(AggregationError):
            aggregator.get_fresh_aggregation()

        assert aggregator.cache.peek() is first

    def test_no_sources_enabled(self):
        configs = [make_config("a", enabled=False)]
        aggregator = ThreatIntelAggregator(configs, adapter_factory=adapter_factory({}))

        with pytest.raises(AggregationError, match="No sources enabled"):
            aggregator.get_fresh_aggregation()

    def test_malformed_payload_is_a_source_failure(self):
        configs = [make_config("good"), make_config("tf")]
        adapters = {
            "good": ScriptedAdapter(payload=ip_payload("10.0.0.1")),
            "tf": ScriptedAdapter(payload=JsonObjectWrapped(data={"query_status": "illegal_search_term"})),
        }
        aggregator = ThreatIntelAggregator(configs, adapter_factory=adapter_factory(adapters))

        result = aggregator.get_fresh_aggregation()

        assert result.successful_sources == 1
        assert result.failed_sources[0].source == "tf"
        assert result.failed_sources[0].error_kind == ErrorKind.MALFORMED_PAYLOAD

    def test_invalid_rows_become_warnings(self):
        payload = ip_payload("10.0.0.1", "999.1.1.1", "not-an-ip")
        aggregator = ThreatIntelAggregator(
            [make_config("a")], adapter_factory=adapter_factory({"a": ScriptedAdapter(payload=payload)})
        )

        result = aggregator.get_fresh_aggregation()

        assert result.indicator_total == 1
        assert result.source_stats["a"].invalid == 2
        assert len(result.warnings) == 2

    def test_adapter_config_error_aborts_before_fan_out(self):
        good = ScriptedAdapter(payload=ip_payload("10.0.0.1"))

        def factory(config):
            if config.name == "bad":
                raise ConfigError("bad: no adapter registered for format 'xml'")
            return good

        aggregator = ThreatIntelAggregator([make_config("good"), make_config("bad")], adapter_factory=factory)

        with pytest.raises(ConfigError):
            aggregator.get_fresh_aggregation()

        assert good.calls == 0
        assert aggregator.cache.peek() is None
        assert aggregator.last_metrics.errors == 1

    def test_invalid_registry(self):
        with pytest.raises(ConfigError):
            ThreatIntelAggregator([make_config("a"), make_config("a")])
        with pytest.raises(ConfigError):
            ThreatIntelAggregator(["not a config"])


class TestCaching:

    def test_fresh_never_returns_previous_snapshot(self, five_source_setup):
        configs, adapters = five_source_setup
        aggregator = ThreatIntelAggregator(configs, adapter_factory=adapter_factory(adapters))

        first = aggregator.get_fresh_aggregation()
        time.sleep(0.01)
        second = aggregator.get_fresh_aggregation()

        assert second is not first
        assert second.generated_at > first.generated_at
        assert adapters["alpha"].calls == 2

    def test_cached_within_ttl(self, five_source_setup):
        configs, adapters = five_source_setup
        aggregator = ThreatIntelAggregator(configs, adapter_factory=adapter_factory(adapters))

        first = aggregator.get_cached_aggregation()
        second = aggregator.get_cached_aggregation()

        assert second is first
        assert adapters["alpha"].calls == 1

    def test_cached_after_ttl_runs_new_cycle(self, five_source_setup):
        configs, adapters = five_source_setup
        aggregator = ThreatIntelAggregator(
            configs, adapter_factory=adapter_factory(adapters), cache=AggregationCache(ttl_seconds=0.05)
        )

        first = aggregator.get_cached_aggregation()
        time.sleep(0.1)
        second = aggregator.get_cached_aggregation()

        assert second is not first
        assert adapters["alpha"].calls == 2

    def test_concurrent_fresh_callers_share_one_cycle(self):
        release = threading.Event()
        adapter = ScriptedAdapter(payload=ip_payload("10.0.0.1"), delay=5, release=release)
        aggregator = ThreatIntelAggregator([make_config("a")], adapter_factory=adapter_factory({"a": adapter}))
        results = []

        def call():
            results.append(aggregator.get_fresh_aggregation())

        leader = threading.Thread(target=call)
        leader.start()
        while adapter.calls == 0:
            time.sleep(0.005)

        followers = [threading.Thread(target=call) for _ in range(3)]
        for t in followers:
            t.start()
        time.sleep(0.1)
        release.set()
        for t in [leader] + followers:
            t.join(5)

        assert len(results) == 4
        assert all(r is results[0] for r in results)
        assert adapter.calls == 1

    def test_force_refresh_always_runs(self):
        adapter = ScriptedAdapter(payload=ip_payload("10.0.0.1"))
        aggregator = ThreatIntelAggregator([make_config("a")], adapter_factory=adapter_factory({"a": adapter}))

        aggregator.get_fresh_aggregation(force_refresh=True)
        aggregator.get_fresh_aggregation(force_refresh=True)

        assert adapter.calls == 2


class TestSourceConfiguration:

    def test_enable_and_disable(self, aggregator):
        assert aggregator.get_enabled_source_count() == 5

        aggregator.configure_source("beta", False)
        assert aggregator.get_enabled_source_count() == 4
        assert [c.name for c in aggregator.enabled_configs()] == ["alpha", "gamma", "delta", "epsilon"]

        aggregator.configure_source("beta", True)
        assert aggregator.get_enabled_source_count() == 5

    def test_disabled_source_not_queried(self, five_source_setup):
        configs, adapters = five_source_setup
        aggregator = ThreatIntelAggregator(configs, adapter_factory=adapter_factory(adapters))
        aggregator.configure_source("delta", False)

        result = aggregator.get_fresh_aggregation()

        assert result.total_sources == 4
        assert adapters["delta"].calls == 0

    def test_configuring_drops_cached_snapshot(self, aggregator):
        aggregator.get_fresh_aggregation()
        assert "default" in aggregator.cache

        aggregator.configure_source("alpha", False)

        assert "default" not in aggregator.cache

    def test_unknown_source(self, aggregator):
        with pytest.raises(ConfigError):
            aggregator.configure_source("nope", False)


def test_end_to_end_through_http_adapter(fake_session):
    session, factory = fake_session(FakeResponse(content=b'[{"ioc": "198.51.100.7"}, {"ioc": "bogus"}]'))
    aggregator = ThreatIntelAggregator([make_config("feed")], client=HttpClient(session_factory=factory))

    result = aggregator.get_fresh_aggregation()

    assert result.indicator_total == 1
    assert result.indicators[0].value == "198.51.100.7"
    assert result.source_stats["feed"].invalid == 1
    assert session.requests[0]["url"] == "https://feeds.example.test/feed"
