"""
Aggregation service: the public entry point of the pipeline.

One cycle is fan-out fetch, normalize, merge, classify and commit to the
cache. Cycles for the same query key never overlap; a caller that waited
for another caller's cycle receives that cycle's snapshot instead of
starting a second one, unless it asked for a forced refresh.
"""
import logging
import time
from datetime import datetime
from typing import Callable, Iterable, Optional, Tuple

from ..errors import AggregationError, ConfigError
from ..ingestion.base_adapter import BaseAdapter, get_adapter, utcnow
from ..ingestion.catalog import DEFAULT_FEEDS
from ..ingestion.http_client import HttpClient
from ..ingestion.source_config import SourceConfig
from ..observability.metrics import AggregationMetrics
from .assembler import ResultAssembler
from .cache import DEFAULT_KEY, AggregationCache
from .coordinator import FanOutCoordinator
from .result import AggregationResult

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[SourceConfig], BaseAdapter]


def new_run_id(now: Optional[datetime] = None) -> str:
    """Run ID in format: run_YYYYMMDD_HHMMSS_ffffff"""
    return f"run_{(now or utcnow()).strftime('%Y%m%d_%H%M%S_%f')}"


class ThreatIntelAggregator:
    """
    Aggregates all enabled feeds into one AggregationResult.

    Args:
        configs: Feed registry (DEFAULT_FEEDS if None)
        client: Shared HTTP transport for the default adapters
        coordinator: Fan-out coordinator (defaults: 8 in flight, 60s deadline)
        assembler: Result assembler
        cache: Snapshot cache (300s TTL if None)
        adapter_factory: Returns the adapter for a config; defaults to the
            format registry
        query_key: Cache key the snapshots are stored under
    """

    def __init__(
        self,
        configs: Optional[Iterable[SourceConfig]] = None,
        client: Optional[HttpClient] = None,
        coordinator: Optional[FanOutCoordinator] = None,
        assembler: Optional[ResultAssembler] = None,
        cache: Optional[AggregationCache] = None,
        adapter_factory: Optional[AdapterFactory] = None,
        query_key: str = DEFAULT_KEY,
    ):
        self._configs = self._validate_registry(DEFAULT_FEEDS if configs is None else configs)
        self.client = client or HttpClient()
        self.coordinator = coordinator or FanOutCoordinator()
        self.assembler = assembler or ResultAssembler()
        self.cache = cache or AggregationCache()
        self.adapter_factory = adapter_factory or self._registry_adapter
        self.query_key = query_key
        self.last_metrics: Optional[AggregationMetrics] = None

    @staticmethod
    def _validate_registry(configs: Iterable[SourceConfig]) -> Tuple[SourceConfig, ...]:
        registry = tuple(configs)
        seen = set()
        for config in registry:
            if not isinstance(config, SourceConfig):
                raise ConfigError(f"Expected SourceConfig, got {type(config).__name__}")
            if config.name in seen:
                raise ConfigError(f"Duplicate source name: {config.name}")
            seen.add(config.name)
        return registry

    def _registry_adapter(self, config: SourceConfig) -> BaseAdapter:
        try:
            return get_adapter(config.format, self.client)
        except KeyError:
            raise ConfigError(f"{config.name}: no adapter registered for format {config.format!r}")

    @property
    def configs(self) -> Tuple[SourceConfig, ...]:
        return self._configs

    def enabled_configs(self) -> Tuple[SourceConfig, ...]:
        return tuple(c for c in self._configs if c.enabled)

    def get_enabled_source_count(self) -> int:
        return len(self.enabled_configs())

    def configure_source(self, name: str, enabled: bool) -> Tuple[SourceConfig, ...]:
        """
        Enable or disable one feed.

        Configs are immutable; the registry is rebuilt and swapped in. The
        cached snapshot is dropped since it no longer matches the registry.

        Returns:
            The new registry

        Raises:
            ConfigError: No feed with that name
        """
        if name not in {c.name for c in self._configs}:
            raise ConfigError(f"Unknown source: {name}")
        self._configs = tuple(
            c.with_enabled(enabled) if c.name == name else c for c in self._configs
        )
        self.cache.invalidate(self.query_key)
        logger.info("Source %s %s", name, "enabled" if enabled else "disabled")
        return self._configs

    def get_fresh_aggregation(self, force_refresh: bool = False) -> AggregationResult:
        """
        Run an aggregation cycle and commit it to the cache.

        The returned snapshot is always generated after this call began. If
        another cycle for the same key committed while this call waited for
        the writer lock, that snapshot is returned unless force_refresh is set.

        Raises:
            AggregationError: No sources enabled, or every source failed
            ConfigError: An enabled source has no usable adapter
        """
        requested_at = utcnow()
        with self.cache.writer(self.query_key):
            if not force_refresh:
                committed = self.cache.peek(self.query_key)
                if committed is not None and committed.generated_at > requested_at:
                    logger.info("Returning snapshot committed by a concurrent cycle")
                    return committed

            result = self._run_cycle()
            self.cache.put(result, self.query_key)
            return result

    def get_cached_aggregation(self) -> AggregationResult:
        """
        Return the cached snapshot if within TTL, otherwise run a fresh cycle.

        Raises:
            AggregationError: A fresh cycle was needed and produced no result
        """
        cached = self.cache.get(self.query_key)
        if cached is not None:
            logger.debug("Serving cached snapshot from %s", cached.generated_at.isoformat())
            return cached
        return self.get_fresh_aggregation()

    def _run_cycle(self) -> AggregationResult:
        enabled = self.enabled_configs()
        metrics = AggregationMetrics(run_id=new_run_id(), started_at=utcnow())
        metrics.sources_total = len(enabled)
        self.last_metrics = metrics

        logger.info("=== Starting aggregation %s (%d sources) ===", metrics.run_id, len(enabled))
        try:
            if not enabled:
                raise AggregationError("No sources enabled")

            # ConfigError from the factory aborts the cycle before fan-out
            adapters = {c.name: self.adapter_factory(c) for c in enabled}

            started = time.monotonic()
            results = self.coordinator.collect(enabled, lambda c: adapters[c.name].fetch)
            result = self.assembler.assemble(
                enabled,
                results,
                aggregation_time=time.monotonic() - started,
                query_key=self.query_key,
            )
        except AggregationError as e:
            metrics.record_error(str(e), {"failed_sources": [f.to_dict() for f in e.failed_sources]})
            metrics.completed_at = utcnow()
            logger.error("Aggregation %s failed: %s", metrics.run_id, e)
            raise
        except ConfigError as e:
            metrics.record_error(str(e))
            metrics.completed_at = utcnow()
            logger.error("Aggregation %s aborted: %s", metrics.run_id, e)
            raise

        metrics.record_result(result)
        metrics.completed_at = utcnow()
        logger.info(
            "=== Aggregation complete: %d/%d sources, %d indicators, risk %s (%d) ===",
            result.successful_sources, result.total_sources, result.indicator_total,
            result.formatted.risk_level, result.formatted.risk_score,
        )
        return result
