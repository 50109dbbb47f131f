"""
Assembles one AggregationResult from the settled fetch results.

Runs single-threaded after fan-in: normalize every successful payload,
merge across feeds, classify, and package the counters.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from ..decisioning.classifier import RiskClassifier
from ..decisioning.scoring import detections_from_sources
from ..errors import AggregationError, MalformedPayloadError
from ..ingestion.base_adapter import ErrorKind, FetchFailure, RawFetchResult, utcnow
from ..ingestion.source_config import SourceConfig
from ..normalization.indicator import Indicator
from ..normalization.normalizer import IndicatorNormalizer
from .merge import IndicatorMerger
from .result import AggregationResult, FailedSource, SourceStats

logger = logging.getLogger(__name__)


class ResultAssembler:
    """
    Builds AggregationResult snapshots.

    Args:
        normalizer: Payload normalizer (default settings if None)
        classifier: Risk classifier (default rule chain if None)
    """

    def __init__(
        self,
        normalizer: Optional[IndicatorNormalizer] = None,
        classifier: Optional[RiskClassifier] = None,
    ):
        self.normalizer = normalizer or IndicatorNormalizer()
        self.classifier = classifier or RiskClassifier()

    def assemble(
        self,
        configs: Sequence[SourceConfig],
        results: Sequence[RawFetchResult],
        aggregation_time: float,
        generated_at: Optional[datetime] = None,
        query_key: str = "default",
    ) -> AggregationResult:
        """
        Combine fetch results into a snapshot.

        Args:
            configs: Enabled configs, in the order the coordinator used
            results: One RawFetchResult per config, same order
            aggregation_time: Seconds spent in the cycle so far
            generated_at: Snapshot timestamp (now if None)
            query_key: Cache key the snapshot belongs to

        Returns:
            AggregationResult

        Raises:
            AggregationError: No source produced a usable payload
        """
        if len(configs) != len(results):
            raise ValueError(f"Got {len(results)} results for {len(configs)} sources")

        merger = IndicatorMerger()
        failed: List[FailedSource] = []
        stats: Dict[str, SourceStats] = {}
        warnings: List[str] = []
        by_source: Dict[str, List[Indicator]] = {}

        for config, result in zip(configs, results):
            if result.ok:
                try:
                    normalized = self.normalizer.normalize(config, result.payload)
                except MalformedPayloadError as e:
                    logger.warning("%s payload rejected by normalizer: %s", config.name, e)
                    result = FetchFailure(
                        source=config.name,
                        error_kind=ErrorKind.MALFORMED_PAYLOAD,
                        message=str(e),
                        fetched_at=result.fetched_at,
                        duration=result.duration,
                    )

            if not result.ok:
                failed.append(FailedSource(result.source, result.message, result.error_kind))
                stats[config.name] = SourceStats(
                    source=config.name,
                    ok=False,
                    duration=result.duration,
                    error_kind=result.error_kind,
                )
                continue

            by_source[config.name] = normalized.indicators
            merger.add_all(normalized.indicators)
            warnings.extend(normalized.warnings)
            stats[config.name] = SourceStats(
                source=config.name,
                ok=True,
                indicators=len(normalized.indicators),
                invalid=normalized.invalid_count,
                warnings=len(normalized.warnings),
                duration=result.duration,
            )
            logger.info(
                "%s: %d indicators (%d invalid rows)",
                config.name, len(normalized.indicators), normalized.invalid_count,
            )

        total = len(configs)
        successful = total - len(failed)
        if successful == 0:
            raise AggregationError(f"All {total} sources failed", failed_sources=failed)

        merged = merger.indicators()
        generated_at = generated_at or utcnow()
        detections = detections_from_sources(by_source, failed_count=len(failed))
        formatted = self.classifier.classify(
            merged,
            detections,
            failed_sources=len(failed),
            total_sources=total,
            analysed_at=generated_at,
        )

        logger.info(
            "Assembled %d merged indicators (%d duplicates) from %d/%d sources",
            len(merged), merger.duplicates, successful, total,
        )
        return AggregationResult(
            total_sources=total,
            successful_sources=successful,
            failed_sources=tuple(failed),
            indicators_by_category=self._group_by_category(merged),
            source_stats=stats,
            warnings=tuple(warnings),
            generated_at=generated_at,
            aggregation_time=aggregation_time,
            formatted=formatted,
            duplicates_merged=merger.duplicates,
            query_key=query_key,
        )

    @staticmethod
    def _group_by_category(indicators: Sequence[Indicator]) -> Dict[str, tuple]:
        grouped: Dict[str, List[Indicator]] = {}
        for indicator in indicators:
            grouped.setdefault(indicator.category, []).append(indicator)
        return {category: tuple(grouped[category]) for category in sorted(grouped)}
