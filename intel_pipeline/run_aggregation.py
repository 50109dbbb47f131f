#!/usr/bin/env python3
"""
Command-line runner for the threat-intelligence aggregation pipeline.

Stages:
1. Configuration: load config.yaml (sources, deadlines, output directory)
2. Aggregation: fan out to every enabled feed, merge and classify
3. Quality: run data quality checks on the snapshot
4. Reporting: export the snapshot as JSON and a Markdown report

Usage:
    python -m intel_pipeline.run_aggregation [--config config.yaml] [--force]
"""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

from .aggregation.cache import AggregationCache
from .aggregation.coordinator import FanOutCoordinator
from .aggregation.result import AggregationResult
from .aggregation.service import ThreatIntelAggregator
from .config import PipelineConfig, load_config
from .errors import AggregationError, ConfigError
from .ingestion.http_client import HttpClient
from .observability.quality_checks import QualityChecker
from .observability.reporter import AggregationReporter

logger = logging.getLogger(__name__)


def build_aggregator(config: PipelineConfig, client: Optional[HttpClient] = None) -> ThreatIntelAggregator:
    """Wire an aggregator from loaded configuration."""
    settings = config.settings
    return ThreatIntelAggregator(
        configs=config.sources,
        client=client,
        coordinator=FanOutCoordinator(
            max_in_flight=settings.max_in_flight,
            global_deadline=settings.global_deadline_seconds,
        ),
        cache=AggregationCache(ttl_seconds=settings.cache_ttl_seconds),
    )


def export_snapshot(result: AggregationResult, output_dir: Path, metrics=None) -> Path:
    """
    Write the snapshot to output_dir/threat_snapshot.json.

    Output format:
    {
      "generated_at": "2024-01-11T12:00:00+00:00",
      "metrics": {...},
      "result": {...}
    }
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / "threat_snapshot.json"
    document = {
        "generated_at": result.generated_at.isoformat(),
        "metrics": metrics.to_dict() if metrics is not None else None,
        "result": result.to_dict(),
    }
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2)
    logger.info(f"  Exported {result.indicator_total} indicators to {output_path}")
    return output_path


def run(config: PipelineConfig, aggregator: ThreatIntelAggregator,
        force: bool = False) -> Tuple[AggregationResult, Path, Path]:
    """
    Execute one aggregation and write its outputs.

    Returns:
        (result, snapshot path, report path)
    """
    logger.info("Stage 1: Aggregating %d enabled sources", aggregator.get_enabled_source_count())
    result = aggregator.get_fresh_aggregation(force_refresh=force)

    logger.info("Stage 2: Running quality checks")
    quality_results = QualityChecker().run_all_checks(result)
    for check in quality_results:
        if not check.passed:
            logger.warning(f"  Quality check {check.check_name} failed: {check.message}")

    logger.info("Stage 3: Exporting snapshot and report")
    snapshot_path = export_snapshot(result, config.output_dir, aggregator.last_metrics)
    reporter = AggregationReporter()
    report = reporter.generate_report(result, quality_results, aggregator.last_metrics)
    report_path = reporter.save_report(report, config.output_dir)
    logger.info(f"  Report: {report_path}")
    return result, snapshot_path, report_path


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Aggregate public threat-intelligence feeds"
    )
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)"
    )
    parser.add_argument(
        "--output-dir",
        help="Override the output directory from the configuration"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Always run a new aggregation cycle"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = load_config(args.config)
        if args.output_dir:
            config = PipelineConfig(
                settings=config.settings,
                sources=config.sources,
                output_dir=Path(args.output_dir),
            )
        aggregator = build_aggregator(config)
        result, _, _ = run(config, aggregator, force=args.force)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(2)
    except AggregationError as e:
        logger.error(f"Aggregation failed: {e}")
        for failed in e.failed_sources:
            logger.error(f"  {failed.source}: {failed.error_kind} ({failed.reason})")
        sys.exit(1)

    formatted = result.formatted
    print("\n" + "=" * 60)
    print("Aggregation Summary")
    print("=" * 60)
    print(f"Sources: {result.successful_sources}/{result.total_sources} succeeded")
    print(f"Indicators: {result.indicator_total}")
    print(f"Risk: {formatted.risk_level} ({formatted.risk_score}/100)")
    print(f"\n{formatted.summary}")
    if result.failed_sources:
        print("\nFailed Sources:")
        for failed in result.failed_sources:
            print(f"  {failed.source:20} {failed.error_kind}")
    print("=" * 60)
    sys.exit(0)


if __name__ == "__main__":
    main()
