"""
Observability layer for the aggregation pipeline.

This module provides metrics collection, quality checks, and reporting
for aggregation cycles.

Main exports:
- AggregationMetrics: Tracks metrics for one cycle
- QualityChecker: Runs data quality checks on a result
- QualityCheckResult: Result of a quality check
- AggregationReporter: Generates Markdown reports
"""
from .metrics import AggregationMetrics
from .quality_checks import QualityChecker, QualityCheckResult
from .reporter import AggregationReporter

__all__ = [
    "AggregationMetrics",
    "QualityChecker",
    "QualityCheckResult",
    "AggregationReporter",
]
