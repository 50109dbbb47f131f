"""
Data quality checks for aggregation outputs.

This module implements QualityChecker, which validates an assembled
AggregationResult before it is exported.

Checks implemented:
- Source accounting: successful + failed must equal total
- Unique keys: no two indicators share (type, value)
- Score range: risk score within 0-100 and consistent with its level
- Failed-source ratio: warn when too many feeds are down
- Invalid-row ratio: warn when feeds send mostly unusable rows
- Provenance: every indicator lists at least one source

Design decisions:
- Each check returns a QualityCheckResult with pass/fail and details
- Checks only read the result, never modify it
- Configurable thresholds where applicable
"""
from dataclasses import dataclass
from typing import Any, Dict, List

from ..decisioning.scoring import risk_level_for


@dataclass
class QualityCheckResult:
    """
    Result of a single quality check.

    Attributes:
        check_name: Unique identifier for the check
        passed: True if check passed, False otherwise
        message: Human-readable summary of the result
        details: Optional dict with additional context (e.g., counts)
    """
    check_name: str
    passed: bool
    message: str
    details: Dict[str, Any] = None


class QualityChecker:
    """
    Runs data quality checks against an AggregationResult.

    Args:
        max_failed_ratio: Highest tolerated share of failed feeds
        max_invalid_ratio: Highest tolerated share of invalid rows
    """

    def __init__(self, max_failed_ratio: float = 0.5, max_invalid_ratio: float = 0.25):
        self.max_failed_ratio = max_failed_ratio
        self.max_invalid_ratio = max_invalid_ratio

    def run_all_checks(self, result) -> List[QualityCheckResult]:
        """
        Run all quality checks.

        Returns:
            List of QualityCheckResult objects, one per check
        """
        return [
            self.check_source_accounting(result),
            self.check_unique_keys(result),
            self.check_score_range(result),
            self.check_failed_ratio(result),
            self.check_invalid_ratio(result),
            self.check_provenance(result),
        ]

    def check_source_accounting(self, result) -> QualityCheckResult:
        """Every queried feed is either a success or a listed failure."""
        accounted = result.successful_sources + len(result.failed_sources)
        passed = accounted == result.total_sources
        return QualityCheckResult(
            check_name="source_accounting",
            passed=passed,
            message=(
                f"{result.successful_sources} ok + {len(result.failed_sources)} failed "
                f"of {result.total_sources} sources"
            ),
            details={"accounted": accounted, "total": result.total_sources}
        )

    def check_unique_keys(self, result) -> QualityCheckResult:
        keys = [i.key for i in result.indicators]
        duplicates = len(keys) - len(set(keys))
        return QualityCheckResult(
            check_name="unique_keys",
            passed=duplicates == 0,
            message=f"{duplicates} duplicate indicator keys" if duplicates else "All indicator keys unique",
            details={"duplicate_count": duplicates}
        )

    def check_score_range(self, result) -> QualityCheckResult:
        score = result.formatted.risk_score
        level = result.formatted.risk_level
        in_range = 0 <= score <= 100
        consistent = in_range and risk_level_for(score) == level
        return QualityCheckResult(
            check_name="score_range",
            passed=consistent,
            message=f"Risk score {score} ({level})" if consistent else f"Risk score {score} inconsistent with {level}",
            details={"risk_score": score, "risk_level": level}
        )

    def check_failed_ratio(self, result) -> QualityCheckResult:
        """
        Warn when a large share of feeds failed.

        Warning threshold: max_failed_ratio of total sources
        """
        failed = len(result.failed_sources)
        ratio = failed / result.total_sources if result.total_sources else 0.0
        return QualityCheckResult(
            check_name="failed_source_ratio",
            passed=ratio <= self.max_failed_ratio,
            message=f"{failed} of {result.total_sources} sources failed" if failed else "All sources answered",
            details={"failed_count": failed, "ratio": round(ratio, 3)}
        )

    def check_invalid_ratio(self, result) -> QualityCheckResult:
        invalid = sum(s.invalid for s in result.source_stats.values())
        rows = invalid + sum(s.indicators for s in result.source_stats.values())
        ratio = invalid / rows if rows else 0.0
        return QualityCheckResult(
            check_name="invalid_row_ratio",
            passed=ratio <= self.max_invalid_ratio,
            message=f"{invalid} of {rows} rows invalid" if invalid else "No invalid rows",
            details={"invalid_count": invalid, "ratio": round(ratio, 3)}
        )

    def check_provenance(self, result) -> QualityCheckResult:
        missing = sum(1 for i in result.indicators if not i.sources)
        return QualityCheckResult(
            check_name="provenance",
            passed=missing == 0,
            message=f"{missing} indicators without provenance" if missing else "All indicators have provenance",
            details={"missing_count": missing}
        )
