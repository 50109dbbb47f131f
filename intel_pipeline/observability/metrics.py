"""
Metrics collection for aggregation runs.

This module provides AggregationMetrics, a dataclass that tracks the
observability metrics for a single aggregation cycle including:
- Source counts (total, succeeded, failed) and failures by error kind
- Indicator counts after merge, duplicates merged, invalid rows dropped
- Per-source health (ok flag, indicators, duration)
- Errors encountered

Design decisions:
- Single metrics object per cycle
- Defaultdict used for automatic initialization of counters
- Serializable to_dict() for the JSON snapshot written by the runner
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class AggregationMetrics:
    """
    Metrics for a single aggregation cycle.

    Filled by the aggregation service while a cycle runs; completed_at is
    set once the cycle finishes, whether it succeeded or not.
    """
    run_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None

    # Core counts
    sources_total: int = 0
    sources_succeeded: int = 0
    sources_failed: int = 0
    indicators_total: int = 0
    duplicates_merged: int = 0
    invalid_rows: int = 0
    errors: int = 0

    # Key: error kind (e.g., "timeout"), Value: count
    failures_by_kind: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    # Key: source name, Value: dict with health status
    source_health: Dict[str, Dict] = field(default_factory=dict)

    # Key: severity, Value: merged indicator count
    severity_counts: Dict[str, int] = field(default_factory=dict)

    risk_score: Optional[int] = None
    risk_level: Optional[str] = None

    issues: List[Dict] = field(default_factory=list)

    def record_source(self, source: str, ok: bool, indicators: int = 0, invalid: int = 0,
                      duration: float = 0.0, error_kind: Optional[str] = None):
        """
        Record the outcome of one feed.

        Args:
            source: Feed name
            ok: True if the feed produced usable records
            indicators: Valid indicators the feed contributed
            invalid: Rows dropped during normalization
            duration: Fetch duration in seconds
            error_kind: Failure kind when ok is False
        """
        self.source_health[source] = {
            "healthy": ok,
            "records": indicators,
            "invalid": invalid,
            "duration": round(duration, 3),
            "error_kind": error_kind,
        }
        self.invalid_rows += invalid
        if ok:
            self.sources_succeeded += 1
        else:
            self.sources_failed += 1
            self.failures_by_kind[error_kind or "unknown"] += 1

    def record_result(self, result) -> None:
        """Copy counters from an assembled AggregationResult."""
        self.sources_total = result.total_sources
        for stats in result.source_stats.values():
            self.record_source(
                stats.source,
                stats.ok,
                indicators=stats.indicators,
                invalid=stats.invalid,
                duration=stats.duration,
                error_kind=stats.error_kind,
            )
        self.indicators_total = result.indicator_total
        self.duplicates_merged = result.duplicates_merged
        self.severity_counts = dict(result.formatted.severity_counts)
        self.risk_score = result.formatted.risk_score
        self.risk_level = result.formatted.risk_level

    def record_error(self, error: str, context: Dict = None):
        """
        Record an error encountered during the cycle.

        Args:
            error: Error message
            context: Optional dict with additional context (e.g., failed sources)
        """
        self.errors += 1
        self.issues.append({
            "type": "error",
            "message": error,
            "context": context or {}
        })

    @property
    def duration(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert metrics to dictionary for JSON serialization.

        Returns:
            Dictionary representation with plain dicts only
        """
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "sources_total": self.sources_total,
            "sources_succeeded": self.sources_succeeded,
            "sources_failed": self.sources_failed,
            "indicators_total": self.indicators_total,
            "duplicates_merged": self.duplicates_merged,
            "invalid_rows": self.invalid_rows,
            "errors": self.errors,
            "failures_by_kind": dict(self.failures_by_kind),
            "source_health": self.source_health,
            "severity_counts": self.severity_counts,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level,
            "issues": self.issues,
        }
