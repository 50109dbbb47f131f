"""
Aggregation result models.

An AggregationResult is assembled once per cycle and never mutated
afterwards; it is what the cache stores and what the runner exports.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..decisioning.classifier import FormattedThreatData
from ..normalization.indicator import Indicator


@dataclass(frozen=True)
class FailedSource:
    source: str
    reason: str
    error_kind: str

    def to_dict(self) -> Dict[str, str]:
        return {"source": self.source, "reason": self.reason, "error_kind": self.error_kind}


@dataclass(frozen=True)
class SourceStats:
    """Per-feed counters for one cycle."""
    source: str
    ok: bool
    indicators: int = 0
    invalid: int = 0
    warnings: int = 0
    duration: float = 0.0
    error_kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "ok": self.ok,
            "indicators": self.indicators,
            "invalid": self.invalid,
            "warnings": self.warnings,
            "duration": round(self.duration, 3),
            "error_kind": self.error_kind,
        }


@dataclass(frozen=True)
class AggregationResult:
    total_sources: int
    successful_sources: int
    failed_sources: Tuple[FailedSource, ...]
    indicators_by_category: Dict[str, Tuple[Indicator, ...]]
    source_stats: Dict[str, SourceStats]
    warnings: Tuple[str, ...]
    generated_at: datetime
    aggregation_time: float
    formatted: FormattedThreatData
    duplicates_merged: int = 0
    query_key: str = "default"
    indicator_total: int = field(init=False)

    def __post_init__(self):
        object.__setattr__(
            self, "indicator_total", sum(len(items) for items in self.indicators_by_category.values())
        )

    @property
    def indicators(self) -> List[Indicator]:
        """All merged indicators sorted by (type, value)."""
        merged = [i for items in self.indicators_by_category.values() for i in items]
        return sorted(merged, key=lambda i: i.key)

    @property
    def failed_source_names(self) -> List[str]:
        return [f.source for f in self.failed_sources]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query_key": self.query_key,
            "total_sources": self.total_sources,
            "successful_sources": self.successful_sources,
            "failed_sources": [f.to_dict() for f in self.failed_sources],
            "indicator_total": self.indicator_total,
            "duplicates_merged": self.duplicates_merged,
            "indicators_by_category": {
                category: [i.to_dict() for i in items]
                for category, items in self.indicators_by_category.items()
            },
            "source_stats": {name: stats.to_dict() for name, stats in self.source_stats.items()},
            "warnings": list(self.warnings),
            "generated_at": self.generated_at.isoformat(),
            "aggregation_time": round(self.aggregation_time, 3),
            "formatted": self.formatted.to_dict(),
        }
