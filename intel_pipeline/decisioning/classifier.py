"""
Risk classifier.

Turns a merged indicator set and detection counts into FormattedThreatData.
Pure and deterministic: no I/O, no clock reads, identical inputs give
identical output.
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..normalization.indicator import Indicator
from .explainer import SummaryExplainer
from .rule_engine import RecommendationEngine
from .rules import RiskContext
from .scoring import (
    DetectionCounts,
    compute_risk_score,
    risk_level_for,
    severity_counts,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThreatMetadata:
    """Enrichment details. Only populated for single-indicator lookups."""
    asn: Optional[str] = None
    country: Optional[str] = None
    owner: Optional[str] = None
    last_analysis: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asn": self.asn,
            "country": self.country,
            "owner": self.owner,
            "last_analysis": self.last_analysis.isoformat() if self.last_analysis else None,
        }


@dataclass(frozen=True)
class FormattedThreatData:
    summary: str
    risk_level: str
    risk_score: int
    detections: DetectionCounts
    categories: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    severity_counts: Dict[str, int] = field(default_factory=dict)
    metadata: ThreatMetadata = field(default_factory=ThreatMetadata)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "risk_level": self.risk_level,
            "risk_score": self.risk_score,
            "detections": self.detections.to_dict(),
            "categories": list(self.categories),
            "recommendations": list(self.recommendations),
            "severity_counts": dict(self.severity_counts),
            "metadata": self.metadata.to_dict(),
        }


class RiskClassifier:
    """
    Classifies a merged indicator set.

    Args:
        engine: Recommendation rule engine (default rule chain if None)
        explainer: Summary generator (default templates if None)
    """

    def __init__(
        self,
        engine: Optional[RecommendationEngine] = None,
        explainer: Optional[SummaryExplainer] = None,
    ):
        self.engine = engine or RecommendationEngine()
        self.explainer = explainer or SummaryExplainer()

    def classify(
        self,
        indicators: Sequence[Indicator],
        detections: Optional[DetectionCounts] = None,
        failed_sources: int = 0,
        total_sources: Optional[int] = None,
        analysed_at: Optional[datetime] = None,
        metadata: Optional[ThreatMetadata] = None,
    ) -> FormattedThreatData:
        """
        Classify merged indicators.

        Args:
            indicators: Merged, de-duplicated indicators
            detections: Per-source verdicts (all zero if None)
            failed_sources: Number of feeds that failed this cycle
            total_sources: Number of feeds queried (detections total if None)
            analysed_at: Timestamp recorded as last_analysis
            metadata: Enrichment details for single-indicator lookups

        Returns:
            FormattedThreatData
        """
        detections = detections or DetectionCounts()
        if total_sources is None:
            total_sources = detections.total

        counts = severity_counts(indicators)
        score = compute_risk_score(counts, detections)
        level = risk_level_for(score)
        categories = self._rank_categories(indicators)

        context = RiskContext(
            indicators=indicators,
            severity_counts=counts,
            risk_score=score,
            risk_level=level,
            failed_sources=failed_sources,
            total_sources=total_sources,
            categories=categories,
        )
        recommendations = self.engine.recommend(context)

        summary = self.explainer.explain({
            'risk_level': level,
            'indicator_count': len(indicators),
            'successful_sources': total_sources - failed_sources,
            'total_sources': total_sources,
            'critical': counts.get('critical', 0),
            'high': counts.get('high', 0),
            'categories': categories,
        })

        logger.debug("Classified %d indicators: score=%d level=%s", len(indicators), score, level)

        base = metadata or ThreatMetadata()
        return FormattedThreatData(
            summary=summary,
            risk_level=level,
            risk_score=score,
            detections=detections,
            categories=categories,
            recommendations=recommendations,
            severity_counts=counts,
            metadata=ThreatMetadata(
                asn=base.asn,
                country=base.country,
                owner=base.owner,
                last_analysis=analysed_at or base.last_analysis,
            ),
        )

    @staticmethod
    def _rank_categories(indicators: Sequence[Indicator]) -> List[str]:
        """Categories by indicator count, most common first; ties by name."""
        counts = Counter(i.category for i in indicators)
        return [name for name, _ in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))]
