"""
Threat decisioning layer.

Scores a merged indicator set and derives explainable recommendations
using a priority-ordered rule chain.
"""
from .classifier import FormattedThreatData, RiskClassifier, ThreatMetadata
from .explainer import SummaryExplainer
from .rule_engine import RecommendationEngine
from .rules import RiskContext, Rule, get_default_rules
from .scoring import (
    DetectionCounts,
    compute_risk_score,
    detections_from_sources,
    risk_level_for,
    severity_counts,
    source_verdict,
)


__all__ = [
    'Rule',
    'RiskContext',
    'RecommendationEngine',
    'SummaryExplainer',
    'RiskClassifier',
    'FormattedThreatData',
    'ThreatMetadata',
    'DetectionCounts',
    'compute_risk_score',
    'detections_from_sources',
    'risk_level_for',
    'severity_counts',
    'source_verdict',
    'get_default_rules',
]
