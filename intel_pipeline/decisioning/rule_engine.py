"""
Rule engine that builds the recommendation list from a rule chain.

Rules are applied in priority order (lowest first). Every rule that
matches contributes its recommendations; duplicates are dropped while
keeping first-seen order, so the output is deterministic.
"""
from typing import Any, Dict, List, Optional
import logging

from .rules import Rule, RiskContext, get_default_rules


logger = logging.getLogger(__name__)


class RecommendationEngine:
    """
    Deterministic rule engine for threat recommendations.

    Rules are evaluated in priority order (0 is highest priority).
    """

    def __init__(self, rules: Optional[List[Rule]] = None):
        """
        Initialize the rule engine.

        Args:
            rules: List of rules to evaluate. If None, uses default rules.
        """
        self.rules = sorted(rules or get_default_rules(), key=lambda r: r.priority)

    def recommend(self, context: RiskContext) -> List[str]:
        """
        Apply the rule chain to a threat picture.

        Args:
            context: Classified threat picture

        Returns:
            Recommendations in rule-priority order, without duplicates
        """
        recommendations: List[str] = []
        for rule in self.rules:
            try:
                contributed = rule.evaluate(context)
            except Exception as e:
                logger.error(f"Error evaluating rule {rule.rule_id}: {e}", exc_info=True)
                continue

            if not contributed:
                continue
            logger.debug(f"Rule {rule.rule_id} ({rule.reason_code}) contributed {len(contributed)}")
            for text in contributed:
                if text not in recommendations:
                    recommendations.append(text)

        return recommendations

    def explain_recommendations(self, context: RiskContext) -> Dict[str, Any]:
        """
        Get the evaluation trace behind a recommendation list.

        Returns:
            Dictionary with recommendations and per-rule trace
        """
        trace = []
        for rule in self.rules:
            try:
                contributed = rule.evaluate(context)
                trace.append({
                    'rule_id': rule.rule_id,
                    'priority': rule.priority,
                    'reason_code': rule.reason_code,
                    'matched': bool(contributed),
                    'recommendations': contributed or [],
                })
            except Exception as e:
                trace.append({
                    'rule_id': rule.rule_id,
                    'priority': rule.priority,
                    'reason_code': rule.reason_code,
                    'matched': False,
                    'error': str(e),
                })

        return {
            'recommendations': self.recommend(context),
            'evaluation_trace': trace,
            'total_rules_evaluated': len(trace),
        }
