"""
Summary generator for classified threat data.

Produces a human-readable one-paragraph summary from the risk level and
the evidence gathered during classification.
"""
from typing import Any, Dict, Optional
import logging


logger = logging.getLogger(__name__)


class SummaryExplainer:
    """
    Generates analyst-facing summaries.

    Templates are keyed by summary code and filled from an evidence dict;
    missing values fall back to defaults so a summary is always produced.
    """

    DEFAULT_TEMPLATES = {
        'THREATS_FOUND': (
            "{risk_level_title} risk: {indicator_count} unique indicators from "
            "{successful_sources} of {total_sources} feeds "
            "({critical} critical, {high} high). Top categories: {categories_list}."
        ),
        'LOW_ACTIVITY': (
            "{risk_level_title} risk: {indicator_count} unique indicators from "
            "{successful_sources} of {total_sources} feeds, none rated high or critical."
        ),
        'NO_INDICATORS': (
            "No threat indicators reported by {successful_sources} of {total_sources} feeds."
        ),
        'DEFAULT': (
            "Threat picture assembled by aggregation pipeline."
        ),
    }

    DEFAULTS = {
        'risk_level': 'info',
        'indicator_count': '0',
        'successful_sources': '0',
        'total_sources': '0',
        'critical': '0',
        'high': '0',
        'categories_list': 'none',
    }

    def __init__(self, templates: Optional[Dict[str, str]] = None):
        """
        Initialize explainer with templates.

        Args:
            templates: Custom summary templates by code.
                      If None, uses default templates.
        """
        self.templates = templates or self.DEFAULT_TEMPLATES

    @staticmethod
    def summary_code(evidence: Dict[str, Any]) -> str:
        if not evidence.get('indicator_count'):
            return 'NO_INDICATORS'
        if evidence.get('critical') or evidence.get('high'):
            return 'THREATS_FOUND'
        return 'LOW_ACTIVITY'

    def explain(self, evidence: Dict[str, Any], code: Optional[str] = None) -> str:
        """
        Generate summary from evidence.

        Args:
            evidence: Evidence dictionary with substitution values
            code: Template code; derived from evidence when omitted

        Returns:
            Human-readable summary string
        """
        code = code or self.summary_code(evidence)
        template = self.templates.get(code, self.templates.get('DEFAULT', ''))
        values = self._prepare_values(evidence)

        try:
            return template.format(**values).strip()
        except KeyError as e:
            logger.warning(f"Missing template variable {e} for summary code {code}")
            return f"Risk level {values['risk_level']}: {values['indicator_count']} indicators."

    def _prepare_values(self, evidence: Dict[str, Any]) -> Dict[str, str]:
        values = dict(self.DEFAULTS)
        for key, value in evidence.items():
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                values[key] = ', '.join(str(v) for v in value) if value else 'none'
            else:
                values[key] = str(value)

        if 'categories' in evidence:
            categories = list(evidence['categories'] or [])[:3]
            values['categories_list'] = ', '.join(categories) if categories else 'none'

        values['risk_level_title'] = values['risk_level'].capitalize()
        return values
