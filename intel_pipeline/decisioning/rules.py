"""
Recommendation rules.

Each rule inspects the classified threat picture and returns the
recommendations it contributes, or None when it does not apply. Unlike a
first-match chain every matching rule contributes; priority only fixes the
order recommendations are listed in.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..normalization.indicator import Indicator


@dataclass
class RiskContext:
    """Everything a rule may look at. Built once per classification."""
    indicators: Sequence[Indicator]
    severity_counts: Dict[str, int]
    risk_score: int
    risk_level: str
    failed_sources: int = 0
    total_sources: int = 0
    categories: List[str] = field(default_factory=list)


class Rule(ABC):
    """Base class for all recommendation rules."""

    def __init__(self, rule_id: str, priority: int, reason_code: str):
        self.rule_id = rule_id
        self.priority = priority
        self.reason_code = reason_code

    @abstractmethod
    def evaluate(self, context: RiskContext) -> Optional[List[str]]:
        """
        Evaluate the rule against the threat picture.

        Returns recommendations if the rule applies, None otherwise.
        """
        pass

    @staticmethod
    def _count(context: RiskContext, types: Sequence[str], category: Optional[str] = None,
               severity: Optional[str] = None) -> int:
        return sum(
            1 for i in context.indicators
            if i.type in types
            and (category is None or i.category == category)
            and (severity is None or i.severity == severity)
        )


class CriticalMalwareHashRule(Rule):
    """R0: critical malware samples seen."""

    def __init__(self):
        super().__init__("R0", 0, "CRITICAL_MALWARE_HASH")

    def evaluate(self, context: RiskContext) -> Optional[List[str]]:
        count = self._count(context, ("hash",), severity="critical")
        if not count:
            return None
        return [
            f"Isolate any host where the {count} critical malware hash(es) were observed "
            "and start incident response",
            "Add the critical hashes to EDR and mail-gateway block lists",
        ]


class BotnetC2Rule(Rule):
    """R1: botnet command-and-control infrastructure."""

    def __init__(self):
        super().__init__("R1", 1, "BOTNET_C2")

    def evaluate(self, context: RiskContext) -> Optional[List[str]]:
        count = self._count(context, ("ip", "domain"), category="botnet_c2")
        if not count:
            return None
        return [f"Block egress traffic to {count} botnet C2 address(es) at the perimeter firewall"]


class PhishingRule(Rule):
    """R2: phishing URLs or domains."""

    def __init__(self):
        super().__init__("R2", 2, "PHISHING")

    def evaluate(self, context: RiskContext) -> Optional[List[str]]:
        count = self._count(context, ("url", "domain"), category="phishing")
        if not count:
            return None
        return [f"Add {count} phishing URL(s)/domain(s) to web proxy and mail gateway block lists"]


class RiskLevelRule(Rule):
    """R3: general guidance by overall risk level. Always applies."""

    GUIDANCE = {
        "critical": [
            "Block these indicators immediately in your security controls",
            "Investigate any systems that have communicated with these indicators",
            "Review logs for signs of compromise",
        ],
        "medium": [
            "Monitor traffic to and from these indicators closely",
            "Consider implementing additional controls",
        ],
        "info": [
            "No immediate action required based on current intelligence",
            "Continue monitoring for new threat intelligence",
        ],
    }

    def __init__(self):
        super().__init__("R3", 3, "RISK_LEVEL")

    def evaluate(self, context: RiskContext) -> Optional[List[str]]:
        if context.risk_level in ("critical", "high"):
            return list(self.GUIDANCE["critical"])
        if context.risk_level == "medium":
            return list(self.GUIDANCE["medium"])
        return list(self.GUIDANCE["info"])


class PartialCoverageRule(Rule):
    """R4: some feeds were unavailable in this cycle."""

    def __init__(self):
        super().__init__("R4", 4, "PARTIAL_COVERAGE")

    def evaluate(self, context: RiskContext) -> Optional[List[str]]:
        if not context.failed_sources:
            return None
        return [
            f"{context.failed_sources} of {context.total_sources} feeds were unavailable; "
            "coverage is partial, re-run the aggregation later"
        ]


def get_default_rules() -> List[Rule]:
    return [
        CriticalMalwareHashRule(),
        BotnetC2Rule(),
        PhishingRule(),
        RiskLevelRule(),
        PartialCoverageRule(),
    ]
