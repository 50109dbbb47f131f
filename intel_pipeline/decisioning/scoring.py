"""
Risk score policy.

The score is a pure function of the merged indicators' severity
distribution and the per-source detection verdicts:

    severity_component  = 70 * (1 - 0.5 ** (points / 25))
    detection_component = 30 * (malicious + 0.5 * suspicious) / verdicts
    risk_score          = round(min(100, severity_component + detection_component))

points weighs each indicator by severity (critical 10, high 5, medium 2,
low 1, info 0). Both components are non-decreasing in every severity count,
so adding a critical indicator never lowers the score.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Sequence

from ..normalization.indicator import SEVERITY_ORDER, Indicator, severity_rank

SEVERITY_POINTS = {"critical": 10, "high": 5, "medium": 2, "low": 1, "info": 0}
SEVERITY_WEIGHT = 70.0
HALF_SATURATION_POINTS = 25.0
DETECTION_WEIGHT = 30.0
SUSPICIOUS_FACTOR = 0.5

# (minimum score, level), highest first
RISK_LEVEL_THRESHOLDS = ((80, "critical"), (60, "high"), (35, "medium"), (10, "low"))


@dataclass(frozen=True)
class DetectionCounts:
    malicious: int = 0
    suspicious: int = 0
    clean: int = 0
    undetected: int = 0

    @property
    def total(self) -> int:
        return self.malicious + self.suspicious + self.clean + self.undetected

    def to_dict(self) -> Dict[str, int]:
        return {
            "malicious": self.malicious,
            "suspicious": self.suspicious,
            "clean": self.clean,
            "undetected": self.undetected,
        }


def severity_counts(indicators: Iterable[Indicator]) -> Dict[str, int]:
    counts = {severity: 0 for severity in SEVERITY_ORDER}
    for indicator in indicators:
        counts[indicator.severity] = counts.get(indicator.severity, 0) + 1
    return counts


def severity_points(counts: Mapping[str, int]) -> int:
    return sum(SEVERITY_POINTS.get(severity, 0) * count for severity, count in counts.items())


def compute_risk_score(counts: Mapping[str, int], detections: DetectionCounts) -> int:
    severity_component = SEVERITY_WEIGHT * (1 - 0.5 ** (severity_points(counts) / HALF_SATURATION_POINTS))

    detection_component = 0.0
    if detections.total:
        weighted = detections.malicious + SUSPICIOUS_FACTOR * detections.suspicious
        detection_component = DETECTION_WEIGHT * weighted / detections.total

    return int(round(min(100.0, severity_component + detection_component)))


def risk_level_for(score: int) -> str:
    for threshold, level in RISK_LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return "info"


def source_verdict(indicators: Sequence[Any]) -> str:
    """
    Verdict for one successful feed from the indicators it contributed.

    high/critical -> malicious, medium/low -> suspicious, otherwise clean.
    """
    top = max((severity_rank(i.severity) for i in indicators), default=0)
    if top >= severity_rank("high"):
        return "malicious"
    if top >= severity_rank("low"):
        return "suspicious"
    return "clean"


def detections_from_sources(
    indicators_by_source: Mapping[str, Sequence[Indicator]],
    failed_count: int,
) -> DetectionCounts:
    verdicts = {"malicious": 0, "suspicious": 0, "clean": 0}
    for indicators in indicators_by_source.values():
        verdicts[source_verdict(indicators)] += 1
    return DetectionCounts(undetected=failed_count, **verdicts)
