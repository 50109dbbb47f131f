"""
Canonical indicator model.

Every feed, whatever its raw format, is normalized into Indicator records.
Identity is (type, value); provenance lists every feed that reported the
indicator and is kept sorted so equal indicators compare equal regardless
of arrival order.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

SEVERITY_ORDER = ("info", "low", "medium", "high", "critical")
SEVERITY_RANK = {name: rank for rank, name in enumerate(SEVERITY_ORDER)}


def severity_rank(severity: str) -> int:
    return SEVERITY_RANK.get(severity, 0)


def max_severity(a: str, b: str) -> str:
    return a if severity_rank(a) >= severity_rank(b) else b


@dataclass(frozen=True)
class Indicator:
    """One observable of compromise with severity and provenance."""
    type: str                      # ip | domain | url | hash | email | certificate
    value: str                     # normalized per type
    source: str                    # feed whose metadata this record carries
    severity: str = "info"         # critical | high | medium | low | info
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    tags: Tuple[str, ...] = ()
    category: str = "unknown"
    sources: Tuple[str, ...] = field(default=())

    def __post_init__(self):
        provenance = set(self.sources) | {self.source}
        object.__setattr__(self, "sources", tuple(sorted(provenance)))
        object.__setattr__(self, "tags", tuple(sorted(set(self.tags))))
        if self.severity not in SEVERITY_RANK:
            object.__setattr__(self, "severity", "info")

    @property
    def key(self) -> Tuple[str, str]:
        return self.type, self.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "value": self.value,
            "source": self.source,
            "sources": list(self.sources),
            "severity": self.severity,
            "first_seen": self.first_seen.isoformat() if self.first_seen else None,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
            "tags": list(self.tags),
            "category": self.category,
        }
