"""
Merge and de-duplication of indicators across feeds.

Indicators are keyed by (type, value). When two records share a key the
merged record keeps:
- the union of their provenance
- the higher severity
- the later last_seen
- source, first_seen, tags and category of the "winning" record

The winner is the maximum under a total order (severity, then earliest
first_seen, then source name, then tags), which makes merge_pair
commutative and associative: any arrival order gives the same mapping.
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from ..normalization.indicator import Indicator, max_severity, severity_rank

IndicatorKey = Tuple[str, str]

_LATEST = datetime.max.replace(tzinfo=timezone.utc)


def _winner_key(indicator: Indicator):
    first_seen = indicator.first_seen or _LATEST
    # min() over this key picks the winner
    return (-severity_rank(indicator.severity), first_seen, indicator.source, indicator.tags)


def _latest(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def merge_pair(a: Indicator, b: Indicator) -> Indicator:
    """Merge two indicators with the same key."""
    if a.key != b.key:
        raise ValueError(f"Cannot merge different indicators {a.key} and {b.key}")

    winner = min(a, b, key=_winner_key)
    return Indicator(
        type=winner.type,
        value=winner.value,
        source=winner.source,
        severity=max_severity(a.severity, b.severity),
        first_seen=winner.first_seen,
        last_seen=_latest(a.last_seen, b.last_seen),
        tags=winner.tags,
        category=winner.category,
        sources=tuple(set(a.sources) | set(b.sources)),
    )


class IndicatorMerger:
    """
    Accumulates indicators from any number of feeds into a de-duplicated map.

    Not thread-safe; the pipeline merges only after every fetch has settled.
    """

    def __init__(self):
        self._by_key: Dict[IndicatorKey, Indicator] = {}
        self.duplicates = 0

    def add(self, indicator: Indicator) -> None:
        existing = self._by_key.get(indicator.key)
        if existing is None:
            self._by_key[indicator.key] = indicator
            return
        self.duplicates += 1
        self._by_key[indicator.key] = merge_pair(existing, indicator)

    def add_all(self, indicators: Iterable[Indicator]) -> None:
        for indicator in indicators:
            self.add(indicator)

    def mapping(self) -> Dict[IndicatorKey, Indicator]:
        return dict(self._by_key)

    def indicators(self) -> List[Indicator]:
        """Merged indicators sorted by key, so output order never depends on arrival order."""
        return [self._by_key[key] for key in sorted(self._by_key)]

    def __len__(self) -> int:
        return len(self._by_key)


def merge_indicators(indicators: Iterable[Indicator]) -> List[Indicator]:
    merger = IndicatorMerger()
    merger.add_all(indicators)
    return merger.indicators()
