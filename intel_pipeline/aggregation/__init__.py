"""
Aggregation layer: concurrent fan-out, merge, result assembly and caching.
"""
from .assembler import ResultAssembler
from .cache import DEFAULT_KEY, AggregationCache
from .coordinator import FanOutCoordinator
from .merge import IndicatorMerger, merge_indicators, merge_pair
from .result import AggregationResult, FailedSource, SourceStats
from .service import ThreatIntelAggregator

__all__ = [
    "FanOutCoordinator",
    "IndicatorMerger",
    "merge_pair",
    "merge_indicators",
    "ResultAssembler",
    "AggregationResult",
    "FailedSource",
    "SourceStats",
    "AggregationCache",
    "DEFAULT_KEY",
    "ThreatIntelAggregator",
]
