"""
Threat-intelligence aggregation pipeline.

Fetches public threat feeds concurrently, normalizes their records into
canonical indicators, merges duplicates across feeds and classifies the
resulting threat picture.
"""
from .aggregation import AggregationCache, AggregationResult, ThreatIntelAggregator
from .errors import AggregationError, ConfigError, ThreatIntelError

__version__ = "0.1.0"

__all__ = [
    "ThreatIntelAggregator",
    "AggregationResult",
    "AggregationCache",
    "ThreatIntelError",
    "AggregationError",
    "ConfigError",
]
