"""
Ingestion layer for the threat-intelligence aggregation pipeline.

Provides feed configuration, the shared HTTP transport and one adapter per
raw format family:
- JSON feeds (ThreatFox, MalwareBazaar, URLhaus, Feodo Tracker, SSLBL)
- CSV feeds (PhishTank)
- Plaintext feeds (OpenPhish, blocklist.de)
"""
from .base_adapter import (
    BaseAdapter,
    ErrorKind,
    FetchFailure,
    FetchSuccess,
    RawFetchResult,
    get_adapter,
    register_adapter,
)
from .catalog import DEFAULT_FEEDS, default_feeds_by_name
from .feed_adapters import CsvFeedAdapter, JsonFeedAdapter, TextFeedAdapter
from .http_client import HttpBody, HttpClient, RateLimiter
from .payloads import DelimitedText, JsonArray, JsonObjectWrapped, PlainLines, RawPayload
from .source_config import FieldSchema, SourceConfig

__all__ = [
    "BaseAdapter",
    "ErrorKind",
    "FetchSuccess",
    "FetchFailure",
    "RawFetchResult",
    "get_adapter",
    "register_adapter",
    "JsonFeedAdapter",
    "CsvFeedAdapter",
    "TextFeedAdapter",
    "HttpClient",
    "HttpBody",
    "RateLimiter",
    "JsonArray",
    "JsonObjectWrapped",
    "DelimitedText",
    "PlainLines",
    "RawPayload",
    "FieldSchema",
    "SourceConfig",
    "DEFAULT_FEEDS",
    "default_feeds_by_name",
]
