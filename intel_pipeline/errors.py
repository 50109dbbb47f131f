"""
Error taxonomy for the threat-intelligence aggregation pipeline.

Per-source errors (transport, timeout, HTTP status, malformed payload) are
always recovered inside the ingestion layer and turned into FetchFailure
records. ValidationError is downgraded to a warning by the normalizers.
Only ConfigError and AggregationError reach callers of the service.
"""
from typing import List, Optional


class ThreatIntelError(Exception):
    """Base class for all pipeline errors."""


class TransportError(ThreatIntelError):
    """Network, DNS or TLS failure talking to a feed."""


class FetchTimeoutError(ThreatIntelError):
    """A feed did not answer within its deadline."""


class HttpStatusError(ThreatIntelError):
    """A feed answered with a non-2xx status code."""

    def __init__(self, status_code: int, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class AuthenticationError(ThreatIntelError):
    """Credentials for a feed are missing or were rejected."""


class MalformedPayloadError(ThreatIntelError):
    """A feed body could not be decoded into its declared format."""


class ValidationError(ThreatIntelError):
    """A single record failed field validation."""


class ConfigError(ThreatIntelError):
    """Bad or missing source configuration."""


class AggregationError(ThreatIntelError):
    """
    An aggregation cycle produced no usable result.

    Raised when no sources are enabled or every enabled source failed.
    failed_sources mirrors AggregationResult.failed_sources so callers can
    report which feeds were down.
    """

    def __init__(self, message: str, failed_sources: Optional[List] = None):
        super().__init__(message)
        self.failed_sources = list(failed_sources or [])
