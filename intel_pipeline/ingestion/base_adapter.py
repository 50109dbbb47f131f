"""
Base adapter interface for all feed adapters.

Defines the fetch contract shared by every adapter and the tagged fetch
result (FetchSuccess | FetchFailure) handed from the coordinator to the
normalizer. fetch() never raises: every transport, status, timeout or
decoding problem is captured as a FetchFailure with an error kind.
"""
import logging
import os
import time
import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Type, Union

from ..errors import (
    AuthenticationError,
    FetchTimeoutError,
    HttpStatusError,
    MalformedPayloadError,
    TransportError,
)
from .http_client import HttpBody, HttpClient
from .payloads import RawPayload, payload_size
from .source_config import SourceConfig

logger = logging.getLogger(__name__)


class ErrorKind:
    TIMEOUT = "timeout"
    NETWORK = "network"
    HTTP_STATUS = "http_status"
    RATE_LIMITED = "rate_limited"
    MALFORMED_AUTH = "malformed_auth"
    MALFORMED_PAYLOAD = "malformed_payload"


@dataclass(frozen=True)
class FetchSuccess:
    source: str
    payload: RawPayload
    fetched_at: datetime
    duration: float = 0.0

    ok = True


@dataclass(frozen=True)
class FetchFailure:
    source: str
    error_kind: str
    message: str
    fetched_at: datetime
    duration: float = 0.0

    ok = False


RawFetchResult = Union[FetchSuccess, FetchFailure]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseAdapter(ABC):
    """
    Abstract base class for feed adapters.

    Subclasses only implement decode(); transport, authentication and error
    mapping are shared. Adapters hold no per-call state and can be invoked
    concurrently for different feeds or cycles.
    """

    format: str = ""

    def __init__(self, client: Optional[HttpClient] = None):
        self.client = client or HttpClient()

    def fetch(self, config: SourceConfig, deadline: float) -> RawFetchResult:
        """
        Fetch one feed before the monotonic deadline.

        Args:
            config: Feed configuration
            deadline: time.monotonic() value after which the call counts as timed out

        Returns:
            FetchSuccess with a decoded payload, or FetchFailure
        """
        started = time.monotonic()

        def failure(kind: str, message: str) -> FetchFailure:
            logger.warning("%s failed (%s): %s", config.name, kind, message)
            return FetchFailure(
                source=config.name,
                error_kind=kind,
                message=message,
                fetched_at=utcnow(),
                duration=time.monotonic() - started,
            )

        try:
            headers = {**config.headers, **self._auth_headers(config)}
            body = self.client.fetch(
                config.name,
                config.method,
                config.endpoint,
                deadline,
                data=config.body if config.method == "POST" else None,
                headers=headers,
                rate_limit_per_minute=config.rate_limit_per_minute,
            )
            payload = self.decode(body, config)

        except FetchTimeoutError as e:
            return failure(ErrorKind.TIMEOUT, str(e))
        except AuthenticationError as e:
            return failure(ErrorKind.MALFORMED_AUTH, str(e))
        except HttpStatusError as e:
            if e.status_code == 429:
                return failure(ErrorKind.RATE_LIMITED, str(e))
            if e.status_code in (401, 403):
                return failure(ErrorKind.MALFORMED_AUTH, str(e))
            return failure(ErrorKind.HTTP_STATUS, str(e))
        except TransportError as e:
            return failure(ErrorKind.NETWORK, str(e))
        except MalformedPayloadError as e:
            return failure(ErrorKind.MALFORMED_PAYLOAD, str(e))
        except Exception as e:
            logger.debug("Full traceback:\n%s", traceback.format_exc())
            return failure(ErrorKind.NETWORK, f"{type(e).__name__}: {e}")

        if time.monotonic() > deadline:
            return failure(ErrorKind.TIMEOUT, f"{config.name}: deadline exceeded while decoding")

        duration = time.monotonic() - started
        logger.info("%s fetched %d raw records in %.2fs", config.name, payload_size(payload), duration)
        return FetchSuccess(
            source=config.name,
            payload=payload,
            fetched_at=utcnow(),
            duration=duration,
        )

    @abstractmethod
    def decode(self, body: HttpBody, config: SourceConfig) -> RawPayload:
        """
        Turn a downloaded body into a tagged payload.

        Raises:
            MalformedPayloadError: body does not match the declared format
        """
        pass

    @staticmethod
    def _auth_headers(config: SourceConfig) -> Dict[str, str]:
        if not config.auth_header or not config.api_key_env:
            return {}
        api_key = os.getenv(config.api_key_env, "").strip()
        if api_key:
            return {config.auth_header: api_key}
        if config.api_key_required:
            raise AuthenticationError(f"{config.name}: {config.api_key_env} is not set")
        return {}


_REGISTRY: Dict[str, Type[BaseAdapter]] = {}


def register_adapter(feed_format: str) -> Callable[[Type[BaseAdapter]], Type[BaseAdapter]]:
    def deco(cls: Type[BaseAdapter]) -> Type[BaseAdapter]:
        cls.format = feed_format
        _REGISTRY[feed_format] = cls
        return cls
    return deco


def get_adapter(feed_format: str, client: Optional[HttpClient] = None) -> BaseAdapter:
    """Instantiate the adapter registered for a feed format (KeyError if none)."""
    return _REGISTRY[feed_format](client)


def registered_formats():
    return sorted(_REGISTRY)
