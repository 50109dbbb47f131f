"""
HTTP transport shared by the feed adapters.

Provides per-feed rate limiting, deadline-bounded downloads and mapping of
transport problems onto the pipeline's error taxonomy. There is no retry
here: a failed feed is retried on the next aggregation cycle.
"""
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Dict, Optional

import requests

from ..errors import FetchTimeoutError, HttpStatusError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "intel-pipeline/1.0 (+threat-intel aggregation)"
CHUNK_SIZE = 64 * 1024


@dataclass
class HttpBody:
    status_code: int
    content: bytes
    encoding: Optional[str]
    content_type: str = ""

    @property
    def text(self) -> str:
        try:
            return self.content.decode(self.encoding or "utf-8", errors="replace")
        except LookupError:
            logger.debug("Unknown charset %r, decoding as UTF-8", self.encoding)
            return self.content.decode("utf-8", errors="replace")


def declared_encoding(headers) -> Optional[str]:
    """
    Charset named in the Content-Type header, or None.

    requests falls back to ISO-8859-1 for any text/* answer without a
    charset; feeds without one are decoded as UTF-8 instead.
    """
    if "charset" not in headers.get("Content-Type", "").lower():
        return None
    return requests.utils.get_encoding_from_headers(headers)


class RateLimiter:
    """
    Token bucket rate limiter, safe to share between threads.

    A caller reserves its token under the lock and sleeps outside it, so
    concurrent callers queue up without blocking each other's bookkeeping.
    """

    def __init__(self, rate_per_minute: Optional[int], burst: int = 1):
        self.rate_per_minute = rate_per_minute
        self.burst = burst
        self._tokens = float(burst)
        self._last_refill = time.monotonic()
        self._lock = threading.Lock()

    def reserve(self, max_wait: Optional[float] = None) -> Optional[float]:
        """
        Take a token and return how long the caller must wait before using it.

        Args:
            max_wait: Longest wait the caller accepts. If the token would
                only be usable later, no token is taken and None is returned.
        """
        if not self.rate_per_minute:
            return 0.0

        with self._lock:
            self._refill()
            wait = max(0.0, 1 - self._tokens) / (self.rate_per_minute / 60.0)
            if max_wait is not None and wait > max_wait:
                return None
            self._tokens -= 1
            return wait

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_refill
        refill_rate = self.rate_per_minute / 60.0
        self._tokens = min(self.burst, self._tokens + elapsed * refill_rate)
        self._last_refill = now


_limiters: Dict[str, RateLimiter] = {}
_limiters_lock = threading.Lock()


def limiter_for(source: str, rate_per_minute: Optional[int]) -> RateLimiter:
    """Process-wide limiter per feed, so the hint holds across cycles."""
    with _limiters_lock:
        limiter = _limiters.get(source)
        if limiter is None or limiter.rate_per_minute != rate_per_minute:
            limiter = RateLimiter(rate_per_minute)
            _limiters[source] = limiter
        return limiter


class HttpClient:
    """Deadline-aware HTTP client. One session per request keeps it thread-safe."""

    def __init__(
        self,
        session_factory: Callable[[], requests.Session] = requests.Session,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.session_factory = session_factory
        self.user_agent = user_agent

    def fetch(
        self,
        source: str,
        method: str,
        url: str,
        deadline: float,
        data: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        rate_limit_per_minute: Optional[int] = None,
    ) -> HttpBody:
        """
        Download one feed body before the monotonic deadline.

        Raises:
            FetchTimeoutError: deadline passed before the body was complete
            TransportError: connection, DNS or TLS failure
            HttpStatusError: non-2xx answer (retry_after set for 429)
        """
        limiter = limiter_for(source, rate_limit_per_minute)
        wait = limiter.reserve(max_wait=deadline - time.monotonic())
        if wait is None:
            raise FetchTimeoutError(f"{source}: rate limit wait exceeds deadline")
        if wait:
            logger.debug("%s: rate limited locally, sleeping %.2fs", source, wait)
            time.sleep(wait)

        remaining = self._remaining(source, deadline)
        request_headers = {"User-Agent": self.user_agent, **(headers or {})}

        session = self.session_factory()
        try:
            try:
                response = session.request(
                    method,
                    url,
                    data=data or None,
                    headers=request_headers,
                    timeout=remaining,
                    stream=True,
                )
            except requests.Timeout as exc:
                raise FetchTimeoutError(f"{source}: {exc}") from exc
            except requests.RequestException as exc:
                raise TransportError(f"{source}: {type(exc).__name__}: {exc}") from exc

            try:
                self._check_status(source, response)
                content = self._read_body(source, response, deadline)
            finally:
                response.close()

            return HttpBody(
                status_code=response.status_code,
                content=content,
                encoding=declared_encoding(response.headers),
                content_type=response.headers.get("Content-Type", ""),
            )
        finally:
            session.close()

    def _check_status(self, source: str, response: requests.Response) -> None:
        if response.status_code == 429:
            retry_after = self._retry_after_seconds(response)
            hint = f", retry after {retry_after:.0f}s" if retry_after is not None else ""
            raise HttpStatusError(429, f"{source}: HTTP 429 rate limited{hint}", retry_after)
        if not 200 <= response.status_code < 300:
            raise HttpStatusError(response.status_code, f"{source}: HTTP {response.status_code}")

    def _read_body(self, source: str, response: requests.Response, deadline: float) -> bytes:
        chunks = []
        try:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if chunk:
                    chunks.append(chunk)
                if time.monotonic() >= deadline:
                    raise FetchTimeoutError(f"{source}: deadline exceeded while reading body")
        except requests.Timeout as exc:
            raise FetchTimeoutError(f"{source}: {exc}") from exc
        except requests.RequestException as exc:
            raise TransportError(f"{source}: {type(exc).__name__}: {exc}") from exc
        return b"".join(chunks)

    @staticmethod
    def _remaining(source: str, deadline: float) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise FetchTimeoutError(f"{source}: deadline exceeded before request")
        return remaining

    @staticmethod
    def _retry_after_seconds(response: requests.Response) -> Optional[float]:
        value = response.headers.get("Retry-After")
        if not value:
            return None

        try:
            return float(value)
        except ValueError:
            try:
                dt = parsedate_to_datetime(value)
                if dt.tzinfo is None:
                    dt = dt.replace(tzinfo=timezone.utc)
                return max(0.0, (dt - datetime.now(timezone.utc)).total_seconds())
            except (TypeError, ValueError):
                logger.debug("Unable to parse Retry-After header: %s", value)
                return None
