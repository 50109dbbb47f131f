"""
Field validation and value normalization per indicator type.

normalize_value() returns the canonical string for a raw value or None when
the value is not a valid instance of the type. Callers turn None into a
dropped record plus a warning.
"""
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DOMAIN_RE = re.compile(
    r"^(?=.{1,253}$)(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$"
)
IPV4_RE = re.compile(r"^(?:[0-9]{1,3}\.){3}[0-9]{1,3}$")
HASH_RE = re.compile(r"^(?:[a-f0-9]{32}|[a-f0-9]{40}|[a-f0-9]{64}|[a-f0-9]{96})$")
SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
URL_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value))


def is_valid_ipv4(value: str) -> bool:
    if not IPV4_RE.match(value):
        return False
    return all(int(octet) <= 255 for octet in value.split("."))


def is_valid_domain(value: str) -> bool:
    return bool(DOMAIN_RE.match(value))


def normalize_email(raw: str) -> Optional[str]:
    value = raw.strip().lower()
    return value if is_valid_email(value) else None


def normalize_ip(raw: str) -> Optional[str]:
    value = raw.strip()
    # ThreatFox reports ip:port
    if value.count(":") == 1:
        value = value.split(":", 1)[0]
    if not is_valid_ipv4(value):
        return None
    # 010.0.0.1 and 10.0.0.1 are the same address
    return ".".join(str(int(octet)) for octet in value.split("."))


def normalize_domain(raw: str) -> Optional[str]:
    """Lower-case, strip scheme, path and port; None unless label+TLD shaped."""
    value = raw.strip().lower()
    value = SCHEME_RE.sub("", value)
    value = value.split("/", 1)[0].split("?", 1)[0].split("#", 1)[0]
    if value.count(":") == 1:
        value = value.split(":", 1)[0]
    value = value.rstrip(".")
    return value if is_valid_domain(value) else None


def normalize_url(raw: str) -> Optional[str]:
    """Trim and lower-case scheme and host; path and query keep their case."""
    value = raw.strip()
    if not URL_RE.match(value):
        return None
    try:
        parts = urlsplit(value)
        host = parts.hostname
    except ValueError:
        return None
    if not host:
        return None
    netloc = parts.netloc.lower() if "@" not in parts.netloc else parts.netloc
    return urlunsplit((parts.scheme.lower(), netloc, parts.path, parts.query, parts.fragment))


def normalize_hash(raw: str) -> Optional[str]:
    value = raw.strip().lower()
    return value if HASH_RE.match(value) else None


def normalize_certificate(raw: str) -> Optional[str]:
    """SSL certificate fingerprints, with or without colon separators."""
    value = raw.strip().lower().replace(":", "")
    return value if re.match(r"^(?:[a-f0-9]{40}|[a-f0-9]{64})$", value) else None


NORMALIZERS: Dict[str, Callable[[str], Optional[str]]] = {
    "ip": normalize_ip,
    "domain": normalize_domain,
    "url": normalize_url,
    "hash": normalize_hash,
    "email": normalize_email,
    "certificate": normalize_certificate,
}


def normalize_value(indicator_type: str, raw: Any) -> Optional[str]:
    if raw is None:
        return None
    normalizer = NORMALIZERS.get(indicator_type)
    if normalizer is None:
        return None
    return normalizer(str(raw))


def classify_indicator(raw: str) -> str:
    """Best-effort type detection for feeds that do not declare one."""
    v = raw.strip()
    if URL_RE.match(v):
        return "url"
    if normalize_ip(v):
        return "ip"
    if normalize_hash(v):
        return "hash"
    if is_valid_email(v.lower()):
        return "email"
    if is_valid_domain(v.lower()):
        return "domain"
    return "unknown"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse feed timestamps into aware UTC datetimes.

    Accepts datetimes, epoch seconds (or milliseconds), ISO-8601 strings and
    the "YYYY-MM-DD HH:MM:SS" form abuse.ch uses. Naive values are taken as
    UTC. Anything else yields None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e12 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if text.endswith(" UTC"):
        text = text[:-4]
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        parsed = None
        for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d", "%d/%m/%Y"):
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
