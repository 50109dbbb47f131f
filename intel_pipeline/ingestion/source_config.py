"""
Source configuration models.

A SourceConfig describes one threat-intelligence feed: where it lives, how
to call it, what format it answers in, and how its records map onto the
canonical Indicator schema (FieldSchema). Configs are frozen once built;
enabling or disabling a feed produces a new config.
"""
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional, Tuple

from ..errors import ConfigError

HTTP_METHODS = ("GET", "POST")
FEED_FORMATS = ("json", "csv", "text")
INDICATOR_TYPES = ("ip", "domain", "url", "hash", "email", "certificate")
SEVERITIES = ("critical", "high", "medium", "low", "info")


@dataclass(frozen=True)
class FieldSchema:
    """
    Declarative mapping from a feed's raw record to Indicator fields.

    Every *_fields attribute lists candidate keys in preference order; the
    first key holding a non-empty value wins.
    """
    items_key: Optional[str] = None                # JSON key holding the record array
    value_fields: Tuple[str, ...] = ("ioc", "value", "indicator")
    indicator_type: Optional[str] = None           # fixed type for single-type feeds
    type_field: Optional[str] = None               # raw key carrying the record's type
    type_aliases: Dict[str, str] = field(default_factory=dict)
    severity: Optional[str] = None                 # fixed severity for the feed
    severity_field: Optional[str] = None
    confidence_field: Optional[str] = None         # 0-100 confidence mapped to severity
    tags_field: Optional[str] = None
    extra_tag_fields: Tuple[str, ...] = ()         # scalar fields folded into tags
    first_seen_fields: Tuple[str, ...] = ("first_seen",)
    last_seen_fields: Tuple[str, ...] = ("last_seen",)

    def __post_init__(self):
        if self.indicator_type and self.indicator_type not in INDICATOR_TYPES:
            raise ConfigError(f"Unknown indicator type: {self.indicator_type}")
        if self.severity and self.severity not in SEVERITIES:
            raise ConfigError(f"Unknown severity: {self.severity}")
        for raw, canonical in self.type_aliases.items():
            if canonical not in INDICATOR_TYPES:
                raise ConfigError(f"Type alias {raw!r} maps to unknown type {canonical!r}")
        if not self.value_fields:
            raise ConfigError("FieldSchema needs at least one value field")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FieldSchema":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown schema keys: {', '.join(sorted(unknown))}")

        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key.endswith("_fields"):
                kwargs[key] = (value,) if isinstance(value, str) else tuple(value)
            elif key == "type_aliases":
                kwargs[key] = {str(k).lower(): str(v) for k, v in (value or {}).items()}
            else:
                kwargs[key] = value
        return cls(**kwargs)


@dataclass(frozen=True)
class SourceConfig:
    """Identity and transport settings for one feed."""
    name: str
    category: str
    endpoint: str
    method: str = "GET"
    format: str = "json"
    enabled: bool = True
    timeout: float = 30.0
    rate_limit_per_minute: Optional[int] = None
    body: Dict[str, str] = field(default_factory=dict)       # form body for POST feeds
    headers: Dict[str, str] = field(default_factory=dict)
    auth_header: Optional[str] = None
    api_key_env: Optional[str] = None
    api_key_required: bool = False
    schema: FieldSchema = field(default_factory=FieldSchema)

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ConfigError("Source name must not be empty")
        if not self.category:
            raise ConfigError(f"{self.name}: category must not be empty")
        if self.method not in HTTP_METHODS:
            raise ConfigError(f"{self.name}: unsupported method {self.method!r}")
        if self.format not in FEED_FORMATS:
            raise ConfigError(f"{self.name}: unsupported format {self.format!r}")
        if not str(self.endpoint).startswith(("http://", "https://")):
            raise ConfigError(f"{self.name}: endpoint must be an http(s) URL")
        if not isinstance(self.timeout, (int, float)) or self.timeout <= 0:
            raise ConfigError(f"{self.name}: timeout must be a positive number")
        if self.rate_limit_per_minute is not None and self.rate_limit_per_minute <= 0:
            raise ConfigError(f"{self.name}: rate_limit_per_minute must be positive")
        if self.api_key_required and not (self.auth_header and self.api_key_env):
            raise ConfigError(f"{self.name}: api_key_required needs auth_header and api_key_env")

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "SourceConfig":
        """Build a config from a YAML/dict entry; raises ConfigError on bad input."""
        if not isinstance(data, dict):
            raise ConfigError(f"{name}: source entry must be a mapping")
        known = {f.name for f in fields(cls)} - {"name"}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"{name}: unknown keys {', '.join(sorted(unknown))}")

        kwargs = dict(data)
        kwargs["schema"] = FieldSchema.from_dict(data.get("schema"))
        kwargs["method"] = str(data.get("method", "GET")).upper()
        try:
            return cls(name=name, **kwargs)
        except TypeError as exc:
            raise ConfigError(f"{name}: {exc}") from exc

    def with_enabled(self, enabled: bool) -> "SourceConfig":
        return replace(self, enabled=enabled)

    def merged_with(self, overrides: Dict[str, Any]) -> "SourceConfig":
        """Return a copy with top-level overrides applied (schema is replaced wholesale)."""
        if not overrides:
            return self
        known = {f.name for f in fields(self)} - {"name"}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigError(f"{self.name}: unknown keys {', '.join(sorted(unknown))}")
        changes = dict(overrides)
        if "schema" in changes:
            changes["schema"] = FieldSchema.from_dict(changes["schema"])
        if "method" in changes:
            changes["method"] = str(changes["method"]).upper()
        return replace(self, **changes)
