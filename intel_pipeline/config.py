"""
YAML configuration for the aggregation runner.

config.yaml layout:

    aggregation:
      max_in_flight: 8
      global_deadline_seconds: 60
      cache_ttl_seconds: 300
    sources:
      phishtank:            # overrides for a catalog feed
        enabled: false
      my_feed:              # a custom feed needs a full entry
        category: malware
        endpoint: https://example.org/feed.txt
        format: text
        schema: {indicator_type: url, severity: high}
    output:
      directory: output

Catalog feeds not listed under sources keep their defaults.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from .errors import ConfigError
from .ingestion.catalog import DEFAULT_FEEDS
from .ingestion.source_config import SourceConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregationSettings:
    max_in_flight: int = 8
    global_deadline_seconds: float = 60.0
    cache_ttl_seconds: float = 300.0

    def __post_init__(self):
        if not isinstance(self.max_in_flight, int) or self.max_in_flight < 1:
            raise ConfigError("aggregation.max_in_flight must be a positive integer")
        if not isinstance(self.global_deadline_seconds, (int, float)) or self.global_deadline_seconds <= 0:
            raise ConfigError("aggregation.global_deadline_seconds must be positive")
        if not isinstance(self.cache_ttl_seconds, (int, float)) or self.cache_ttl_seconds < 0:
            raise ConfigError("aggregation.cache_ttl_seconds must not be negative")


@dataclass(frozen=True)
class PipelineConfig:
    settings: AggregationSettings = field(default_factory=AggregationSettings)
    sources: Tuple[SourceConfig, ...] = tuple(DEFAULT_FEEDS)
    output_dir: Path = Path("output")


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' section must be a mapping")
    return value


def build_sources(entries: Dict[str, Any]) -> Tuple[SourceConfig, ...]:
    """
    Apply the sources section to the default catalog.

    Args:
        entries: Feed name -> overrides (catalog feed) or full entry (custom feed)

    Returns:
        Catalog feeds in catalog order, then custom feeds in file order
    """
    sources = []
    for default in DEFAULT_FEEDS:
        overrides = entries.get(default.name)
        if overrides is not None and not isinstance(overrides, dict):
            raise ConfigError(f"sources.{default.name} must be a mapping")
        sources.append(default.merged_with(overrides or {}))

    catalog = {c.name for c in DEFAULT_FEEDS}
    for name, entry in entries.items():
        if name not in catalog:
            sources.append(SourceConfig.from_dict(name, entry))
    return tuple(sources)


def parse_config(data: Optional[Dict[str, Any]]) -> PipelineConfig:
    """Build a PipelineConfig from already-parsed YAML."""
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    aggregation = _section(data, "aggregation")
    unknown = set(aggregation) - {"max_in_flight", "global_deadline_seconds", "cache_ttl_seconds"}
    if unknown:
        raise ConfigError(f"aggregation: unknown keys {', '.join(sorted(unknown))}")

    output = _section(data, "output")
    return PipelineConfig(
        settings=AggregationSettings(**aggregation),
        sources=build_sources(_section(data, "sources")),
        output_dir=Path(output.get("directory", "output")),
    )


def load_config(path: Union[str, Path]) -> PipelineConfig:
    """
    Load and validate config.yaml.

    Raises:
        ConfigError: Missing file, invalid YAML or invalid values
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    config = parse_config(data)
    enabled = sum(1 for s in config.sources if s.enabled)
    logger.info(f"Loaded {len(config.sources)} sources ({enabled} enabled) from {config_path}")
    return config
