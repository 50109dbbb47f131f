"""
Indicator normalizer.

Converts a feed's tagged raw payload into canonical Indicator records using
the feed's FieldSchema. Rows that fail validation are dropped and counted;
a sample of them is reported as warnings. Only a payload whose overall shape
is unusable raises (MalformedPayloadError).
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..errors import MalformedPayloadError, ValidationError
from ..ingestion.payloads import DelimitedText, JsonArray, JsonObjectWrapped, PlainLines, RawPayload
from ..ingestion.source_config import INDICATOR_TYPES, SEVERITIES, FieldSchema, SourceConfig
from .csv_parser import parse_csv_text
from .indicator import Indicator
from .validators import classify_indicator, normalize_value, parse_timestamp

logger = logging.getLogger(__name__)

WRAPPER_KEYS = ("data", "value", "items", "urls", "results")
OK_QUERY_STATUSES = ("ok", "no_result", "no_results")

# confidence_level thresholds, highest first
CONFIDENCE_SEVERITY: Tuple[Tuple[int, str], ...] = (
    (90, "critical"),
    (75, "high"),
    (50, "medium"),
    (25, "low"),
)


@dataclass
class NormalizationResult:
    """Valid indicators plus data-quality counters for one payload."""
    indicators: List[Indicator] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    invalid_count: int = 0
    total_rows: int = 0


def severity_from_confidence(confidence: Any) -> str:
    try:
        level = float(confidence)
    except (TypeError, ValueError):
        return "info"
    for threshold, severity in CONFIDENCE_SEVERITY:
        if level >= threshold:
            return severity
    return "info"


def split_tags(raw: Any) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        return [tag.strip() for tag in raw.split(",") if tag.strip()]
    if isinstance(raw, (list, tuple, set)):
        return [str(tag).strip() for tag in raw if tag is not None and str(tag).strip()]
    return [str(raw).strip()] if str(raw).strip() else []


class IndicatorNormalizer:
    """
    Maps raw payloads onto Indicator records.

    Stateless apart from configuration, so normalizing the same payload
    twice yields identical output.
    """

    def __init__(self, warning_sample_limit: int = 5):
        self.warning_sample_limit = warning_sample_limit

    def normalize(self, config: SourceConfig, payload: RawPayload) -> NormalizationResult:
        """
        Normalize one feed payload.

        Args:
            config: Configuration of the feed that produced the payload
            payload: Tagged payload from the feed's adapter

        Returns:
            NormalizationResult with valid indicators, warnings and invalid count

        Raises:
            MalformedPayloadError: payload shape cannot yield records at all
        """
        rows = self.extract_rows(config, payload)
        result = NormalizationResult(total_rows=len(rows))

        for index, row in enumerate(rows, start=1):
            try:
                result.indicators.append(self.to_indicator(config, row))
            except ValidationError as e:
                result.invalid_count += 1
                if len(result.warnings) < self.warning_sample_limit:
                    result.warnings.append(f"{config.name} row {index}: {e}")

        if result.invalid_count > self.warning_sample_limit:
            suppressed = result.invalid_count - self.warning_sample_limit
            result.warnings.append(f"{config.name}: {suppressed} more invalid rows not shown")
        if result.invalid_count:
            logger.warning(
                "%s: dropped %d of %d rows during normalization",
                config.name, result.invalid_count, result.total_rows,
            )
        return result

    def extract_rows(self, config: SourceConfig, payload: RawPayload) -> List[Any]:
        if isinstance(payload, JsonArray):
            return list(payload.items)
        if isinstance(payload, JsonObjectWrapped):
            return self._unwrap_object(config, payload.data)
        if isinstance(payload, DelimitedText):
            return parse_csv_text(payload.text)
        if isinstance(payload, PlainLines):
            return [line.strip() for line in payload.lines if line.strip()]
        raise MalformedPayloadError(f"{config.name}: unsupported payload {type(payload).__name__}")

    def _unwrap_object(self, config: SourceConfig, data: Dict[str, Any]) -> List[Any]:
        status = data.get("query_status")
        if status is not None and status not in OK_QUERY_STATUSES:
            raise MalformedPayloadError(f"{config.name}: query_status {status!r}")

        keys = (config.schema.items_key,) if config.schema.items_key else ()
        for key in keys + WRAPPER_KEYS:
            if key in data:
                items = data[key]
                if items is None or isinstance(items, str):
                    # abuse.ch answers {"query_status": "no_result", "data": "..."}
                    return []
                if isinstance(items, list):
                    return items
                if isinstance(items, dict):
                    if self._is_keyed_export(items):
                        return self._flatten_keyed(items)
                    return [items]
                raise MalformedPayloadError(f"{config.name}: {key!r} is not a list")

        if status is not None:
            return []
        if self._is_keyed_export(data):
            # id-keyed export: {"3722626": [{...}], ...}
            return self._flatten_keyed(data)
        return [data]

    @staticmethod
    def _is_keyed_export(data: Dict[str, Any]) -> bool:
        """True for {"3722626": [{...}], ...} style exports; a dict of scalars is one record."""
        return bool(data) and all(isinstance(v, (list, dict)) for v in data.values())

    @staticmethod
    def _flatten_keyed(data: Dict[str, Any]) -> List[Any]:
        rows: List[Any] = []
        for value in data.values():
            if isinstance(value, list):
                rows.extend(value)
            else:
                rows.append(value)
        return rows

    def to_indicator(self, config: SourceConfig, row: Any) -> Indicator:
        """
        Convert one extracted row.

        Raises:
            ValidationError: row lacks a usable value or type
        """
        schema = config.schema
        if isinstance(row, str):
            record: Dict[str, Any] = {}
            raw_value: Optional[str] = row
        elif isinstance(row, dict):
            record = row
            raw_value = self._first(record, schema.value_fields)
        else:
            raise ValidationError(f"unsupported record type {type(row).__name__}")

        if raw_value is None or not str(raw_value).strip():
            raise ValidationError("missing indicator value")
        raw_value = str(raw_value).strip()

        indicator_type = self._resolve_type(schema, record, raw_value)
        value = normalize_value(indicator_type, raw_value)
        if value is None:
            raise ValidationError(f"invalid {indicator_type}: {raw_value[:80]!r}")

        return Indicator(
            type=indicator_type,
            value=value,
            source=config.name,
            severity=self._resolve_severity(schema, record),
            first_seen=parse_timestamp(self._first(record, schema.first_seen_fields)),
            last_seen=parse_timestamp(self._first(record, schema.last_seen_fields)),
            tags=tuple(self._collect_tags(schema, record)),
            category=config.category,
        )

    @staticmethod
    def _first(record: Dict[str, Any], keys: Iterable[str]) -> Any:
        for key in keys:
            value = record.get(key)
            if value is not None and value != "":
                return value
        return None

    @staticmethod
    def _resolve_type(schema: FieldSchema, record: Dict[str, Any], raw_value: str) -> str:
        if schema.indicator_type:
            return schema.indicator_type
        if schema.type_field and record.get(schema.type_field):
            raw_type = str(record[schema.type_field]).strip().lower()
            indicator_type = schema.type_aliases.get(raw_type, raw_type)
            if indicator_type in INDICATOR_TYPES:
                return indicator_type
        indicator_type = classify_indicator(raw_value)
        if indicator_type == "unknown":
            raise ValidationError(f"unrecognized indicator {raw_value[:80]!r}")
        return indicator_type

    @staticmethod
    def _resolve_severity(schema: FieldSchema, record: Dict[str, Any]) -> str:
        if schema.severity_field and record.get(schema.severity_field):
            severity = str(record[schema.severity_field]).strip().lower()
            return severity if severity in SEVERITIES else "info"
        if schema.confidence_field and record.get(schema.confidence_field) is not None:
            return severity_from_confidence(record[schema.confidence_field])
        return schema.severity or "info"

    @staticmethod
    def _collect_tags(schema: FieldSchema, record: Dict[str, Any]) -> List[str]:
        tags = split_tags(record.get(schema.tags_field)) if schema.tags_field else []
        for key in schema.extra_tag_fields:
            value = record.get(key)
            if isinstance(value, (str, int, float)) and str(value).strip():
                tags.append(str(value).strip())
        return tags
