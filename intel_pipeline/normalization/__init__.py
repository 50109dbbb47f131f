"""
Normalization layer: raw payloads and import files into canonical records.
"""
from .csv_parser import normalize_header, parse_csv_text
from .importers import (
    BreachRecord,
    ImportResult,
    ValidationReport,
    detect_file_format,
    normalize_breach_records,
    normalize_domain_list,
    normalize_ip_list,
    parse_import_text,
    parse_json_text,
    parse_txt_text,
    validate_breach_data,
)
from .indicator import SEVERITY_ORDER, Indicator, max_severity, severity_rank
from .normalizer import IndicatorNormalizer, NormalizationResult, severity_from_confidence

__all__ = [
    "Indicator",
    "SEVERITY_ORDER",
    "severity_rank",
    "max_severity",
    "IndicatorNormalizer",
    "NormalizationResult",
    "severity_from_confidence",
    "parse_csv_text",
    "normalize_header",
    "BreachRecord",
    "ImportResult",
    "ValidationReport",
    "detect_file_format",
    "parse_import_text",
    "parse_json_text",
    "parse_txt_text",
    "validate_breach_data",
    "normalize_breach_records",
    "normalize_domain_list",
    "normalize_ip_list",
]
