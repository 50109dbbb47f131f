"""
Bulk-import normalizers for analyst-supplied CSV, JSON and TXT files.

These handle breach dumps (email-keyed records) and plain domain or IP lists.
They share the validation rules of the feed normalizer and, like it, drop bad
rows with a sampled warning instead of rejecting the whole file.
"""
import json
from dataclasses import dataclass, field
from datetime import date
from pathlib import PurePath
from typing import Any, Dict, List, Optional, Tuple

from ..errors import MalformedPayloadError
from .csv_parser import parse_csv_text
from .validators import is_valid_email, normalize_domain, normalize_ip

EMAIL_KEYS = ("email", "mail", "e-mail")
WARNING_SAMPLE_LIMIT = 5

# data type -> row keys that reveal it
DATA_TYPE_KEYS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("password", ("password", "hash")),
    ("username", ("username", "user")),
    ("ip", ("ip", "ip_address")),
    ("name", ("name", "full_name")),
    ("phone", ("phone", "mobile")),
)


@dataclass(frozen=True)
class BreachRecord:
    record_id: str
    email: str
    source: str
    date: str
    data_types: Tuple[str, ...]
    password: Optional[str] = None


@dataclass
class ImportResult:
    records: List[BreachRecord] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    invalid_count: int = 0


@dataclass
class ValidationReport:
    valid: bool
    errors: List[str]
    warnings: List[str]
    total_rows: int
    valid_rows: int
    invalid_rows: int


def detect_file_format(filename: str, mime_type: str = "") -> str:
    """Return csv, json, txt or unknown from the extension, then the MIME type."""
    extension = PurePath(filename).suffix.lower().lstrip(".")
    if extension in ("csv", "json", "txt"):
        return extension

    mime = (mime_type or "").lower()
    if "csv" in mime:
        return "csv"
    if "json" in mime:
        return "json"
    if "text" in mime:
        return "txt"
    return "unknown"


def parse_json_text(text: str) -> List[Any]:
    """Accept a JSON array, an object wrapping a "data" array, or a single object."""
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise MalformedPayloadError(f"Invalid JSON: {exc}") from exc

    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if isinstance(data.get("data"), list):
            return data["data"]
        return [data]
    raise MalformedPayloadError("Invalid JSON format")


def parse_txt_text(text: str) -> List[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def parse_import_text(text: str, file_format: str) -> List[Any]:
    if file_format == "csv":
        return parse_csv_text(text)
    if file_format == "json":
        return parse_json_text(text)
    if file_format == "txt":
        return parse_txt_text(text)
    raise MalformedPayloadError(f"Unsupported import format: {file_format}")


def _email_of(row: Dict[str, Any]) -> str:
    for key in EMAIL_KEYS:
        if row.get(key):
            return str(row[key]).strip().lower()
    return ""


def validate_breach_data(rows: List[Dict[str, Any]]) -> ValidationReport:
    """Pre-import check: is there an email column and how many rows pass."""
    if not rows:
        return ValidationReport(False, ["No data found in file"], [], 0, 0, 0)

    errors: List[str] = []
    warnings: List[str] = []
    if not any(key in rows[0] for key in EMAIL_KEYS):
        errors.append("Missing required field: email")

    valid_rows = 0
    invalid_rows = 0
    for index, row in enumerate(rows, start=1):
        email = _email_of(row) if isinstance(row, dict) else ""
        if email and is_valid_email(email):
            valid_rows += 1
            continue
        invalid_rows += 1
        if email and invalid_rows <= WARNING_SAMPLE_LIMIT:
            warnings.append(f"Row {index}: Invalid email format")

    if invalid_rows:
        warnings.append(f"{invalid_rows} rows have invalid or missing email addresses")

    return ValidationReport(
        valid=not errors and valid_rows > 0,
        errors=errors,
        warnings=warnings,
        total_rows=len(rows),
        valid_rows=valid_rows,
        invalid_rows=invalid_rows,
    )


def normalize_breach_records(
    rows: List[Dict[str, Any]],
    source: str,
    today: Optional[date] = None,
) -> ImportResult:
    """
    Normalize breach rows into BreachRecord objects.

    Rows without a valid email are dropped; each dropped row adds one warning
    (first five only). data_types lists the sensitive fields present in the
    row, or ("email",) when there are none.
    """
    today_str = (today or date.today()).isoformat()
    result = ImportResult()

    for index, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            reason = "not a record"
            email = ""
        else:
            email = _email_of(row)
            reason = "missing email" if not email else "invalid email format"

        if not email or not is_valid_email(email):
            result.invalid_count += 1
            if len(result.warnings) < WARNING_SAMPLE_LIMIT:
                result.warnings.append(f"Row {index}: {reason}")
            continue

        data_types = tuple(
            data_type for data_type, keys in DATA_TYPE_KEYS
            if any(row.get(key) for key in keys)
        )
        result.records.append(BreachRecord(
            record_id=f"{source}-{index}",
            email=email,
            source=source,
            date=str(row.get("date") or row.get("breach_date") or today_str),
            data_types=data_types or ("email",),
            password=row.get("password") or row.get("hash") or None,
        ))

    return result


def normalize_domain_list(lines: List[str]) -> List[str]:
    """Lower-cased, scheme/path stripped, valid and de-duplicated in first-seen order."""
    seen: Dict[str, None] = {}
    for line in lines:
        domain = normalize_domain(str(line))
        if domain:
            seen.setdefault(domain)
    return list(seen)


def normalize_ip_list(lines: List[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for line in lines:
        value = str(line).strip()
        if ":" in value:
            continue
        ip = normalize_ip(value)
        if ip:
            seen.setdefault(ip)
    return list(seen)
