"""
Header-keyed CSV parsing shared by CSV feeds and bulk imports.
"""
import csv
import re
from typing import Dict, List

_WHITESPACE = re.compile(r"\s+")


def normalize_header(token: str) -> str:
    """'First Seen ' -> 'first_seen'"""
    return _WHITESPACE.sub("_", token.strip().lower())


def parse_csv_text(text: str) -> List[Dict[str, str]]:
    """
    Parse CSV text into rows keyed by normalized header tokens.

    Lines are split first and blank lines dropped; quoted commas are
    respected. The first non-blank line is the header. Fewer than two
    non-blank lines yields an empty list. Missing trailing cells become ''.

    Args:
        text: Raw CSV text

    Returns:
        One dict per data line, in file order
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        return []

    reader = csv.reader(lines, skipinitialspace=True)
    header = [normalize_header(token) for token in next(reader)]

    rows: List[Dict[str, str]] = []
    for values in reader:
        row = {}
        for i, column in enumerate(header):
            row[column] = values[i].strip() if i < len(values) else ""
        rows.append(row)
    return rows
