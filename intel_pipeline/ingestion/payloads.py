"""
Tagged raw payload variants.

Each adapter decodes a feed body into exactly one of these shapes and the
normalizer dispatches on the variant, so no stage has to guess what a
payload looks like.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, Union


@dataclass(frozen=True)
class JsonArray:
    """Top-level JSON array of records."""
    items: Tuple[Any, ...]


@dataclass(frozen=True)
class JsonObjectWrapped:
    """Top-level JSON object; records sit under a key or are id-keyed."""
    data: Dict[str, Any]


@dataclass(frozen=True)
class DelimitedText:
    """CSV body with a header row."""
    text: str


@dataclass(frozen=True)
class PlainLines:
    """Newline-delimited feed, one candidate per line."""
    lines: Tuple[str, ...]


RawPayload = Union[JsonArray, JsonObjectWrapped, DelimitedText, PlainLines]


def payload_size(payload: RawPayload) -> int:
    """Rough record count of a payload, for logging."""
    if isinstance(payload, JsonArray):
        return len(payload.items)
    if isinstance(payload, JsonObjectWrapped):
        return len(payload.data)
    if isinstance(payload, DelimitedText):
        return max(0, len([line for line in payload.text.splitlines() if line.strip()]) - 1)
    if isinstance(payload, PlainLines):
        return len(payload.lines)
    return 0


def lines_of(text: str) -> List[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]
