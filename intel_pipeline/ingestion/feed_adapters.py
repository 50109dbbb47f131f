"""
Concrete adapters, one per raw format family.

The transport is identical for every feed; what differs is how the body is
decoded into a tagged payload.
"""
import json

from ..errors import MalformedPayloadError
from .base_adapter import BaseAdapter, register_adapter
from .http_client import HttpBody
from .payloads import DelimitedText, JsonArray, JsonObjectWrapped, PlainLines, RawPayload, lines_of
from .source_config import SourceConfig


@register_adapter("json")
class JsonFeedAdapter(BaseAdapter):
    """ThreatFox, MalwareBazaar, URLhaus, Feodo Tracker and SSLBL style feeds."""

    def decode(self, body: HttpBody, config: SourceConfig) -> RawPayload:
        try:
            data = json.loads(body.text)
        except ValueError as exc:
            raise MalformedPayloadError(f"{config.name}: invalid JSON: {exc}") from exc

        if isinstance(data, list):
            return JsonArray(items=tuple(data))
        if isinstance(data, dict):
            return JsonObjectWrapped(data=data)
        raise MalformedPayloadError(
            f"{config.name}: expected JSON array or object, got {type(data).__name__}"
        )


@register_adapter("csv")
class CsvFeedAdapter(BaseAdapter):
    """PhishTank style CSV exports."""

    def decode(self, body: HttpBody, config: SourceConfig) -> RawPayload:
        text = body.text
        if "\x00" in text:
            raise MalformedPayloadError(f"{config.name}: binary content in CSV feed")
        return DelimitedText(text=text.lstrip("\ufeff"))


@register_adapter("text")
class TextFeedAdapter(BaseAdapter):
    """OpenPhish and blocklist.de style newline lists. Comment lines are dropped."""

    def decode(self, body: HttpBody, config: SourceConfig) -> RawPayload:
        text = body.text
        if "\x00" in text:
            raise MalformedPayloadError(f"{config.name}: binary content in text feed")
        lines = [line for line in lines_of(text) if not line.startswith("#")]
        return PlainLines(lines=tuple(lines))
