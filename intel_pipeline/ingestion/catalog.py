"""
Default feed catalog.

Public, key-optional abuse.ch feeds plus PhishTank, OpenPhish and
blocklist.de. abuse.ch accepts an Auth-Key; it is sent when
ABUSECH_AUTH_KEY is set.
"""
from typing import Dict, List

from .source_config import FieldSchema, SourceConfig

ABUSECH_AUTH = {"auth_header": "Auth-Key", "api_key_env": "ABUSECH_AUTH_KEY"}

THREATFOX_TYPES = {
    "ip:port": "ip",
    "ip": "ip",
    "domain": "domain",
    "url": "url",
    "md5_hash": "hash",
    "sha1_hash": "hash",
    "sha256_hash": "hash",
    "sha3_384_hash": "hash",
}

DEFAULT_FEEDS: List[SourceConfig] = [
    SourceConfig(
        name="threatfox",
        category="malware",
        endpoint="https://threatfox-api.abuse.ch/api/v1/",
        method="POST",
        format="json",
        body={"query": "get_iocs", "days": "1"},
        **ABUSECH_AUTH,
        schema=FieldSchema(
            items_key="data",
            value_fields=("ioc", "ioc_value"),
            type_field="ioc_type",
            type_aliases=THREATFOX_TYPES,
            confidence_field="confidence_level",
            tags_field="tags",
            extra_tag_fields=("malware_printable", "threat_type"),
            first_seen_fields=("first_seen", "first_seen_utc"),
            last_seen_fields=("last_seen", "last_seen_utc"),
        ),
    ),
    SourceConfig(
        name="malwarebazaar",
        category="malware",
        endpoint="https://mb-api.abuse.ch/api/v1/",
        method="POST",
        format="json",
        body={"query": "get_recent", "selector": "100"},
        **ABUSECH_AUTH,
        schema=FieldSchema(
            items_key="data",
            value_fields=("sha256_hash",),
            indicator_type="hash",
            severity="critical",
            tags_field="tags",
            extra_tag_fields=("signature", "file_type"),
        ),
    ),
    SourceConfig(
        name="urlhaus",
        category="malware_distribution",
        endpoint="https://urlhaus.abuse.ch/downloads/json_recent/",
        format="json",
        **ABUSECH_AUTH,
        schema=FieldSchema(
            value_fields=("url",),
            indicator_type="url",
            severity="high",
            tags_field="tags",
            extra_tag_fields=("threat",),
            first_seen_fields=("dateadded", "date_added"),
            last_seen_fields=("last_online",),
        ),
    ),
    SourceConfig(
        name="feodotracker",
        category="botnet_c2",
        endpoint="https://feodotracker.abuse.ch/downloads/ipblocklist_recommended.json",
        format="json",
        schema=FieldSchema(
            value_fields=("ip_address",),
            indicator_type="ip",
            severity="high",
            extra_tag_fields=("malware",),
            last_seen_fields=("last_online",),
        ),
    ),
    SourceConfig(
        name="sslbl",
        category="ssl_blacklist",
        endpoint="https://sslbl.abuse.ch/blacklist/sslipblacklist.json",
        format="json",
        schema=FieldSchema(
            value_fields=("ip_address", "dst_ip"),
            indicator_type="ip",
            severity="high",
            extra_tag_fields=("reason", "malware"),
        ),
    ),
    SourceConfig(
        name="phishtank",
        category="phishing",
        endpoint="https://data.phishtank.com/data/online-valid.csv",
        format="csv",
        rate_limit_per_minute=1,
        schema=FieldSchema(
            value_fields=("url",),
            indicator_type="url",
            severity="high",
            extra_tag_fields=("target",),
            first_seen_fields=("submission_time",),
            last_seen_fields=("verification_time",),
        ),
    ),
    SourceConfig(
        name="openphish",
        category="phishing",
        endpoint="https://openphish.com/feed.txt",
        format="text",
        schema=FieldSchema(indicator_type="url", severity="critical"),
    ),
    SourceConfig(
        name="blocklist_de",
        category="attackers",
        endpoint="https://api.blocklist.de/getlast.php?time=86400",
        format="text",
        schema=FieldSchema(indicator_type="ip", severity="medium"),
    ),
]


def default_feeds_by_name() -> Dict[str, SourceConfig]:
    return {config.name: config for config in DEFAULT_FEEDS}
