"""Source field names recognised by both parsers, keyed by canonical attribute."""

from __future__ import annotations

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "timestamp": ("timestamp", "time", "時間"),
    "longitude": ("longitude", "lon"),
    "latitude": ("latitude", "lat"),
    "speed": ("speed", "速度"),
    "operator_name": ("operator", "operator_name", "operatorname"),
    "operator_code": ("mcc-mnc", "operator_code", "operatorcode"),
    "cgi": ("cgi",),
    "cellname": ("cellname", "cell_name"),
    "node": ("node", "rnc", "enodeb"),
    "cell_id": ("cellid", "cell_id"),
    "lac": ("lac", "tac"),
    "network_tech": ("networktech", "network_tech", "tech", "技術"),
    "network_mode": ("networkmode", "network_mode", "mode"),
    "level": ("level", "rsrp", "rscp", "rxlevel"),
    "qual": ("qual", "rsrq", "ecno", "rxqual"),
    "snr": ("snr",),
    "cqi": ("cqi",),
    "arfcn": ("arfcn", "earfcn", "uarfcn"),
    "dl_bitrate": ("dl_bitrate", "downlink_bitrate", "dlbitrate"),
    "ul_bitrate": ("ul_bitrate", "uplink_bitrate", "ulbitrate"),
}

# Recognised but intentionally dropped; altitude is not part of the record.
IGNORED_KEYS = frozenset({"altitude", "高度", "height"})

_LOOKUP = {alias.casefold(): name for name, aliases in FIELD_ALIASES.items() for alias in aliases}


def canonical_name(source_name: str) -> str | None:
    return _LOOKUP.get(source_name.strip().casefold())


def is_ignored(source_name: str) -> bool:
    return source_name.strip().casefold() in IGNORED_KEYS
