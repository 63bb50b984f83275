"""Shared field coercion used by the text and KML parsers."""

from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Callable, Mapping

from gnettrack_ingest.common.models import FLOAT_FIELDS, INT_FIELDS, REQUIRED_FIELDS, STRING_FIELDS, TAG_FIELDS, CanonicalRecord
from gnettrack_ingest.common.time_utils import as_utc

CGI_SEPARATOR = "-"

_PLACEHOLDERS = frozenset({"n/a", "null", "-"})
_NUMBER_RE = re.compile(
    r"^(?P<number>[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)\s*(?P<unit>km/h|kmh|m/s|dbm|db|kbps|mbps|bps|m)?$",
    re.IGNORECASE,
)
_FRACTION_RE = re.compile(r"^(?P<base>\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})(?:\.(?P<fraction>\d{1,6}))?$")

TEXT_TIMESTAMP_LAYOUT = "%Y-%m-%d %H:%M:%S"
KML_TIMESTAMP_LAYOUT = "%Y.%m.%d_%H.%M.%S"


def coerce_string(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned or cleaned.casefold() in _PLACEHOLDERS:
        return None
    return cleaned


def coerce_float(value: str | None) -> float | None:
    cleaned = coerce_string(value)
    if cleaned is None:
        return None
    match = _NUMBER_RE.match(cleaned)
    if match is None:
        return None
    number = float(match.group("number"))
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def coerce_int(value: str | None) -> int | None:
    number = coerce_float(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def parse_text_timestamp(value: str | None) -> datetime | None:
    """Parse ``YYYY-MM-DD HH:MM:SS`` with optional fractional seconds."""
    cleaned = coerce_string(value)
    if cleaned is None:
        return None
    match = _FRACTION_RE.match(cleaned)
    if match is None:
        return None
    try:
        parsed = datetime.strptime(match.group("base"), TEXT_TIMESTAMP_LAYOUT)
    except ValueError:
        return None
    fraction = match.group("fraction")
    if fraction:
        parsed = parsed.replace(microsecond=int(fraction.ljust(6, "0")))
    return as_utc(parsed)


def parse_kml_timestamp(value: str | None) -> datetime | None:
    """Parse the placemark layout ``YYYY.MM.DD_HH.MM.SS``."""
    cleaned = coerce_string(value)
    if cleaned is None:
        return None
    try:
        parsed = datetime.strptime(cleaned.replace(" ", "_"), KML_TIMESTAMP_LAYOUT)
    except ValueError:
        return None
    return as_utc(parsed)


def decompose_cgi(value: str | None, separator: str = CGI_SEPARATOR) -> tuple[str | None, str | None]:
    """Split ``MCC-MNC-LAC-CI`` into (operator code, cell id).

    Anything that is not exactly four numeric parts yields ``(None, None)``.
    """
    cleaned = coerce_string(value)
    if cleaned is None:
        return None, None
    parts = [part.strip() for part in cleaned.split(separator)]
    if len(parts) != 4 or not all(part.isdigit() for part in parts):
        return None, None
    mcc, mnc, _lac, cell = parts
    return f"{mcc}{separator}{mnc}", cell


def build_record(
    fields: Mapping[str, str],
    timestamp_parser: Callable[[str | None], datetime | None],
) -> tuple[CanonicalRecord, list[str]]:
    """Coerce canonical-name -> raw string pairs into a record and its problems."""
    values: dict[str, object] = {}
    problems: list[str] = []

    raw_timestamp = fields.get("timestamp")
    timestamp = timestamp_parser(raw_timestamp)
    if timestamp is None and coerce_string(raw_timestamp) is not None:
        problems.append("TIMESTAMP_UNPARSABLE")
    values["timestamp"] = timestamp

    for name in FLOAT_FIELDS:
        raw = fields.get(name)
        number = coerce_float(raw)
        if number is None and name in REQUIRED_FIELDS and coerce_string(raw) is not None:
            problems.append(f"{name.upper()}_UNPARSABLE")
        values[name] = number

    for name in INT_FIELDS:
        values[name] = coerce_int(fields.get(name))

    for name in TAG_FIELDS + STRING_FIELDS:
        values[name] = coerce_string(fields.get(name))

    operator_code, cell_id = decompose_cgi(values["cgi"])
    if values["operator_code"] is None:
        values["operator_code"] = operator_code
    if values["cell_id"] is None:
        values["cell_id"] = cell_id

    record = CanonicalRecord(**values)
    for problem in record.problems():
        if problem.endswith("_MISSING") and f"{problem[: -len('_MISSING')]}_UNPARSABLE" in problems:
            continue
        problems.append(problem)
    return record, problems
