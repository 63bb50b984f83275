"""InfluxDB line-protocol encoding of canonical records."""

from __future__ import annotations

import re

from gnettrack_ingest.common.constants import MEASUREMENT_NAME, SOURCE_TAG_KEY, SOURCE_TAG_VALUE
from gnettrack_ingest.common.models import FLOAT_FIELDS, INT_FIELDS, STRING_FIELDS, CanonicalRecord
from gnettrack_ingest.common.time_utils import to_epoch_nanoseconds

_MEASUREMENT_ESCAPES = str.maketrans({",": r"\,", " ": r"\ ", "\n": r"\n"})
_KEY_ESCAPES = str.maketrans({",": r"\,", "=": r"\=", " ": r"\ ", "\n": r"\n"})
# A backslash run right before a delimiter or the end would escape it.
_DANGLING_BACKSLASHES = re.compile(r"(\\+)(?=[,= \n]|$)")
_STRING_FIELD_ESCAPES = str.maketrans({'"': r"\"", "\\": r"\\", "\n": r"\n"})

# Field order on the wire; tags are sorted by key instead.
FIELD_ORDER = FLOAT_FIELDS + INT_FIELDS + STRING_FIELDS


def escape_measurement(value: str) -> str:
    return value.translate(_MEASUREMENT_ESCAPES)


def escape_key(value: str) -> str:
    """Escape a tag key, tag value or field key."""
    doubled = _DANGLING_BACKSLASHES.sub(lambda match: match.group(1) * 2, value)
    return doubled.translate(_KEY_ESCAPES)


def format_field_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return repr(value)
    return '"' + str(value).translate(_STRING_FIELD_ESCAPES) + '"'


def encode_tags(record: CanonicalRecord) -> str:
    tags = record.tags()
    tags[SOURCE_TAG_KEY] = SOURCE_TAG_VALUE
    return ",".join(f"{escape_key(key)}={escape_key(tags[key])}" for key in sorted(tags))


def encode_fields(record: CanonicalRecord) -> str:
    parts = []
    for name in FIELD_ORDER:
        value = getattr(record, name)
        if value is None:
            continue
        parts.append(f"{escape_key(name)}={format_field_value(value)}")
    return ",".join(parts)


def encode_record(record: CanonicalRecord) -> str:
    """Encode one valid record as ``measurement,tags fields timestamp``."""
    problems = record.problems()
    if problems:
        raise ValueError(f"Refusing to encode invalid record: {','.join(problems)}")
    return (
        f"{escape_measurement(MEASUREMENT_NAME)},{encode_tags(record)} "
        f"{encode_fields(record)} {to_epoch_nanoseconds(record.timestamp)}"
    )
