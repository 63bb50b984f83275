"""Choose the parser for an input stream."""

from __future__ import annotations

import re
from pathlib import PurePath
from typing import BinaryIO

from gnettrack_ingest.common.constants import FORMAT_KML, FORMAT_TEXT, KML_EXTENSIONS, SNIFF_BYTES

_KML_ROOT_RE = re.compile(rb"<(?:[A-Za-z_][\w.-]*:)?kml[\s>/]", re.IGNORECASE)


def sniff_format(head: bytes, filename: str | None = None) -> str:
    if filename and PurePath(filename).suffix.lower() in KML_EXTENSIONS:
        return FORMAT_KML
    if _KML_ROOT_RE.search(head[:SNIFF_BYTES]):
        return FORMAT_KML
    return FORMAT_TEXT


def _peek_head(source: BinaryIO) -> bytes:
    peek = getattr(source, "peek", None)
    if peek is not None:
        return peek(SNIFF_BYTES)[:SNIFF_BYTES]
    if source.seekable():
        position = source.tell()
        head = source.read(SNIFF_BYTES)
        source.seek(position)
        return head
    return b""


def detect_format(source: BinaryIO, filename: str | None = None) -> str:
    """Return ``"kml"`` or ``"text"`` without consuming the stream.

    An unknown extension and unrecognised content fall back to text; the
    parser then decides whether the input is usable.
    """
    if filename and PurePath(filename).suffix.lower() in KML_EXTENSIONS:
        return FORMAT_KML
    return sniff_format(_peek_head(source), filename)
