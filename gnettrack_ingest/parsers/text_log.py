"""Delimited text drive-test log parser."""

from __future__ import annotations

import codecs
import csv
from typing import BinaryIO, Iterable, Iterator

from gnettrack_ingest.common.errors import UnsupportedStructure
from gnettrack_ingest.common.models import ParsedRecord, ParseStats
from gnettrack_ingest.parsers.coercion import build_record, parse_text_timestamp
from gnettrack_ingest.parsers.vocabulary import canonical_name, is_ignored


def detect_delimiter(header_line: str) -> str:
    return "\t" if "\t" in header_line else ","


def _header_mapping(header: list[str], stats: ParseStats) -> list[str | None]:
    mapping: list[str | None] = []
    for column in header:
        name = canonical_name(column)
        if name is None and column.strip() and not is_ignored(column):
            stats.warnings.append(f"UNKNOWN_COLUMN:{column.strip()}")
        mapping.append(name)
    return mapping


def _row_fields(mapping: list[str | None], row: list[str]) -> dict[str, str]:
    fields: dict[str, str] = {}
    for name, value in zip(mapping, row):
        if name is None:
            continue
        if fields.get(name, "").strip():
            continue
        fields[name] = value
    return fields


def _decoded_lines(source: BinaryIO, undecodable: set[int]) -> Iterator[str]:
    """Decode each physical line on its own so one bad byte costs one line.

    An undecodable line is replaced by an empty line and its number recorded
    in ``undecodable``; the csv reader still sees one item per physical line.
    """
    for line_no, raw in enumerate(source, start=1):
        if line_no == 1 and raw.startswith(codecs.BOM_UTF8):
            raw = raw[len(codecs.BOM_UTF8) :]
        try:
            yield raw.decode("utf-8")
        except UnicodeDecodeError:
            undecodable.add(line_no)
            yield "\n"


def _iter_rows(lines: Iterable[str], undecodable: set[int], stats: ParseStats) -> Iterator[ParsedRecord]:
    lines = iter(lines)
    header_line_no = 0
    header_line = ""
    for header_line_no, line in enumerate(lines, start=1):
        if header_line_no in undecodable:
            raise UnsupportedStructure(
                f"Text log header line {header_line_no} is not valid UTF-8",
                stage="parsing",
                position=header_line_no,
            )
        if line.strip():
            header_line = line
            break
    if not header_line.strip():
        raise UnsupportedStructure("Text log has no header line", stage="parsing")

    delimiter = detect_delimiter(header_line)
    header = next(csv.reader([header_line.rstrip("\r\n")], delimiter=delimiter))
    mapping = _header_mapping(header, stats)

    reader = csv.reader(lines, delimiter=delimiter)
    while True:
        try:
            row = next(reader)
        except StopIteration:
            return
        except csv.Error:
            stats.seen += 1
            stats.malformed += 1
            yield ParsedRecord(position=header_line_no + reader.line_num, record=None, problems=("CSV_SYNTAX",))
            continue

        position = header_line_no + reader.line_num
        if position in undecodable:
            stats.seen += 1
            stats.malformed += 1
            yield ParsedRecord(position=position, record=None, problems=("ENCODING_INVALID",))
            continue
        if not any(cell.strip() for cell in row):
            continue

        stats.seen += 1
        if len(row) != len(header):
            stats.malformed += 1
            yield ParsedRecord(position=position, record=None, problems=("FIELD_COUNT_MISMATCH",))
            continue

        record, problems = build_record(_row_fields(mapping, row), parse_text_timestamp)
        yield ParsedRecord(position=position, record=record, problems=tuple(problems))


def iter_text_records(source: BinaryIO, stats: ParseStats | None = None) -> Iterator[ParsedRecord]:
    """Yield one ParsedRecord per non-blank data line of a text log.

    The first non-empty line is the header. Positions are physical line
    numbers, so diagnostics point at the offending line of the file. A line
    that is not valid UTF-8 is reported as ``ENCODING_INVALID`` and the rest
    of the file is still parsed.
    """
    stats = stats if stats is not None else ParseStats()
    undecodable: set[int] = set()
    yield from _iter_rows(_decoded_lines(source, undecodable), undecodable, stats)
