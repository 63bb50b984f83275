import io
from pathlib import Path

import pytest

from gnettrack_ingest.common.errors import UnsupportedStructure
from gnettrack_ingest.common.models import ParseStats
from gnettrack_ingest.parsers.text_log import detect_delimiter, iter_text_records

FIXTURES = Path("tests/fixtures/logs")


def _parse(text: str, stats: ParseStats | None = None):
    return list(iter_text_records(io.BytesIO(text.encode("utf-8")), stats))


def test_detect_delimiter_prefers_tab():
    assert detect_delimiter("a\tb,c\n") == "\t"
    assert detect_delimiter("a,b,c\n") == ","


def test_tab_fixture_positions_and_validity():
    stats = ParseStats()
    with (FIXTURES / "drive_tab.txt").open("rb") as f:
        parsed = list(iter_text_records(f, stats))

    assert [item.position for item in parsed] == [2, 3, 4, 5, 6, 7]
    assert [item.is_valid for item in parsed] == [True, True, False, False, False, True]
    assert parsed[2].record is None
    assert parsed[2].problems == ("FIELD_COUNT_MISMATCH",)
    assert parsed[3].problems == ("TIMESTAMP_UNPARSABLE",)
    assert parsed[4].problems == ("LONGITUDE_OUT_OF_RANGE",)
    assert stats.seen == 6
    assert stats.malformed == 1
    assert "UNKNOWN_COLUMN:Battery" in stats.warnings


def test_tab_fixture_field_values():
    with (FIXTURES / "drive_tab.txt").open("rb") as f:
        first, second = [item.record for item in list(iter_text_records(f))[:2]]

    assert first.operator_name == "KDDI"
    assert first.operator_code == "440-51"
    assert first.cell_id == "56789"
    assert first.cqi == 9
    assert first.cellname == "Shinjuku A"
    assert first.timestamp.microsecond == 125000
    assert second.operator_code == "440-51"
    assert second.cell_id == "56790"
    assert second.level == -96.0
    assert second.qual is None
    assert second.network_mode is None


def test_comma_fallback_with_quoted_cells_and_blank_lines():
    with (FIXTURES / "drive_comma.csv").open("rb") as f:
        parsed = list(iter_text_records(f))

    assert [item.position for item in parsed] == [2, 4]
    assert all(item.is_valid for item in parsed)
    assert parsed[0].record.operator_name == "Docomo, Inc"
    assert parsed[0].record.network_tech == "LTE"
    assert parsed[0].record.level == -90.0


def test_header_is_first_non_empty_line_and_matching_is_case_insensitive():
    parsed = _parse("\n\nTIMESTAMP,LONGITUDE,LATITUDE\n2025-10-03 10:20:09,1.5,2.5\n")
    assert parsed[0].position == 4
    assert parsed[0].record.longitude == 1.5


def test_missing_known_columns_leave_attributes_unset():
    parsed = _parse("timestamp,lon,lat,level\n2025-10-03 10:20:09,1.5,2.5,-90\n")
    record = parsed[0].record
    assert record.speed is None
    assert record.operator_name is None
    assert record.level == -90.0


def test_missing_coordinate_columns_make_records_invalid():
    parsed = _parse("timestamp,speed\n2025-10-03 10:20:09,10\n")
    assert parsed[0].problems == ("LONGITUDE_MISSING", "LATITUDE_MISSING")


def test_no_header_line_is_unsupported_structure():
    with pytest.raises(UnsupportedStructure):
        _parse("\n  \n")


def test_undecodable_line_is_malformed_and_neighbours_survive():
    rows = [f"2025-10-03 10:20:{second:02d},139.69,35.68,KDDI" for second in range(5)]
    body = "timestamp,lon,lat,operator\n" + "\n".join(rows) + "\n"
    source = io.BytesIO(body.encode("utf-8") + b"2025-10-03 10:20:06,139.69,35.68,K\xff\n2025-10-03 10:20:07,139.69,35.68,KDDI\n")
    stats = ParseStats()

    parsed = list(iter_text_records(source, stats))

    assert [item.position for item in parsed] == [2, 3, 4, 5, 6, 7, 8]
    assert [item.is_valid for item in parsed] == [True] * 5 + [False, True]
    assert parsed[5].record is None
    assert parsed[5].problems == ("ENCODING_INVALID",)
    assert stats.seen == 7
    assert stats.malformed == 1


def test_undecodable_header_is_unsupported_structure():
    with pytest.raises(UnsupportedStructure) as exc_info:
        list(iter_text_records(io.BytesIO(b"time\xffstamp,lon,lat\n2025-10-03 10:20:09,1,2\n")))
    assert exc_info.value.position == 1


def test_utf8_bom_is_stripped_from_header():
    parsed = _parse("\ufefftimestamp,lon,lat\n2025-10-03 10:20:09,1,2\n")
    assert parsed[0].is_valid


def test_parser_is_lazy():
    source = io.BytesIO(b"timestamp,lon,lat\n2025-10-03 10:20:09,1,2\nbroken\n")
    records = iter_text_records(source)
    first = next(records)
    assert first.is_valid
    assert next(records).problems == ("FIELD_COUNT_MISMATCH",)


def test_source_stays_open_after_parsing():
    source = io.BytesIO(b"timestamp,lon,lat\n2025-10-03 10:20:09,1,2\n")
    list(iter_text_records(source))
    assert not source.closed
