import io
from datetime import datetime, timezone
from pathlib import Path
from xml.etree import ElementTree

import pytest

from gnettrack_ingest.common.errors import UnsupportedStructure
from gnettrack_ingest.common.models import ParseStats
from gnettrack_ingest.parsers.kml import iter_kml_records

FIXTURES = Path("tests/fixtures/logs")


def _kml(body: str, namespace: str = "") -> io.BytesIO:
    ns = f' xmlns="{namespace}"' if namespace else ""
    return io.BytesIO(f'<?xml version="1.0" encoding="UTF-8"?><kml{ns}><Document>{body}</Document></kml>'.encode("utf-8"))


def test_fixture_placemarks_in_document_order():
    stats = ParseStats()
    with (FIXTURES / "drive.kml").open("rb") as f:
        parsed = list(iter_kml_records(f, stats))

    assert [item.position for item in parsed] == [1, 2, 3]
    assert [item.is_valid for item in parsed] == [True, False, True]
    assert parsed[1].problems == ("GEOMETRY_MISSING",)
    assert stats.seen == 3
    assert stats.malformed == 1


def test_japanese_keys_and_units_are_mapped():
    with (FIXTURES / "drive.kml").open("rb") as f:
        first = next(iter_kml_records(f)).record

    assert first.timestamp == datetime(2025, 10, 3, 10, 20, 9, tzinfo=timezone.utc)
    assert first.network_tech == "LTE"
    assert first.speed == 36.0
    assert first.level == -97.0
    assert first.longitude == 139.6917
    assert first.latitude == 35.6895


def test_cgi_fills_operator_code_and_cell_id():
    with (FIXTURES / "drive.kml").open("rb") as f:
        third = list(iter_kml_records(f))[2].record

    assert third.operator_name == "KDDI"
    assert third.operator_code == "440-51"
    assert third.cell_id == "56789"
    assert third.lac is None


def test_plain_document_without_namespace_parses():
    body = (
        "<Placemark><ExtendedData>"
        '<Data name="time"><value>2025.10.03 10.20.09</value></Data>'
        "</ExtendedData><Point><coordinates>1.5,2.5</coordinates></Point></Placemark>"
    )
    parsed = list(iter_kml_records(_kml(body)))
    assert parsed[0].is_valid
    assert parsed[0].record.longitude == 1.5


def test_schema_data_simple_data_is_read():
    body = (
        "<Placemark><ExtendedData><SchemaData>"
        '<SimpleData name="Time">2025.10.03_10.20.09</SimpleData>'
        '<SimpleData name="Level">-88</SimpleData>'
        "</SchemaData></ExtendedData><Point><coordinates>1,2,0</coordinates></Point></Placemark>"
    )
    record = list(iter_kml_records(_kml(body, "http://www.opengis.net/kml/2.2")))[0].record
    assert record.level == -88.0


def test_unknown_keys_are_reported_once():
    body = (
        '<Placemark><ExtendedData><Data name="Battery"><value>80</value></Data></ExtendedData>'
        "<Point><coordinates>1,2</coordinates></Point></Placemark>"
    ) * 2
    stats = ParseStats()
    list(iter_kml_records(_kml(body), stats))
    assert stats.warnings == ["UNKNOWN_KEY:Battery"]


def test_unparsable_coordinates_are_malformed():
    body = (
        "<Placemark><Point><coordinates>east,north</coordinates></Point></Placemark>"
        "<Placemark><Point><coordinates>1,2</coordinates></Point></Placemark>"
    )
    parsed = list(iter_kml_records(_kml(body)))
    assert parsed[0].problems == ("COORDINATES_UNPARSABLE",)
    assert parsed[0].record is None
    assert parsed[1].problems == ("TIMESTAMP_MISSING",)


def test_missing_timestamp_makes_placemark_invalid():
    body = "<Placemark><Point><coordinates>1,2</coordinates></Point></Placemark>"
    parsed = list(iter_kml_records(_kml(body)))
    assert not parsed[0].is_valid


def test_no_placemarks_is_unsupported_structure():
    with pytest.raises(UnsupportedStructure):
        list(iter_kml_records(_kml("<name>empty</name>")))


def test_no_geometry_anywhere_is_unsupported_structure():
    body = "<Placemark><name>a</name></Placemark><Placemark><name>b</name></Placemark>"
    with pytest.raises(UnsupportedStructure):
        list(iter_kml_records(_kml(body)))


def test_broken_xml_reports_placemark_position():
    source = io.BytesIO(
        b"<kml><Document><Placemark><Point><coordinates>1,2</coordinates></Point></Placemark>"
        b"<Placemark><name>oops</Document></kml>"
    )
    with pytest.raises(UnsupportedStructure) as exc_info:
        list(iter_kml_records(source))
    assert exc_info.value.position == 2
    assert exc_info.value.stage == "parsing"


def test_converted_placemarks_are_detached_from_the_tree(monkeypatch):
    roots = []
    real_iterparse = ElementTree.iterparse

    def recording_iterparse(source, events=None):
        for event, element in real_iterparse(source, events=events):
            if not roots:
                roots.append(element)
            yield event, element

    monkeypatch.setattr(ElementTree, "iterparse", recording_iterparse)
    with (FIXTURES / "drive.kml").open("rb") as f:
        parsed = list(iter_kml_records(f))

    assert len(parsed) == 3
    assert [element for element in roots[0].iter() if element.tag.endswith("Placemark")] == []
