import io

from gnettrack_ingest.pipeline.detect import detect_format, sniff_format


def test_kml_extension_wins_regardless_of_content():
    assert sniff_format(b"timestamp,lon,lat\n", "drive.KML") == "kml"


def test_kml_root_element_is_sniffed():
    assert sniff_format(b'<?xml version="1.0"?>\n<kml xmlns="http://www.opengis.net/kml/2.2">') == "kml"
    assert sniff_format(b"<kml:kml xmlns:kml='x'>", "export.xml") == "kml"


def test_unknown_content_falls_back_to_text():
    assert sniff_format(b"Timestamp\tLongitude\tLatitude\n", "drive.txt") == "text"
    assert sniff_format(b"", None) == "text"
    assert sniff_format(b"<kmlish>", None) == "text"


def test_detect_format_does_not_consume_seekable_stream():
    source = io.BytesIO(b"<kml><Document/></kml>")
    assert detect_format(source) == "kml"
    assert source.tell() == 0


def test_detect_format_uses_peek_on_buffered_streams():
    source = io.BufferedReader(io.BytesIO(b"timestamp,lon,lat\n"))
    assert detect_format(source, "log.csv") == "text"
    assert source.read() == b"timestamp,lon,lat\n"
