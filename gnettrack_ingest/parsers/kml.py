"""KML placemark parser."""

from __future__ import annotations

import math
from typing import BinaryIO, Iterator
from xml.etree import ElementTree

from gnettrack_ingest.common.errors import UnsupportedStructure
from gnettrack_ingest.common.models import ParsedRecord, ParseStats
from gnettrack_ingest.parsers.coercion import build_record, parse_kml_timestamp
from gnettrack_ingest.parsers.vocabulary import canonical_name, is_ignored


def _local(name: object) -> str:
    if not isinstance(name, str):
        return ""
    return name.rsplit("}", 1)[-1]


def _attr(element: ElementTree.Element, name: str) -> str | None:
    for key, value in element.attrib.items():
        if _local(key) == name:
            return value
    return None


def _child_text(element: ElementTree.Element, name: str) -> str | None:
    for child in element:
        if _local(child.tag) == name:
            return child.text or ""
    return None


def _point_coordinates(placemark: ElementTree.Element) -> str | None:
    for element in placemark.iter():
        if _local(element.tag) == "Point":
            text = _child_text(element, "coordinates")
            if text is not None:
                return text
    return None


def _split_coordinates(text: str) -> tuple[str, str] | None:
    """Return the longitude and latitude of the first ``lon,lat[,alt]`` tuple."""
    tuples = text.split()
    if not tuples:
        return None
    parts = [part.strip() for part in tuples[0].split(",")]
    if len(parts) < 2:
        return None
    try:
        lon, lat = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    if not (math.isfinite(lon) and math.isfinite(lat)):
        return None
    return parts[0], parts[1]


def _extended_data(placemark: ElementTree.Element, stats: ParseStats) -> dict[str, str]:
    fields: dict[str, str] = {}
    for element in placemark.iter():
        local = _local(element.tag)
        if local == "Data":
            key = _attr(element, "name")
            value = _child_text(element, "value")
        elif local == "SimpleData":
            key = _attr(element, "name")
            value = element.text or ""
        else:
            continue
        if key is None or value is None:
            continue
        name = canonical_name(key)
        if name is None:
            if not is_ignored(key):
                warning = f"UNKNOWN_KEY:{key.strip()}"
                if warning not in stats.warnings:
                    stats.warnings.append(warning)
            continue
        if fields.get(name, "").strip():
            continue
        fields[name] = value
    return fields


def _placemark_record(placemark: ElementTree.Element, index: int, stats: ParseStats) -> ParsedRecord:
    coordinates = _point_coordinates(placemark)
    if coordinates is None:
        return ParsedRecord(position=index, record=None, problems=("GEOMETRY_MISSING",))
    lon_lat = _split_coordinates(coordinates)
    if lon_lat is None:
        return ParsedRecord(position=index, record=None, problems=("COORDINATES_UNPARSABLE",))

    fields = _extended_data(placemark, stats)
    fields["longitude"], fields["latitude"] = lon_lat
    record, problems = build_record(fields, parse_kml_timestamp)
    return ParsedRecord(position=index, record=record, problems=tuple(problems))


def iter_kml_records(source: BinaryIO, stats: ParseStats | None = None) -> Iterator[ParsedRecord]:
    """Yield one ParsedRecord per Placemark, positions are 1-based placemark indexes.

    Element names are matched by local name so both plain and namespaced
    documents parse. Placemarks are detached from their parent as soon as
    they are converted.
    """
    stats = stats if stats is not None else ParseStats()
    placemarks = 0
    with_geometry = 0
    open_elements: list[ElementTree.Element] = []
    try:
        for event, element in ElementTree.iterparse(source, events=("start", "end")):
            if event == "start":
                open_elements.append(element)
                continue
            open_elements.pop()
            if _local(element.tag) != "Placemark":
                continue
            placemarks += 1
            stats.seen += 1
            parsed = _placemark_record(element, placemarks, stats)
            element.clear()
            if open_elements:
                open_elements[-1].remove(element)
            if parsed.record is None:
                stats.malformed += 1
                if parsed.problems != ("GEOMETRY_MISSING",):
                    with_geometry += 1
            else:
                with_geometry += 1
            yield parsed
    except ElementTree.ParseError as exc:
        raise UnsupportedStructure(
            f"KML document is not well-formed: {exc}",
            stage="parsing",
            position=placemarks + 1,
        ) from exc

    if placemarks == 0:
        raise UnsupportedStructure("KML document contains no Placemark elements", stage="parsing")
    if with_geometry == 0:
        raise UnsupportedStructure("No Placemark in the KML document carries point geometry", stage="parsing")
