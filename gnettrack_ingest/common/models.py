"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

TAG_FIELDS = (
    "operator_name",
    "operator_code",
    "cell_id",
    "network_tech",
    "network_mode",
    "lac",
)
FLOAT_FIELDS = (
    "longitude",
    "latitude",
    "speed",
    "level",
    "qual",
    "snr",
    "dl_bitrate",
    "ul_bitrate",
)
INT_FIELDS = ("cqi",)
STRING_FIELDS = ("cgi", "cellname", "node", "arfcn")
REQUIRED_FIELDS = ("timestamp", "longitude", "latitude")


@dataclass(frozen=True)
class CanonicalRecord:
    timestamp: datetime | None = None
    longitude: float | None = None
    latitude: float | None = None
    speed: float | None = None
    operator_name: str | None = None
    operator_code: str | None = None
    cgi: str | None = None
    cellname: str | None = None
    node: str | None = None
    cell_id: str | None = None
    lac: str | None = None
    network_tech: str | None = None
    network_mode: str | None = None
    level: float | None = None
    qual: float | None = None
    snr: float | None = None
    cqi: int | None = None
    arfcn: str | None = None
    dl_bitrate: float | None = None
    ul_bitrate: float | None = None

    def problems(self) -> list[str]:
        out: list[str] = []
        if self.timestamp is None:
            out.append("TIMESTAMP_MISSING")
        if self.longitude is None:
            out.append("LONGITUDE_MISSING")
        elif not -180.0 <= self.longitude <= 180.0:
            out.append("LONGITUDE_OUT_OF_RANGE")
        if self.latitude is None:
            out.append("LATITUDE_MISSING")
        elif not -90.0 <= self.latitude <= 90.0:
            out.append("LATITUDE_OUT_OF_RANGE")
        return out

    @property
    def is_valid(self) -> bool:
        return not self.problems()

    def tags(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in TAG_FIELDS if getattr(self, name) is not None}


@dataclass(frozen=True)
class ParsedRecord:
    """One parser output; ``record`` is None when the input was structurally malformed."""

    position: int
    record: CanonicalRecord | None
    problems: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return self.record is not None and not self.problems


@dataclass
class ParseStats:
    seen: int = 0
    malformed: int = 0
    warnings: list[str] = field(default_factory=list)
