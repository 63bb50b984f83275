"""Invalid-record policy applied between parsing and encoding."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator

from gnettrack_ingest.common.errors import MalformedRecord
from gnettrack_ingest.common.logging import log_event
from gnettrack_ingest.common.models import CanonicalRecord, ParsedRecord


class InvalidRecordPolicy(Enum):
    SKIP = "skip"
    ABORT = "abort"

    @classmethod
    def from_skip_invalid(cls, skip_invalid: bool) -> "InvalidRecordPolicy":
        return cls.SKIP if skip_invalid else cls.ABORT


@dataclass
class RecordCounters:
    seen: int = 0
    valid: int = 0
    invalid: int = 0
    skipped: int = 0


def filter_valid(
    parsed: Iterable[ParsedRecord],
    policy: InvalidRecordPolicy,
    counters: RecordCounters,
    *,
    logger: logging.Logger | None = None,
    unit: str = "line",
) -> Iterator[tuple[int, CanonicalRecord]]:
    """Yield ``(position, record)`` for valid records.

    Invalid records are counted; under ``SKIP`` they are dropped, under
    ``ABORT`` the first one raises ``MalformedRecord`` with its position.
    """
    for item in parsed:
        counters.seen += 1
        if item.is_valid:
            counters.valid += 1
            yield item.position, item.record
            continue

        counters.invalid += 1
        reasons = ",".join(item.problems) or "INVALID"
        if policy is InvalidRecordPolicy.ABORT:
            raise MalformedRecord(
                f"Invalid record at {unit} {item.position}: {reasons}",
                stage="normalizing",
                position=item.position,
            )
        counters.skipped += 1
        if logger is not None:
            log_event(
                logger,
                f"skipping invalid record at {unit} {item.position}: {reasons}",
                level=logging.WARNING,
                stage="normalizing",
                event="RECORD_SKIPPED",
                status="warning",
                error_code="MALFORMED_RECORD",
            )
