from datetime import datetime, timezone

import pytest

from gnettrack_ingest.common.errors import MalformedRecord
from gnettrack_ingest.common.models import CanonicalRecord, ParsedRecord
from gnettrack_ingest.pipeline.policy import InvalidRecordPolicy, RecordCounters, filter_valid

STAMP = datetime(2025, 10, 3, 10, 20, 9, tzinfo=timezone.utc)


def _stream():
    good = CanonicalRecord(timestamp=STAMP, longitude=1.0, latitude=2.0)
    bad = CanonicalRecord(timestamp=STAMP, longitude=200.0, latitude=2.0)
    return [
        ParsedRecord(2, good),
        ParsedRecord(3, bad, ("LONGITUDE_OUT_OF_RANGE",)),
        ParsedRecord(4, None, ("FIELD_COUNT_MISMATCH",)),
        ParsedRecord(5, good),
    ]


def test_policy_from_flag():
    assert InvalidRecordPolicy.from_skip_invalid(True) is InvalidRecordPolicy.SKIP
    assert InvalidRecordPolicy.from_skip_invalid(False) is InvalidRecordPolicy.ABORT


def test_skip_yields_valid_records_with_positions():
    counters = RecordCounters()
    out = list(filter_valid(_stream(), InvalidRecordPolicy.SKIP, counters))

    assert [position for position, _ in out] == [2, 5]
    assert counters == RecordCounters(seen=4, valid=2, invalid=2, skipped=2)


def test_abort_raises_at_first_invalid_position():
    counters = RecordCounters()
    out = []
    with pytest.raises(MalformedRecord) as exc_info:
        for item in filter_valid(_stream(), InvalidRecordPolicy.ABORT, counters, unit="placemark"):
            out.append(item)

    assert len(out) == 1
    assert exc_info.value.position == 3
    assert exc_info.value.stage == "normalizing"
    assert "placemark 3" in str(exc_info.value)
    assert counters.skipped == 0
    assert counters.invalid == 1
