"""Run summary output."""

from __future__ import annotations

from pathlib import Path

from gnettrack_ingest.common.fs import write_json
from gnettrack_ingest.pipeline.run import RunSummary


def summary_payload(summary: RunSummary) -> dict:
    payload = summary.to_dict()
    if summary.dry_run:
        # Nothing reached the network, so network counters are not reported.
        for key in ("batches_sent", "batches_failed", "retries"):
            payload.pop(key)
    return payload


def write_run_summary(path: Path, summary: RunSummary) -> Path:
    write_json(path, summary_payload(summary))
    return path
