"""End-to-end ingestion run: detect, parse, normalise, encode, dispatch."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator

from gnettrack_ingest.common.config_loader import IngestConfig
from gnettrack_ingest.common.constants import (
    EXIT_HARD_FAIL,
    EXIT_PARTIAL,
    EXIT_SUCCESS,
    FORMAT_KML,
    STATUS_ABORTED,
    STATUS_COMPLETED,
    STATUS_PARTIAL,
)
from gnettrack_ingest.common.errors import PARTIAL_DELIVERY, InputUnreadable, PipelineError, TransportError
from gnettrack_ingest.common.http import HttpClient
from gnettrack_ingest.common.ids import generate_run_id
from gnettrack_ingest.common.logging import log_event
from gnettrack_ingest.common.models import CanonicalRecord, ParseStats
from gnettrack_ingest.parsers.kml import iter_kml_records
from gnettrack_ingest.parsers.text_log import iter_text_records
from gnettrack_ingest.pipeline.backend import InfluxV1Target, WriteTarget, build_client, build_target
from gnettrack_ingest.pipeline.detect import detect_format
from gnettrack_ingest.pipeline.dispatch import BatchDispatcher, DispatchTotals
from gnettrack_ingest.pipeline.encode import encode_record
from gnettrack_ingest.pipeline.policy import InvalidRecordPolicy, RecordCounters, filter_valid


@dataclass
class RunSummary:
    run_id: str
    source: str
    dry_run: bool = False
    format: str | None = None
    status: str = STATUS_COMPLETED
    records_seen: int = 0
    records_valid: int = 0
    records_invalid: int = 0
    records_skipped: int = 0
    records_malformed: int = 0
    batches_attempted: int = 0
    batches_sent: int = 0
    batches_failed: int = 0
    retries: int = 0
    wall_time_ms: int = 0
    abort_stage: str | None = None
    error_code: str | None = None
    message: str | None = None
    position: int | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        if self.status == STATUS_ABORTED:
            return EXIT_HARD_FAIL
        if self.status == STATUS_PARTIAL:
            return EXIT_PARTIAL
        return EXIT_SUCCESS

    def to_dict(self) -> dict:
        return asdict(self)


class _StageTracker:
    """Tracks the current stage of the streaming pipeline, logging each stage once."""

    def __init__(self, logger: logging.Logger | None, run_id: str) -> None:
        self.stage = "idle"
        self.reached: set[str] = set()
        self.logger = logger
        self.run_id = run_id

    def enter(self, stage: str) -> None:
        self.stage = stage
        if stage in self.reached:
            return
        self.reached.add(stage)
        if self.logger is not None:
            log_event(self.logger, f"stage {stage}", run_id=self.run_id, stage=stage, event="STAGE_START", status="ok")

    def track(self, items: Iterable, stage: str) -> Iterator:
        """Set ``stage`` while pulling from ``items``; log it once the first item arrives."""
        iterator = iter(items)
        while True:
            self.stage = stage
            try:
                item = next(iterator)
            except StopIteration:
                return
            self.enter(stage)
            yield item


def _encode(records: Iterable[tuple[int, CanonicalRecord]]) -> Iterator[tuple[int, str]]:
    for position, record in records:
        yield position, encode_record(record)


def _default_target(config: IngestConfig) -> tuple[HttpClient, WriteTarget]:
    client = build_client(config)
    return client, build_target(config.influxdb, client)


def ensure_database(target: WriteTarget, logger: logging.Logger | None, run_id: str) -> None:
    if not isinstance(target, InfluxV1Target):
        return
    try:
        target.create_database()
    except TransportError as exc:
        # The database may already exist or the user may lack admin rights.
        if logger is not None:
            log_event(
                logger,
                f"create database skipped: {exc}",
                level=logging.WARNING,
                run_id=run_id,
                stage="dispatching",
                event="CREATE_DATABASE",
                status="warning",
                error_code=exc.error_code,
            )


def run_ingest(
    source: BinaryIO,
    filename: str,
    config: IngestConfig,
    *,
    run_id: str | None = None,
    logger: logging.Logger | None = None,
    target: WriteTarget | None = None,
) -> RunSummary:
    """Run the whole pipeline over one input stream and return its summary.

    Pipeline errors never escape: they end the run as ``aborted`` with the
    stage, error code and, for invalid records, the input position.
    """
    run_id = run_id or generate_run_id()
    processing = config.processing
    summary = RunSummary(run_id=run_id, source=filename, dry_run=processing.dry_run)
    tracker = _StageTracker(logger, run_id)
    stats = ParseStats()
    counters = RecordCounters()
    totals = DispatchTotals()
    started = time.perf_counter()

    owned_client: HttpClient | None = None
    if target is None and not processing.dry_run:
        owned_client, target = _default_target(config)

    def first_batch() -> None:
        tracker.enter("dispatching")
        # Only a run that owns its client provisions the database.
        if owned_client is not None and config.influxdb.create_database:
            ensure_database(target, logger, run_id)

    try:
        tracker.enter("detecting")
        summary.format = detect_format(source, filename)
        parser = iter_kml_records if summary.format == FORMAT_KML else iter_text_records
        unit = "placemark" if summary.format == FORMAT_KML else "line"
        tracker.enter("parsing")

        parsed = tracker.track(parser(source, stats), "parsing")
        valid = tracker.track(
            filter_valid(parsed, InvalidRecordPolicy.from_skip_invalid(processing.skip_invalid), counters, logger=logger, unit=unit),
            "normalizing",
        )
        encoded = tracker.track(_encode(valid), "encoding")
        dispatcher = BatchDispatcher(
            target,
            dry_run=processing.dry_run,
            queue_depth=processing.queue_depth,
            logger=logger,
            run_id=run_id,
            on_first_batch=first_batch,
        )
        dispatcher.run(encoded, processing.batch_size, totals)
        if totals.partial:
            summary.status = STATUS_PARTIAL
            summary.error_code = PARTIAL_DELIVERY
            summary.message = f"{totals.failed} of {totals.attempted} batches failed after retries"
    except PipelineError as exc:
        summary.status = STATUS_ABORTED
        summary.abort_stage = exc.stage or tracker.stage
        summary.error_code = exc.error_code
        summary.message = str(exc)
        summary.position = exc.position
    except OSError as exc:
        error = InputUnreadable(f"Input stream could not be read: {exc}", stage=tracker.stage)
        summary.status = STATUS_ABORTED
        summary.abort_stage = error.stage
        summary.error_code = error.error_code
        summary.message = str(error)
    finally:
        if owned_client is not None:
            owned_client.close()

    summary.records_seen = stats.seen
    summary.records_malformed = stats.malformed
    summary.records_valid = counters.valid
    summary.records_invalid = counters.invalid
    summary.records_skipped = counters.skipped
    summary.batches_attempted = totals.attempted
    summary.batches_sent = totals.sent
    summary.batches_failed = totals.failed
    summary.retries = totals.retries
    summary.warnings = list(stats.warnings)
    summary.wall_time_ms = int((time.perf_counter() - started) * 1000)

    if logger is not None:
        log_event(
            logger,
            f"run {summary.status}",
            level=logging.ERROR if summary.status == STATUS_ABORTED else logging.INFO,
            run_id=run_id,
            stage=summary.abort_stage or tracker.stage,
            source=filename,
            event="RUN_SUMMARY",
            status=summary.status,
            rows_in=summary.records_seen,
            rows_out=summary.records_valid,
            duration_ms=summary.wall_time_ms,
            error_code=summary.error_code,
        )
    return summary


def run_file(
    path: Path,
    config: IngestConfig,
    *,
    run_id: str | None = None,
    logger: logging.Logger | None = None,
    target: WriteTarget | None = None,
) -> RunSummary:
    try:
        source = path.open("rb")
    except OSError as exc:
        summary = RunSummary(
            run_id=run_id or generate_run_id(),
            source=str(path),
            dry_run=config.processing.dry_run,
            status=STATUS_ABORTED,
            abort_stage="idle",
            error_code=InputUnreadable.error_code,
            message=f"Input file could not be opened: {exc}",
        )
        if logger is not None:
            log_event(
                logger,
                summary.message,
                level=logging.ERROR,
                run_id=summary.run_id,
                stage="idle",
                source=str(path),
                event="RUN_SUMMARY",
                status=summary.status,
                error_code=summary.error_code,
            )
        return summary
    with source:
        return run_ingest(source, path.name, config, run_id=run_id, logger=logger, target=target)
