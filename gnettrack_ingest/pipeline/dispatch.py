"""Batching and ordered, retry-aware delivery of encoded lines."""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator

from gnettrack_ingest.common.constants import DRY_RUN_SAMPLE_LINES
from gnettrack_ingest.common.errors import TransportRejected, TransportTransient
from gnettrack_ingest.common.logging import log_event
from gnettrack_ingest.pipeline.backend import WriteTarget

_DONE = object()


@dataclass(frozen=True)
class Batch:
    index: int
    lines: tuple[str, ...]
    first_position: int
    last_position: int

    def __len__(self) -> int:
        return len(self.lines)


@dataclass(frozen=True)
class DeliveryOutcome:
    batch_index: int
    accepted: int
    rejected: int
    status_code: int | None
    retries: int
    error_code: str | None = None
    dry_run: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error_code is None


@dataclass
class DispatchTotals:
    attempted: int = 0
    sent: int = 0
    failed: int = 0
    retries: int = 0
    accepted: int = 0
    rejected: int = 0
    partial: bool = False

    def fold(self, outcome: DeliveryOutcome) -> None:
        self.attempted += 1
        self.retries += outcome.retries
        self.accepted += outcome.accepted
        self.rejected += outcome.rejected
        if outcome.dry_run:
            return
        if outcome.succeeded:
            self.sent += 1
        else:
            self.failed += 1


def iter_batches(lines: Iterable[tuple[int, str]], batch_size: int) -> Iterator[Batch]:
    """Group ``(position, line)`` pairs into sealed batches of at most ``batch_size``."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    pending: list[str] = []
    first_position = 0
    last_position = 0
    index = 0
    for position, line in lines:
        if not pending:
            first_position = position
        pending.append(line)
        last_position = position
        if len(pending) == batch_size:
            index += 1
            yield Batch(index, tuple(pending), first_position, last_position)
            pending = []
    if pending:
        yield Batch(index + 1, tuple(pending), first_position, last_position)


class BatchDispatcher:
    """Deliver sealed batches in order from a bounded queue on one worker thread.

    Transient failures are retried inside the HTTP client. A batch whose
    retries are exhausted aborts the run unless an earlier batch already
    landed, in which case it is recorded as failed and the run ends partial.
    A rejected batch (4xx) always aborts. ``on_first_batch`` runs once on the
    worker, right before the first batch is handled.
    """

    def __init__(
        self,
        target: WriteTarget | None,
        *,
        dry_run: bool = False,
        queue_depth: int = 4,
        logger: logging.Logger | None = None,
        run_id: str | None = None,
        on_first_batch: Callable[[], None] | None = None,
    ) -> None:
        if target is None and not dry_run:
            raise ValueError("a write target is required unless dry_run is set")
        self.target = target
        self.dry_run = dry_run
        self.queue_depth = queue_depth
        self.logger = logger
        self.run_id = run_id
        self.on_first_batch = on_first_batch

    def _log(self, message: str, level: int = logging.INFO, **fields) -> None:
        if self.logger is not None:
            log_event(self.logger, message, level=level, run_id=self.run_id, stage="dispatching", **fields)

    def _log_sample(self, batch: Batch) -> None:
        if self.logger is None or not self.logger.isEnabledFor(logging.DEBUG):
            return
        for line in batch.lines[:DRY_RUN_SAMPLE_LINES]:
            self._log(line, level=logging.DEBUG, event="DRY_RUN_SAMPLE", status="ok", batch=batch.index)

    def deliver(self, batch: Batch, totals: DispatchTotals) -> DeliveryOutcome:
        if totals.attempted == 0 and self.on_first_batch is not None:
            self.on_first_batch()
        if self.dry_run:
            if batch.index == 1:
                self._log_sample(batch)
            outcome = DeliveryOutcome(batch.index, len(batch), 0, None, 0, dry_run=True)
            totals.fold(outcome)
            self._log("dry-run batch", event="BATCH_DRY_RUN", status="ok", batch=batch.index, rows_out=len(batch))
            return outcome

        started = time.perf_counter()
        try:
            result = self.target.write_lines(batch.lines)
        except TransportRejected as exc:
            retries = exc.retry_state.retries if exc.retry_state else 0
            totals.fold(DeliveryOutcome(batch.index, 0, len(batch), exc.status_code, retries, exc.error_code))
            self._log(
                f"batch {batch.index} rejected: {exc}",
                level=logging.ERROR,
                event="BATCH_FAIL",
                status="error",
                batch=batch.index,
                error_code=exc.error_code,
            )
            exc.stage = "dispatching"
            exc.position = batch.first_position
            raise
        except TransportTransient as exc:
            retries = exc.retry_state.retries if exc.retry_state else 0
            outcome = DeliveryOutcome(batch.index, 0, len(batch), exc.status_code, retries, exc.error_code)
            had_success = totals.sent > 0
            totals.fold(outcome)
            self._log(
                f"batch {batch.index} failed after {retries + 1} attempts: {exc}",
                level=logging.ERROR,
                event="BATCH_FAIL",
                status="error",
                attempt=retries + 1,
                batch=batch.index,
                error_code=exc.error_code,
            )
            if not had_success:
                exc.stage = "dispatching"
                exc.position = batch.first_position
                raise
            totals.partial = True
            return outcome

        outcome = DeliveryOutcome(batch.index, len(batch), 0, result.status_code, result.retry_state.retries)
        totals.fold(outcome)
        self._log(
            f"batch {batch.index} delivered",
            event="BATCH_SENT",
            status="ok",
            attempt=result.retry_state.attempts,
            batch=batch.index,
            rows_out=len(batch),
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
        return outcome

    def _offer(self, batches: queue.Queue, item: object, stop: threading.Event) -> bool:
        while not stop.is_set():
            try:
                batches.put(item, timeout=0.1)
                return True
            except queue.Full:
                continue
        return False

    def run(
        self,
        lines: Iterable[tuple[int, str]],
        batch_size: int,
        totals: DispatchTotals | None = None,
    ) -> DispatchTotals:
        """Seal and dispatch batches while ``lines`` is still being produced.

        Batches sealed before a producer error are still delivered; the error
        is re-raised once the worker has finished. A dispatch error stops the
        producer at its next hand-off and is re-raised here.
        """
        totals = totals if totals is not None else DispatchTotals()
        batches: queue.Queue = queue.Queue(maxsize=self.queue_depth)
        stop = threading.Event()
        failures: list[Exception] = []

        def worker() -> None:
            while True:
                item = batches.get()
                try:
                    if item is _DONE:
                        return
                    if not stop.is_set():
                        self.deliver(item, totals)
                except Exception as exc:
                    failures.append(exc)
                    stop.set()
                finally:
                    batches.task_done()

        thread = threading.Thread(target=worker, name="batch-dispatcher", daemon=True)
        thread.start()
        try:
            for batch in iter_batches(lines, batch_size):
                if not self._offer(batches, batch, stop):
                    break
        finally:
            batches.put(_DONE)
            thread.join()

        if failures:
            raise failures[0]
        return totals

