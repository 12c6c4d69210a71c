"""
The household income cleaning pipeline.

One entry point, ``CleaningPipeline.run``, shared by the scheduler and the
insertion hook:

    1. ensure the cleaned table exists
    2. copy every raw row, stamped with the run time
    3. delete (id, TimeStamp) duplicates from the whole cleaned table
    4. normalize every surviving row

Steps 2-4 share one transaction. Runs are serialized by a lock scoped to
the pipeline (and so to its cleaned store).
"""

import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Any

from loguru import logger
from sqlalchemy.orm import Session

from income_cleaning.config import Settings, get_settings
from income_cleaning.database import create_db_engine, make_session_factory
from income_cleaning.deduplication import dedupe, duplicates
from income_cleaning.errors import (
    CleaningError,
    ConcurrentRunSkipped,
    RecordValidationError,
    RunTimeoutError,
)
from income_cleaning.models import CleanedRecord, to_cleaned, validate_raw
from income_cleaning.normalizers import CorrectionTable, load_corrections, normalize
from income_cleaning.store import CleanedStore, RawSource


PIPELINE_NAME = "household_income_cleaning"


def utcnow() -> datetime:
    """Naive UTC now, as stored in SQL TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class CleaningReport:
    """Result of a cleaning run."""
    trigger: str
    status: str = "pending"  # success, failed, skipped
    run_time: datetime | None = None
    records_copied: int = 0
    duplicates_removed: int = 0
    records_normalized: int = 0
    records_invalid: int = 0
    errors: list[str] = field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def success(self) -> bool:
        return self.status == "success"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @property
    def duration_seconds(self) -> float | None:
        """Calculate duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


class _Budget:
    """Execution budget for one run; zero or None means unbounded."""

    def __init__(self, seconds: float | None):
        self.seconds = seconds
        self._deadline = time.monotonic() + seconds if seconds else None

    def check(self, step: str) -> None:
        if self._deadline is not None and time.monotonic() > self._deadline:
            raise RunTimeoutError(f"Run exceeded its {self.seconds:g}s budget during {step}")


class CleaningPipeline:
    """
    Copy, deduplicate and normalize the raw household income table into
    the cleaned table.

    The pipeline is not reentrant: concurrent callers either wait for the
    lock (``blocking=True``) or get a ``skipped`` report.
    """

    def __init__(
        self,
        raw_source: RawSource,
        cleaned_store: CleanedStore,
        corrections: CorrectionTable | None = None,
        clock: Callable[[], datetime] = utcnow,
        timeout_seconds: float | None = None,
        name: str = PIPELINE_NAME,
    ):
        self.raw_source = raw_source
        self.cleaned_store = cleaned_store
        self.corrections = load_corrections() if corrections is None else corrections
        self.clock = clock
        self.timeout_seconds = timeout_seconds
        self.name = name
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    # -------------------------------------------------------------------------
    # Full run
    # -------------------------------------------------------------------------

    def run(self, trigger: str = "manual", blocking: bool = True) -> CleaningReport:
        """
        Run the full pipeline.

        Args:
            trigger: Who asked for the run (manual, scheduled, insert)
            blocking: Wait for an in-flight run instead of skipping

        Returns:
            CleaningReport; status ``skipped`` if another run held the lock

        Raises:
            StoreUnavailableError: a store could not be reached
            RunTimeoutError: the execution budget was exceeded
        """
        if not self._lock.acquire(blocking=blocking):
            return self._skipped(trigger)
        try:
            return self._execute(trigger, self._full_run)
        finally:
            self._lock.release()

    def run_or_raise(self, trigger: str = "manual", blocking: bool = False) -> CleaningReport:
        """Like ``run`` but raises ConcurrentRunSkipped instead of returning a skipped report."""
        report = self.run(trigger=trigger, blocking=blocking)
        if report.skipped:
            raise ConcurrentRunSkipped(f"{self.name}: a run is already in progress")
        return report

    def _full_run(self, session: Session, report: CleaningReport, budget: _Budget) -> None:
        self._copy(session, report, budget)
        budget.check("copy")
        self._dedupe(session, report, budget)
        budget.check("deduplicate")
        self._normalize(session, report, budget)

    def _copy(self, session: Session, report: CleaningReport, budget: _Budget) -> None:
        if self.raw_source.engine is self.cleaned_store.engine:
            # Same database: read the snapshot inside the cleaning transaction
            raw_records, invalid = self.raw_source.read_all(session)
        else:
            with self.raw_source.transaction() as raw_session:
                raw_records, invalid = self.raw_source.read_all(raw_session)

        for error in invalid:
            logger.warning(f"Skipping raw record: {error}")
            report.errors.append(str(error))
        report.records_invalid += len(invalid)
        budget.check("read raw")

        cleaned = [to_cleaned(raw, report.run_time) for raw in raw_records]
        self.cleaned_store.append(session, cleaned, on_batch=partial(budget.check, "copy"))
        report.records_copied = len(cleaned)
        logger.debug(f"Copied {len(cleaned)} raw records at {report.run_time}")

    def _dedupe(self, session: Session, report: CleaningReport, budget: _Budget) -> None:
        records = self.cleaned_store.scan(session)
        losers = duplicates(records)
        if losers:
            report.duplicates_removed = self.cleaned_store.delete_rows(
                session,
                [record.row_id for record in losers],
                on_batch=partial(budget.check, "deduplicate"),
            )
        logger.debug(f"Removed {report.duplicates_removed} duplicates of {len(records)} rows")

    def _normalize(self, session: Session, report: CleaningReport, budget: _Budget) -> None:
        changed = []
        for record in self.cleaned_store.scan(session):
            fixed = normalize(record, self.corrections)
            if fixed is not record:
                changed.append(fixed)
        budget.check("normalize")

        report.records_normalized = self.cleaned_store.update_rows(
            session, changed, on_batch=partial(budget.check, "normalize")
        )

    # -------------------------------------------------------------------------
    # Incremental run (insertion hook)
    # -------------------------------------------------------------------------

    def process_inserted(
        self,
        rows: Iterable[Mapping[str, Any]],
        trigger: str = "insert",
        blocking: bool = False,
    ) -> CleaningReport:
        """
        Clean only newly inserted raw rows.

        Each row is validated, stamped, normalized and appended unless a
        record with the same (id, TimeStamp) already exists. Leaves the
        cleaned table in the same invariant state as a full run.
        """
        rows = list(rows)
        if not self._lock.acquire(blocking=blocking):
            return self._skipped(trigger)
        try:
            return self._execute(trigger, partial(self._incremental, rows))
        finally:
            self._lock.release()

    def _incremental(self, rows: list[Mapping[str, Any]], session: Session, report: CleaningReport, budget: _Budget) -> None:
        candidates: list[CleanedRecord] = []
        for row in rows:
            try:
                raw = validate_raw(row)
            except RecordValidationError as e:
                logger.warning(f"Skipping inserted record: {e}")
                report.errors.append(str(e))
                report.records_invalid += 1
                continue
            stamped = to_cleaned(raw, report.run_time)
            fixed = normalize(stamped, self.corrections)
            if fixed is not stamped:
                report.records_normalized += 1
            candidates.append(fixed)

        survivors = dedupe(candidates)
        report.duplicates_removed = len(candidates) - len(survivors)

        fresh = []
        for record in survivors:
            if self.cleaned_store.exists(session, record.key):
                report.duplicates_removed += 1
            else:
                fresh.append(record)
            budget.check("incremental check")

        self.cleaned_store.append(session, fresh, on_batch=partial(budget.check, "incremental append"))
        report.records_copied = len(fresh)

    # -------------------------------------------------------------------------
    # Shared plumbing
    # -------------------------------------------------------------------------

    def _execute(self, trigger: str, body: Callable[[Session, CleaningReport, _Budget], None]) -> CleaningReport:
        with logger.contextualize(trigger=trigger):
            return self._execute_in_context(trigger, body)

    def _execute_in_context(self, trigger: str, body: Callable[[Session, CleaningReport, _Budget], None]) -> CleaningReport:
        report = CleaningReport(trigger=trigger, started_at=utcnow(), run_time=self.clock().replace(microsecond=0))
        budget = _Budget(self.timeout_seconds)
        logger.info(f"Cleaning run started (trigger={trigger}, run_time={report.run_time})")

        try:
            self.cleaned_store.ensure_table()
            with self.cleaned_store.transaction() as session:
                body(session, report, budget)
        except CleaningError as e:
            logger.error(f"Cleaning run failed (trigger={trigger}): {e}")
            self._fail(report, e)
            raise
        except Exception as e:
            logger.exception(f"Cleaning run crashed (trigger={trigger})")
            self._fail(report, e)
            raise

        report.status = "success"
        report.completed_at = utcnow()
        logger.info(
            f"Cleaning run complete (trigger={trigger}): copied={report.records_copied} "
            f"duplicates_removed={report.duplicates_removed} normalized={report.records_normalized} "
            f"invalid={report.records_invalid} in {report.duration_seconds:.2f}s"
        )
        self._heartbeat(report)
        return report

    def _fail(self, report: CleaningReport, error: Exception) -> None:
        message = str(error) or type(error).__name__
        report.status = "failed"
        report.errors.append(message)
        report.completed_at = utcnow()
        self._heartbeat(report, error=message)

    def _skipped(self, trigger: str) -> CleaningReport:
        now = utcnow()
        logger.info(f"Cleaning run skipped (trigger={trigger}): another run is in progress")
        return CleaningReport(trigger=trigger, status="skipped", started_at=now, completed_at=now)

    def _heartbeat(self, report: CleaningReport, error: str | None = None) -> None:
        try:
            self.cleaned_store.record_heartbeat(
                f"{self.name}:{report.trigger}", report.run_time, report.status, error
            )
        except Exception:
            logger.exception("Failed to write heartbeat")


def create_pipeline(settings: Settings | None = None, engine=None) -> CleaningPipeline:
    """Build a pipeline wired to the configured database."""
    settings = settings or get_settings()
    engine = engine or create_db_engine(settings.database.url, settings.database.echo)
    session_factory = make_session_factory(engine)

    return CleaningPipeline(
        raw_source=RawSource(engine, session_factory),
        cleaned_store=CleanedStore(engine, session_factory, batch_size=settings.cleaning.batch_size),
        corrections=load_corrections(settings.cleaning.corrections_file),
        timeout_seconds=settings.cleaning.run_timeout_seconds or None,
    )
