"""
Store handles for the raw source and the cleaned table.

Both wrap an explicit engine so several independent stores (e.g. one per
test) can coexist. Connection failures surface as StoreUnavailableError.
"""

from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from income_cleaning.database import (
    CleanedHouseholdIncome,
    PipelineHeartbeat,
    RawHouseholdIncome,
    get_session,
    make_session_factory,
    row_to_dict,
    store_errors,
)
from income_cleaning.errors import RecordValidationError
from income_cleaning.models import CleanedRecord, RawRecord, validate_raw


InsertListener = Callable[[list[dict[str, Any]]], Any]

# Called after each flushed batch; may raise to abort the transaction
BatchCallback = Callable[[], Any]

# Column name -> ORM attribute, for rows keyed by dataset column names
_RAW_ATTRS = {
    (field.alias or name): name for name, field in RawRecord.model_fields.items()
}


def _chunks(items: list, size: int) -> Iterator[list]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class _Store:
    name = "store"

    def __init__(self, engine: Engine, session_factory: sessionmaker | None = None):
        self.engine = engine
        self.session_factory = session_factory or make_session_factory(engine)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """One transaction; commits on success, rolls back on any error."""
        with store_errors(self.name):
            with get_session(self.session_factory) as session:
                yield session

    def ensure_table(self) -> None:
        """Create this store's tables if absent."""
        with store_errors(self.name):
            for table in self._tables():
                table.create(self.engine, checkfirst=True)

    def _tables(self) -> list:
        raise NotImplementedError


class RawSource(_Store):
    """
    Read access to the raw household income table plus the "row inserted"
    notification channel.

    ``insert`` is the only write path; subscribers are called synchronously
    after each committed insert, so the inserting caller blocks until they
    return.
    """

    name = "raw"

    def __init__(self, engine: Engine, session_factory: sessionmaker | None = None):
        super().__init__(engine, session_factory)
        self._listeners: list[InsertListener] = []

    def _tables(self) -> list:
        return [RawHouseholdIncome.__table__]

    def subscribe(self, listener: InsertListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: InsertListener) -> None:
        self._listeners.remove(listener)

    def read_all(self, session: Session) -> tuple[list[RawRecord], list[RecordValidationError]]:
        """
        Read every raw row.

        Returns:
            (valid records, validation errors for rows that were skipped)
        """
        records: list[RawRecord] = []
        errors: list[RecordValidationError] = []

        with store_errors(self.name):
            rows = session.scalars(select(RawHouseholdIncome).order_by(RawHouseholdIncome.row_id))
            for row in rows:
                try:
                    records.append(validate_raw(row_to_dict(row)))
                except RecordValidationError as e:
                    errors.append(e)

        return records, errors

    def insert(self, rows: Iterable[Mapping[str, Any] | RawRecord]) -> list[dict[str, Any]]:
        """
        Append rows to the raw table and notify subscribers.

        Rows may be RawRecords or mappings keyed by column name
        (``State_Name``) or attribute name (``state_name``). Values are
        stored as given; validation happens when the rows are cleaned.

        Returns:
            The inserted rows keyed by attribute name, with ``row_id`` set.
        """
        orm_rows = [RawHouseholdIncome(**self._to_attrs(row)) for row in rows]
        if not orm_rows:
            return []

        with self.transaction() as session:
            session.add_all(orm_rows)
            session.flush()
            inserted = [row_to_dict(row) for row in orm_rows]

        logger.debug(f"Inserted {len(inserted)} raw rows")

        for listener in list(self._listeners):
            listener(inserted)

        return inserted

    @staticmethod
    def _to_attrs(row: Mapping[str, Any] | RawRecord) -> dict[str, Any]:
        if isinstance(row, RawRecord):
            return row.model_dump()
        attrs = {}
        for key, value in row.items():
            attr = _RAW_ATTRS.get(key, key)
            if attr not in RawRecord.model_fields:
                raise ValueError(f"Unknown raw column: {key}")
            attrs[attr] = value
        return attrs


class CleanedStore(_Store):
    """
    Read/write access to the cleaned table and the heartbeat table.

    Only the cleaning pipeline writes through this handle; diagnostics use
    ``transaction`` for read-only queries.
    """

    name = "cleaned"

    def __init__(
        self,
        engine: Engine,
        session_factory: sessionmaker | None = None,
        batch_size: int = 1000,
    ):
        super().__init__(engine, session_factory)
        self.batch_size = batch_size

    def _tables(self) -> list:
        return [CleanedHouseholdIncome.__table__, PipelineHeartbeat.__table__]

    def scan(self, session: Session) -> list[CleanedRecord]:
        """All cleaned records in row_id (arrival) order."""
        rows = session.scalars(select(CleanedHouseholdIncome).order_by(CleanedHouseholdIncome.row_id))
        return [CleanedRecord.model_validate(row_to_dict(row)) for row in rows]

    def append(
        self,
        session: Session,
        records: Iterable[CleanedRecord],
        on_batch: BatchCallback | None = None,
    ) -> list[CleanedRecord]:
        """Insert records; returns them with their assigned row_ids."""
        stored = []
        for batch in _chunks(list(records), self.batch_size):
            orm_rows = [CleanedHouseholdIncome(**record.model_dump(exclude={"row_id"})) for record in batch]
            session.add_all(orm_rows)
            session.flush()
            stored.extend(
                record.model_copy(update={"row_id": row.row_id})
                for record, row in zip(batch, orm_rows)
            )
            if on_batch is not None:
                on_batch()
        return stored

    def delete_rows(self, session: Session, row_ids: Iterable[int], on_batch: BatchCallback | None = None) -> int:
        deleted = 0
        for batch in _chunks(list(row_ids), self.batch_size):
            result = session.execute(
                delete(CleanedHouseholdIncome).where(CleanedHouseholdIncome.row_id.in_(batch))
            )
            deleted += result.rowcount
            if on_batch is not None:
                on_batch()
        return deleted

    def update_rows(
        self,
        session: Session,
        records: Iterable[CleanedRecord],
        on_batch: BatchCallback | None = None,
    ) -> int:
        """Overwrite stored rows by row_id with the given record contents."""
        params = [record.model_dump() for record in records]
        for batch in _chunks(params, self.batch_size):
            session.execute(update(CleanedHouseholdIncome), batch)
            if on_batch is not None:
                on_batch()
        return len(params)

    def exists(self, session: Session, key: tuple[int, datetime]) -> bool:
        """Whether a record with this (id, TimeStamp) is already stored."""
        record_id, timestamp = key
        found = session.scalar(
            select(CleanedHouseholdIncome.row_id)
            .where(CleanedHouseholdIncome.id == record_id)
            .where(CleanedHouseholdIncome.timestamp == timestamp)
            .limit(1)
        )
        return found is not None

    # -------------------------------------------------------------------------
    # Heartbeats
    # -------------------------------------------------------------------------

    def record_heartbeat(self, pipeline_name: str, fired_at: datetime, status: str, error: str | None = None) -> None:
        with self.transaction() as session:
            heartbeat = session.get(PipelineHeartbeat, pipeline_name)
            if heartbeat is None:
                heartbeat = PipelineHeartbeat(pipeline_name=pipeline_name)
                session.add(heartbeat)
            heartbeat.last_fired_at = fired_at
            heartbeat.status = status
            heartbeat.last_error = error

    def last_heartbeat(self, pipeline_name: str) -> PipelineHeartbeat | None:
        with self.transaction() as session:
            return session.get(PipelineHeartbeat, pipeline_name)
