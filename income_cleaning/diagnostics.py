"""
Read-only checks on the cleaned table.

Nothing here is called by the pipeline; these queries exist for operators
(``income-cleaning check``) and tests.

Two duplicate notions are reported separately:

- residual duplicates share (id, TimeStamp) and must not survive a run
- duplicate ids share only id: the same external record observed at
  different times, which the pipeline keeps on purpose
"""

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from income_cleaning.database import CleanedHouseholdIncome, row_to_dict
from income_cleaning.models import CleanedRecord
from income_cleaning.normalizers import CorrectionTable, is_normalized


Cleaned = CleanedHouseholdIncome


@dataclass
class DiagnosticsReport:
    """Snapshot of the cleaned table's health."""
    row_count: int
    residual_duplicates: list[tuple[int, datetime, int]] = field(default_factory=list)
    duplicate_ids: list[tuple[int, int]] = field(default_factory=list)
    state_name_counts: list[tuple[str | None, int]] = field(default_factory=list)
    unnormalized: int = 0

    @property
    def clean(self) -> bool:
        """No (id, TimeStamp) duplicates and no unnormalized rows."""
        return not self.residual_duplicates and self.unnormalized == 0


def row_count(session: Session) -> int:
    """Number of rows in the cleaned table."""
    return session.scalar(select(func.count(Cleaned.row_id))) or 0


def duplicate_ids(session: Session) -> list[tuple[int, int]]:
    """(id, count) for ids appearing more than once, at any timestamps."""
    stmt = (
        select(Cleaned.id, func.count(Cleaned.row_id))
        .group_by(Cleaned.id)
        .having(func.count(Cleaned.row_id) > 1)
        .order_by(Cleaned.id)
    )
    return [tuple(row) for row in session.execute(stmt)]


def residual_duplicates(session: Session) -> list[tuple[int, datetime, int]]:
    """(id, TimeStamp, count) for pairs stored more than once."""
    stmt = (
        select(Cleaned.id, Cleaned.timestamp, func.count(Cleaned.row_id))
        .group_by(Cleaned.id, Cleaned.timestamp)
        .having(func.count(Cleaned.row_id) > 1)
        .order_by(Cleaned.id, Cleaned.timestamp)
    )
    return [tuple(row) for row in session.execute(stmt)]


def state_name_counts(session: Session) -> list[tuple[str | None, int]]:
    """(State_Name, count) over the cleaned table."""
    stmt = (
        select(Cleaned.state_name, func.count(Cleaned.state_name))
        .group_by(Cleaned.state_name)
        .order_by(Cleaned.state_name)
    )
    return [tuple(row) for row in session.execute(stmt)]


def unnormalized_count(session: Session, corrections: CorrectionTable | None = None) -> int:
    """Rows whose casing or typo fields would still change under normalization."""
    count = 0
    for row in session.scalars(select(Cleaned)):
        if not is_normalized(CleanedRecord.model_validate(row_to_dict(row)), corrections):
            count += 1
    return count


def build_report(session: Session, corrections: CorrectionTable | None = None) -> DiagnosticsReport:
    return DiagnosticsReport(
        row_count=row_count(session),
        residual_duplicates=residual_duplicates(session),
        duplicate_ids=duplicate_ids(session),
        state_name_counts=state_name_counts(session),
        unnormalized=unnormalized_count(session, corrections),
    )
