"""
Duplicate elimination for cleaned records.

Two records are duplicates when they share (id, TimeStamp). Records with
the same id but different timestamps are separate observations and are
both kept.

Within a duplicate group the record with the lowest row_id (earliest
arrival in the cleaned table) survives. Records without a row_id rank
after stored ones, in input order.
"""

from collections.abc import Sequence
from datetime import datetime

from income_cleaning.models import CleanedRecord


def _rank(position: int, record: CleanedRecord) -> tuple:
    return (record.row_id is None, record.row_id or 0, position)


def _survivor_positions(records: Sequence[CleanedRecord]) -> set[int]:
    best: dict[tuple[int, datetime], tuple[int, CleanedRecord]] = {}
    for position, record in enumerate(records):
        current = best.get(record.key)
        if current is None or _rank(position, record) < _rank(*current):
            best[record.key] = (position, record)
    return {position for position, _ in best.values()}


def dedupe(records: Sequence[CleanedRecord]) -> list[CleanedRecord]:
    """Keep one record per (id, TimeStamp); survivors stay in input order."""
    keep = _survivor_positions(records)
    return [record for position, record in enumerate(records) if position in keep]


def duplicates(records: Sequence[CleanedRecord]) -> list[CleanedRecord]:
    """The records ``dedupe`` would discard."""
    keep = _survivor_positions(records)
    return [record for position, record in enumerate(records) if position not in keep]
