# SPDX-License-Identifier: MIT
"""Tests for (id, TimeStamp) duplicate elimination."""

from datetime import datetime, timedelta

from income_cleaning.deduplication import dedupe, duplicates
from income_cleaning.models import CleanedRecord


T0 = datetime(2024, 1, 1, 12, 0, 0)
T1 = T0 + timedelta(days=30)


def rec(record_id: int, timestamp: datetime = T0, row_id: int | None = None, **fields) -> CleanedRecord:
    return CleanedRecord(id=record_id, timestamp=timestamp, row_id=row_id, **fields)


class TestDedupe:
    """Survivor selection."""

    def test_empty(self):
        assert dedupe([]) == []
        assert duplicates([]) == []

    def test_distinct_records_all_survive(self):
        records = [rec(1, row_id=1), rec(2, row_id=2), rec(3, row_id=3)]
        assert dedupe(records) == records

    def test_n_copies_leave_one(self):
        records = [rec(1, row_id=i, county="cobb") for i in range(1, 6)]
        survivors = dedupe(records)
        assert len(survivors) == 1
        assert len(duplicates(records)) == 4

    def test_lowest_row_id_survives(self):
        """Arrival order breaks ties, whatever the input order."""
        records = [rec(1, row_id=7, city="late"), rec(1, row_id=3, city="early"), rec(1, row_id=5, city="middle")]
        survivors = dedupe(records)
        assert [r.row_id for r in survivors] == [3]
        assert survivors[0].city == "early"

    def test_unstored_records_fall_back_to_input_order(self):
        records = [rec(1, city="first"), rec(1, city="second")]
        assert dedupe(records)[0].city == "first"

    def test_stored_record_beats_unstored(self):
        records = [rec(1, city="new"), rec(1, row_id=10, city="stored")]
        assert dedupe(records)[0].city == "stored"

    def test_same_id_different_timestamps_both_survive(self):
        """Repeated ingestion of an id is a new observation, not a duplicate."""
        records = [rec(1, T0, row_id=1), rec(1, T1, row_id=2)]
        assert dedupe(records) == records
        assert duplicates(records) == []

    def test_survivors_keep_input_order(self):
        records = [rec(2, row_id=4), rec(1, row_id=1), rec(2, row_id=2), rec(3, row_id=3)]
        assert [r.row_id for r in dedupe(records)] == [1, 2, 3]

    def test_dedupe_and_duplicates_partition_input(self):
        records = [rec(1, row_id=1), rec(1, row_id=2), rec(2, row_id=3), rec(2, T1, row_id=4), rec(2, row_id=5)]
        kept = {r.row_id for r in dedupe(records)}
        dropped = {r.row_id for r in duplicates(records)}
        assert kept == {1, 3, 4}
        assert dropped == {2, 5}

    def test_is_deterministic(self):
        records = [rec(1, row_id=i) for i in (9, 2, 5)]
        assert dedupe(records) == dedupe(list(records))


class TestIdentityCollisions:
    """Same id, different TimeStamp."""

    def test_ids_seen_at_several_timestamps_are_kept(self):
        """An id observed at two run times is two observations, not a duplicate pair."""
        records = [rec(1, T0, row_id=1), rec(1, T1, row_id=2), rec(2, T0, row_id=3)]
        assert dedupe(records) == records
        assert duplicates(records) == []
