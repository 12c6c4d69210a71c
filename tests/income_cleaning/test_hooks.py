# SPDX-License-Identifier: MIT
"""Tests for the insertion hook."""

import pytest

from income_cleaning.hooks import InsertionHook
from income_cleaning.normalizers import is_normalized


class TestFullMode:
    """Hook calling the shared full-run entry point."""

    def test_insert_triggers_cleaning(self, pipeline, raw_source, georgia_row, cleaned_rows):
        hook = InsertionHook(pipeline, mode="full").attach()

        raw_source.insert([georgia_row, georgia_row])

        rows = cleaned_rows()
        assert len(rows) == 1
        assert rows[0].state_name == "GEORGIA"
        assert hook.last_report.trigger == "insert"
        assert hook.last_report.success

    def test_uses_pipeline_run(self, pipeline, raw_source, sample_row, mocker):
        run = mocker.spy(pipeline, "run")
        InsertionHook(pipeline, mode="full").attach()

        raw_source.insert([sample_row])

        run.assert_called_once_with(trigger="insert", blocking=False)

    def test_skips_while_run_in_flight(self, pipeline, raw_source, sample_row, cleaned_rows):
        """The inserting caller is not held up by a concurrent run."""
        hook = InsertionHook(pipeline, mode="full", blocking=False).attach()

        pipeline._lock.acquire()
        try:
            raw_source.insert([sample_row])
        finally:
            pipeline._lock.release()

        assert hook.last_report.skipped
        assert cleaned_rows() == []

        # the next trigger picks the row up
        pipeline.run()
        assert len(cleaned_rows()) == 1

    def test_detach(self, pipeline, raw_source, sample_row, cleaned_rows):
        hook = InsertionHook(pipeline, mode="full").attach()
        hook.detach()
        raw_source.insert([sample_row])
        assert hook.last_report is None
        assert cleaned_rows() == []


class TestIncrementalMode:
    """Hook processing only the inserted rows."""

    def test_insert_cleans_new_rows(self, pipeline, raw_source, georgia_row, sample_row, cleaned_rows):
        hook = InsertionHook(pipeline, mode="incremental").attach()

        raw_source.insert([georgia_row, georgia_row, sample_row])

        rows = cleaned_rows()
        assert len(rows) == 2
        assert all(is_normalized(r) for r in rows)
        assert hook.last_report.records_copied == 2
        assert hook.last_report.duplicates_removed == 1

    def test_does_not_rescan_raw_table(self, pipeline, raw_source, sample_row, mocker):
        InsertionHook(pipeline, mode="incremental").attach()
        read_all = mocker.spy(raw_source, "read_all")

        raw_source.insert([sample_row])

        read_all.assert_not_called()

    def test_only_new_rows_copied(self, pipeline, raw_source, sample_row, clock, cleaned_rows):
        raw_source.insert([sample_row])
        pipeline.run()

        InsertionHook(pipeline, mode="incremental").attach()
        clock.advance(minutes=5)
        raw_source.insert([{**sample_row, "id": 2}])

        assert sorted(r.id for r in cleaned_rows()) == [2, sample_row["id"]]

    def test_agrees_with_full_run(self, pipeline, raw_source, georgia_row, sample_row, cleaned_rows):
        """Incremental cleaning, then a full run at the same time, changes nothing."""
        InsertionHook(pipeline, mode="incremental").attach()
        raw_source.insert([georgia_row, sample_row])
        incremental = cleaned_rows()

        pipeline.run()

        assert cleaned_rows() == incremental


class TestConfiguration:
    """Hook construction."""

    def test_unknown_mode(self, pipeline):
        with pytest.raises(ValueError):
            InsertionHook(pipeline, mode="sometimes")

    def test_defaults_from_settings(self, pipeline):
        hook = InsertionHook(pipeline)
        assert hook.mode == "full"
        assert hook.blocking is False
