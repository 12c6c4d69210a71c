# SPDX-License-Identifier: MIT
"""Tests for the record models."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from income_cleaning.errors import RecordValidationError
from income_cleaning.models import CleanedRecord, RawRecord, to_cleaned, validate_raw


class TestValidateRaw:
    """Source rows into RawRecords."""

    def test_accepts_column_names(self, sample_row):
        """Rows keyed by the dataset's column names should validate."""
        record = validate_raw(sample_row)
        assert record.id == 1011000
        assert record.state_name == "Alabama"
        assert record.zip_code == 36611
        assert record.lat == pytest.approx(30.7717923)

    def test_accepts_attribute_names(self):
        record = validate_raw({"id": 5, "state_name": "Ohio", "type": "City"})
        assert record.state_name == "Ohio"
        assert record.type == "City"

    def test_optional_fields_default_to_none(self):
        record = validate_raw({"id": 7})
        assert record.county is None
        assert record.row_id is None

    def test_missing_id_raises(self, sample_row):
        """A row without an id is malformed."""
        del sample_row["id"]
        with pytest.raises(RecordValidationError) as exc_info:
            validate_raw(sample_row)
        assert exc_info.value.row is not None
        assert isinstance(exc_info.value.__cause__, ValidationError)

    def test_non_numeric_zip_raises(self, sample_row):
        sample_row["Zip_Code"] = "not-a-zip"
        with pytest.raises(RecordValidationError):
            validate_raw(sample_row)

    def test_raw_record_is_immutable(self, sample_row):
        record = validate_raw(sample_row)
        with pytest.raises(ValidationError):
            record.county = "Other"


class TestToCleaned:
    """Stamping raw records for the cleaned table."""

    def test_stamps_timestamp_and_keeps_fields(self, sample_row):
        raw = validate_raw({**sample_row, "row_id": 42})
        stamp = datetime(2024, 3, 1, 8, 30, 15)

        cleaned = to_cleaned(raw, stamp)

        assert isinstance(cleaned, CleanedRecord)
        assert cleaned.timestamp == stamp
        assert cleaned.data_fields() == raw.data_fields()

    def test_raw_row_id_moves_to_source_row_id(self, sample_row):
        raw = validate_raw({**sample_row, "row_id": 42})
        cleaned = to_cleaned(raw, datetime(2024, 3, 1))
        assert cleaned.source_row_id == 42
        assert cleaned.row_id is None

    def test_truncates_to_whole_seconds(self, sample_row):
        """Copies made within one run must share a duplicate key."""
        raw = validate_raw(sample_row)
        cleaned = to_cleaned(raw, datetime(2024, 3, 1, 8, 30, 15, 999_999))
        assert cleaned.timestamp == datetime(2024, 3, 1, 8, 30, 15)

    def test_key_is_id_and_timestamp(self, sample_row):
        stamp = datetime(2024, 3, 1)
        cleaned = to_cleaned(validate_raw(sample_row), stamp)
        assert cleaned.key == (1011000, stamp)

    def test_cleaned_record_validates_timestamp_alias(self):
        record = CleanedRecord.model_validate({"id": 1, "TimeStamp": "2024-01-01T00:00:00"})
        assert record.timestamp == datetime(2024, 1, 1)
        assert isinstance(record, RawRecord)
