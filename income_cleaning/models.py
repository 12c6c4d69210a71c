"""
Record models for the household income dataset.

Attribute names are snake_case; the source table's column names
(``State_Name``, ``Zip_Code``, ...) are accepted as aliases so a row
read from the raw table validates directly.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from income_cleaning.errors import RecordValidationError


# Text columns held in uppercase in the cleaned table
UPPERCASE_FIELDS = ("county", "city", "place", "state_name")


class RawRecord(BaseModel):
    """Immutable snapshot of one row of the raw household income table."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # Identity
    row_id: Optional[int] = None
    id: int

    # Geography
    state_code: Optional[int] = Field(default=None, alias="State_Code")
    state_name: Optional[str] = Field(default=None, alias="State_Name")
    state_ab: Optional[str] = Field(default=None, alias="State_ab")
    county: Optional[str] = Field(default=None, alias="County")
    city: Optional[str] = Field(default=None, alias="City")
    place: Optional[str] = Field(default=None, alias="Place")
    type: Optional[str] = Field(default=None, alias="Type")
    primary: Optional[str] = Field(default=None, alias="Primary")

    # Numeric
    zip_code: Optional[int] = Field(default=None, alias="Zip_Code")
    area_code: Optional[int] = Field(default=None, alias="Area_Code")
    aland: Optional[int] = Field(default=None, alias="ALand")
    awater: Optional[int] = Field(default=None, alias="AWater")
    lat: Optional[float] = Field(default=None, alias="Lat")
    lon: Optional[float] = Field(default=None, alias="Lon")

    def data_fields(self) -> dict[str, Any]:
        """Dataset columns only, without identity or tracking fields."""
        return self.model_dump(exclude={"row_id", "source_row_id", "timestamp"})


class CleanedRecord(RawRecord):
    """
    A raw record copied into the cleaned table.

    ``row_id`` is the cleaned table's surrogate key, assigned on insert and
    not stable across cleaning runs. The raw row's own ``row_id`` is kept
    as ``source_row_id``.
    """

    timestamp: datetime = Field(alias="TimeStamp")
    source_row_id: Optional[int] = None

    @property
    def key(self) -> tuple[int, datetime]:
        """Duplicate key: (id, TimeStamp)."""
        return (self.id, self.timestamp)


def validate_raw(row: Mapping[str, Any]) -> RawRecord:
    """
    Validate a source row into a RawRecord.

    Raises:
        RecordValidationError: if the row is malformed
    """
    try:
        return RawRecord.model_validate(dict(row))
    except PydanticValidationError as e:
        raise RecordValidationError(
            f"Invalid raw record (id={row.get('id')!r}): {e.error_count()} error(s)",
            row=dict(row),
        ) from e


def to_cleaned(raw: RawRecord, timestamp: datetime) -> CleanedRecord:
    """Stamp a raw record for the cleaned table.

    The timestamp is truncated to whole seconds, matching SQL TIMESTAMP
    resolution, so copies made within one run share a duplicate key.
    """
    data = raw.model_dump(exclude={"row_id"})
    return CleanedRecord(
        **data,
        source_row_id=raw.row_id,
        timestamp=timestamp.replace(microsecond=0),
    )
