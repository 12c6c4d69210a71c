"""
Record normalization: typo fixes and text casing.
"""

from typing import Optional

from income_cleaning.models import UPPERCASE_FIELDS, CleanedRecord
from income_cleaning.normalizers.corrections import DEFAULT_TABLE, CorrectionTable


def uppercase(value: Optional[str]) -> Optional[str]:
    """Uppercase a text value; None and empty strings pass through."""
    if not value:
        return value
    return value.upper()


def normalize(record: CleanedRecord, corrections: CorrectionTable | None = None) -> CleanedRecord:
    """Return the canonical form of a cleaned record.

    Order:
        1. Typo fixes on County, City, Place, State_Name, matched against
           the value as stored ("georia" -> "Georgia"), so a single typo
           table suffices
        2. Uppercase County, City, Place, State_Name
        3. Remaining corrections (Type: "CPD" -> "CDP", "Boroughs" -> "Borough")

    Args:
        record: Record to normalize (not modified)
        corrections: Correction table, defaults to the built-in one

    Returns:
        A new record, or ``record`` itself if nothing changed
    """
    if corrections is None:
        corrections = DEFAULT_TABLE
    changes = {}

    for field in UPPERCASE_FIELDS:
        current = getattr(record, field)
        value = uppercase(corrections.apply(field, current))
        if value != current:
            changes[field] = value

    for field in corrections.fields:
        if field in UPPERCASE_FIELDS:
            continue
        current = getattr(record, field)
        fixed = corrections.apply(field, current)
        if fixed != current:
            changes[field] = fixed

    if not changes:
        return record
    return record.model_copy(update=changes)


def is_normalized(record: CleanedRecord, corrections: CorrectionTable | None = None) -> bool:
    """Whether ``record`` already satisfies the casing and typo invariants."""
    if corrections is None:
        corrections = DEFAULT_TABLE

    for field in UPPERCASE_FIELDS:
        value = getattr(record, field)
        if value and value != value.upper():
            return False

    for field in corrections.fields:
        if getattr(record, field) in corrections.known_bad(field):
            return False

    return True
