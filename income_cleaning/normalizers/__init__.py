"""
Data normalization utilities.

These modules bring cleaned records to their canonical form: known typos
corrected and geographic text fields uppercased.
"""

from .corrections import DEFAULT_CORRECTIONS, DEFAULT_TABLE, CorrectionTable, load_corrections
from .record import is_normalized, normalize, uppercase

__all__ = [
    'normalize',
    'is_normalized',
    'uppercase',
    'CorrectionTable',
    'DEFAULT_CORRECTIONS',
    'DEFAULT_TABLE',
    'load_corrections',
]
