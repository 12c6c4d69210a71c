"""
Deduplication pipeline components.

These modules identify records that share a duplicate key within the
cleaned table and pick the one that survives.
"""

from .dedupe import dedupe, duplicates

__all__ = [
    'dedupe',
    'duplicates',
]
