"""
US Household Income automated data cleaning.

Copies the raw household income table into a tracked cleaned table,
removes duplicates, fixes known typos and uppercases text fields, on a
schedule and after every raw insert.

Run with:
    python -m income_cleaning.main run
"""

__version__ = "1.0.0"
