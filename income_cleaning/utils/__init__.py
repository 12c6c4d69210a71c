"""Utility modules for the cleaning pipeline."""

from income_cleaning.utils.logging import setup_logging

__all__ = [
    "setup_logging",
]
