"""
Known data-entry typos and their canonical values.

The table is data, not control flow: defaults live in DEFAULT_CORRECTIONS
and operators can extend or override them with a JSON file of the same
shape, keyed by dataset column name::

    {"State_Name": {"georia": "Georgia"}, "Type": {"CPD": "CDP"}}
"""

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Optional

from loguru import logger

from income_cleaning.errors import ConfigError
from income_cleaning.models import RawRecord


DEFAULT_CORRECTIONS: dict[str, dict[str, str]] = {
    "State_Name": {
        "georia": "Georgia",
    },
    "Type": {
        "CPD": "CDP",
        "Boroughs": "Borough",
    },
}

# Dataset column name -> record attribute
_FIELD_BY_COLUMN = {
    (field.alias or name): name for name, field in RawRecord.model_fields.items()
}


class CorrectionTable:
    """Exact-match, case-sensitive value substitutions per record field."""

    def __init__(self, corrections: Mapping[str, Mapping[str, str]]):
        self._by_field: dict[str, dict[str, str]] = {}
        for column, mapping in corrections.items():
            field = _FIELD_BY_COLUMN.get(column, column)
            if field not in RawRecord.model_fields:
                raise ConfigError(f"Corrections reference unknown column: {column}")
            self._by_field.setdefault(field, {}).update(mapping)

    def apply(self, field: str, value: Optional[str]) -> Optional[str]:
        """Return the canonical value for ``value``; unmapped values pass through."""
        if not value:
            return value
        return self._by_field.get(field, {}).get(value, value)

    def known_bad(self, field: str) -> frozenset[str]:
        return frozenset(self._by_field.get(field, {}))

    @property
    def fields(self) -> list[str]:
        return list(self._by_field)

    def merged(self, overrides: Mapping[str, Mapping[str, str]]) -> "CorrectionTable":
        combined = {field: dict(mapping) for field, mapping in self._by_field.items()}
        table = CorrectionTable(combined)
        for column, mapping in CorrectionTable(overrides)._by_field.items():
            table._by_field.setdefault(column, {}).update(mapping)
        return table

    def __len__(self) -> int:
        return sum(len(mapping) for mapping in self._by_field.values())

    def __repr__(self) -> str:
        return f"<CorrectionTable {self._by_field}>"


DEFAULT_TABLE = CorrectionTable(DEFAULT_CORRECTIONS)


def load_corrections(path: Path | str | None = None) -> CorrectionTable:
    """Load the default table, extended by the JSON file at ``path`` if given.

    Raises:
        ConfigError: if the file is missing, not JSON, or badly shaped
    """
    if path is None:
        return DEFAULT_TABLE

    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            overrides = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read corrections file {path}: {e}") from e

    if not isinstance(overrides, dict) or not all(
        isinstance(mapping, dict)
        and all(isinstance(k, str) and isinstance(v, str) for k, v in mapping.items())
        for mapping in overrides.values()
    ):
        raise ConfigError(f"Corrections file {path} must map column -> {{bad: good}} strings")

    table = DEFAULT_TABLE.merged(overrides)
    logger.info(f"Loaded {len(table)} corrections ({path})")
    return table
