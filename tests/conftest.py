# SPDX-License-Identifier: MIT
"""Pytest configuration and fixtures for the household income cleaning tests."""

import os
from datetime import datetime, timedelta

import pytest

# Set test environment variables before importing the package
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("DISABLE_LOGGING", "1")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")


class FakeClock:
    """Controllable clock for pipeline run times and scheduler ticks."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 12, 0, 0))


@pytest.fixture
def engine():
    """Fresh in-memory database with every table created."""
    from income_cleaning.database import create_db_engine, init_db

    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def raw_source(engine):
    from income_cleaning.store import RawSource

    return RawSource(engine)


@pytest.fixture
def cleaned_store(engine):
    """Cleaned store with a tiny batch size so chunking is exercised."""
    from income_cleaning.store import CleanedStore

    return CleanedStore(engine, batch_size=2)


@pytest.fixture
def pipeline(raw_source, cleaned_store, clock):
    from income_cleaning.cleaning import CleaningPipeline

    return CleaningPipeline(raw_source, cleaned_store, clock=clock)


@pytest.fixture
def sample_row() -> dict:
    """One raw row keyed by the dataset's column names."""
    return {
        "id": 1011000,
        "State_Code": 1,
        "State_Name": "Alabama",
        "State_ab": "AL",
        "County": "Mobile County",
        "City": "Chickasaw",
        "Place": "Chickasaw city",
        "Type": "City",
        "Primary": "place",
        "Zip_Code": 36611,
        "Area_Code": 251,
        "ALand": 10894952,
        "AWater": 909156,
        "Lat": 30.7717923,
        "Lon": -88.0792409,
    }


@pytest.fixture
def georgia_row() -> dict:
    """Row carrying every known typo."""
    return {
        "id": 1,
        "State_Code": 13,
        "State_Name": "georia",
        "State_ab": "GA",
        "County": "cobb",
        "City": "Marietta",
        "Place": "Marietta city",
        "Type": "CPD",
        "Primary": "Track",
        "Zip_Code": 30060,
        "Area_Code": 770,
        "ALand": 1000,
        "AWater": 0,
        "Lat": 33.95,
        "Lon": -84.55,
    }


@pytest.fixture
def cleaned_rows(cleaned_store):
    """Read the whole cleaned table."""
    def _read():
        with cleaned_store.transaction() as session:
            return cleaned_store.scan(session)
    return _read
