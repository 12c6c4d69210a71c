"""
Database models for the household income cleaning pipeline.

Uses SQLAlchemy 2.0. Column names match the source dataset
(``State_Name``, ``Zip_Code``, ``TimeStamp``, ...); ORM attributes are
snake_case and line up with the fields of ``income_cleaning.models``.
"""

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    inspect,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from income_cleaning.config import settings
from income_cleaning.errors import StoreUnavailableError


# =============================================================================
# Database Engine and Session
# =============================================================================

def create_db_engine(url: str | None = None, echo: bool | None = None) -> Engine:
    """
    Create an engine for the configured database.

    SQLite engines are made thread-safe for the scheduler thread; in-memory
    SQLite shares one connection so every session sees the same tables.
    """
    url = url or settings.database.url
    echo = settings.database.echo if echo is None else echo

    kwargs = {"echo": echo, "pool_pre_ping": True}
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if not parsed.database or parsed.database == ":memory:":
            kwargs["poolclass"] = StaticPool
        else:
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@contextmanager
def get_session(session_factory: sessionmaker):
    """Context manager for database sessions: one transaction, committed on success."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def store_errors(store_name: str):
    """Translate connection-level database failures into StoreUnavailableError."""
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        raise StoreUnavailableError(f"{store_name} store unavailable: {e.orig or e}") from e
    except DBAPIError as e:
        if e.connection_invalidated:
            raise StoreUnavailableError(f"{store_name} store connection lost: {e.orig or e}") from e
        raise


# =============================================================================
# Base Model
# =============================================================================

class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class _HouseholdIncomeColumns:
    """Dataset columns shared by the raw and cleaned tables."""

    id: Mapped[Optional[int]] = mapped_column("id", Integer, nullable=True, index=True)

    # Geography
    state_code: Mapped[Optional[int]] = mapped_column("State_Code", Integer, nullable=True)
    state_name: Mapped[Optional[str]] = mapped_column("State_Name", Text, nullable=True)
    state_ab: Mapped[Optional[str]] = mapped_column("State_ab", Text, nullable=True)
    county: Mapped[Optional[str]] = mapped_column("County", Text, nullable=True)
    city: Mapped[Optional[str]] = mapped_column("City", Text, nullable=True)
    place: Mapped[Optional[str]] = mapped_column("Place", Text, nullable=True)
    type: Mapped[Optional[str]] = mapped_column("Type", Text, nullable=True)
    primary: Mapped[Optional[str]] = mapped_column("Primary", Text, nullable=True)

    # Numeric (land/water areas exceed 32 bits)
    zip_code: Mapped[Optional[int]] = mapped_column("Zip_Code", Integer, nullable=True)
    area_code: Mapped[Optional[int]] = mapped_column("Area_Code", Integer, nullable=True)
    aland: Mapped[Optional[int]] = mapped_column("ALand", BigInteger, nullable=True)
    awater: Mapped[Optional[int]] = mapped_column("AWater", BigInteger, nullable=True)
    lat: Mapped[Optional[float]] = mapped_column("Lat", Float, nullable=True)
    lon: Mapped[Optional[float]] = mapped_column("Lon", Float, nullable=True)


# =============================================================================
# Household Income Tables
# =============================================================================

class RawHouseholdIncome(_HouseholdIncomeColumns, Base):
    """
    Raw household income rows as written by the external ingestion process.

    Nothing in this package modifies existing rows; ``RawSource.insert`` only
    appends.
    """
    __tablename__ = settings.cleaning.raw_table

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    def __repr__(self) -> str:
        return f"<RawHouseholdIncome row={self.row_id} id={self.id}>"


class CleanedHouseholdIncome(_HouseholdIncomeColumns, Base):
    """
    Cleaned copy of the raw table.

    Each pipeline run appends a snapshot stamped with the run time, then
    deletes duplicate (id, TimeStamp) rows and normalizes the survivors.
    """
    __tablename__ = settings.cleaning.cleaned_table

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_row_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    timestamp: Mapped[datetime] = mapped_column("TimeStamp", DateTime, nullable=False)

    __table_args__ = (
        Index(f"idx_{settings.cleaning.cleaned_table}_id_ts", "id", "TimeStamp"),
    )

    def __repr__(self) -> str:
        return f"<CleanedHouseholdIncome row={self.row_id} id={self.id} ts={self.timestamp}>"


class PipelineHeartbeat(Base):
    """Last fire time and outcome per pipeline trigger."""
    __tablename__ = "pipeline_heartbeats"

    pipeline_name: Mapped[str] = mapped_column(String(100), primary_key=True)
    last_fired_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<PipelineHeartbeat {self.pipeline_name} {self.status} at {self.last_fired_at}>"


def row_to_dict(row: Base) -> dict:
    """ORM row as a dict keyed by attribute name."""
    return {attr.key: getattr(row, attr.key) for attr in inspect(row).mapper.column_attrs}


def init_db(engine: Engine) -> None:
    """Create every table that does not exist yet. Never drops anything."""
    with store_errors("database"):
        Base.metadata.create_all(engine, checkfirst=True)
