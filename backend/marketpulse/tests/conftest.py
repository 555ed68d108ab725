from datetime import datetime

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from marketpulse.db.base import Base
from marketpulse.models import IngestionRun, ListingAlias, ListingRecord  # noqa: F401
from marketpulse.schemas.listing import RawListing


def make_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # let SQLAlchemy emit BEGIN itself so SAVEPOINTs behave under pysqlite
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def engine():
    engine = make_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def raw_listing(**overrides) -> RawListing:
    fields = {
        "source": "bringatrailer",
        "source_url": "https://bringatrailer.com/listing/2019-porsche-911-gt3-rs-1/",
        "title": "2019 Porsche 911 GT3 RS",
        "year": 2019,
        "price": 255000,
        "mileage": 4200,
        "scraped_at": datetime(2024, 6, 30, 12, 0),
    }
    fields.update(overrides)
    return RawListing(**fields)
