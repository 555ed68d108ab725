import datetime as dt
from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, JSON, String, UniqueConstraint

from marketpulse.db.base import Base


class ListingRecord(Base):
    __tablename__ = "listings"
    __table_args__ = (
        UniqueConstraint("vin", name="uq_listings_vin"),
        UniqueConstraint("source", "source_url", name="uq_listings_source_url"),
    )

    id = Column(Integer, primary_key=True)
    source = Column(String, nullable=False, index=True)
    source_url = Column(String, nullable=False)
    vin = Column(String(17))
    title = Column(String)

    model_id = Column(String, index=True)
    trim_id = Column(String, index=True)
    generation_id = Column(String)
    model_year = Column(Integer)
    exterior_color_id = Column(String)
    exterior_color_name = Column(String)
    is_paint_to_sample = Column(Boolean, default=False, nullable=False)
    option_ids = Column(JSON, default=list)
    validation_errors = Column(JSON, default=list)
    needs_review = Column(Boolean, default=False, nullable=False)
    taxonomy_method = Column(String)
    taxonomy_confidence = Column(Float)

    price = Column(Float)
    mileage = Column(Integer)
    sold_date = Column(Date, index=True)
    status = Column(String, default="active", nullable=False)
    scraped_at = Column(DateTime)
    created_at = Column(DateTime, default=dt.datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow)


class IngestionRun(Base):
    __tablename__ = "ingestion_runs"

    id = Column(Integer, primary_key=True)
    run_id = Column(String(32), unique=True, nullable=False)
    source = Column(String, nullable=False)
    started_at = Column(DateTime, nullable=False)
    finished_at = Column(DateTime)
    inserted = Column(Integer, default=0, nullable=False)
    updated = Column(Integer, default=0, nullable=False)
    failed = Column(Integer, default=0, nullable=False)
    needs_review = Column(Integer, default=0, nullable=False)
    ai_calls = Column(Integer, default=0, nullable=False)
    ai_disabled = Column(Boolean, default=False, nullable=False)
    failures = Column(JSON, default=list)


class ListingAlias(Base):
    """A ``(source, source_url)`` merged into a listing by its VIN."""

    __tablename__ = "listing_aliases"
    __table_args__ = (UniqueConstraint("source", "source_url", name="uq_listing_aliases_source_url"),)

    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    source = Column(String, nullable=False)
    source_url = Column(String, nullable=False)
    created_at = Column(DateTime, default=dt.datetime.utcnow, nullable=False)
