import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import select, union
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from marketpulse.core.errors import MarketPulseError
from marketpulse.models.listing import ListingAlias, ListingRecord
from marketpulse.schemas.listing import CanonicalVehicleIdentity, NormalizedListing
from .identity import IdentityResolver, ResolutionAction

logger = logging.getLogger(__name__)

IDENTITY_FIELDS = ("model_id", "trim_id", "generation_id", "model_year")

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass(frozen=True)
class UpsertResult:
    action: ResolutionAction
    record_id: int
    match_key: Optional[str] = None


def listing_status(sold_date: Optional[date]) -> str:
    return "sold" if sold_date else "active"


class ListingStore:
    def __init__(self, db: Session, resolver: Optional[IdentityResolver] = None) -> None:
        self.db = db
        self.resolver = resolver or IdentityResolver(db)

    def upsert(self, normalized: NormalizedListing) -> UpsertResult:
        raw = normalized.raw
        resolution = self.resolver.resolve(raw)
        if resolution.action is ResolutionAction.INSERT:
            record_id = self._insert(normalized)
            if record_id is not None:
                logger.debug("Inserted listing %s for %s", record_id, raw.source_url)
                return UpsertResult(ResolutionAction.INSERT, record_id)

            # another writer got there first; its row is now the match
            resolution = self.resolver.resolve(raw)
            if resolution.action is ResolutionAction.INSERT:
                raise MarketPulseError(f"Insert conflict for {raw.source_url} but no matching listing")

        record = self.db.get(ListingRecord, resolution.matched_record_id)
        self._apply_observation(record, normalized, resolution.match_key)
        if resolution.match_key == "vin" and (record.source, record.source_url) != (raw.source, raw.source_url):
            self._add_alias(record, raw.source, raw.source_url)
        self.db.flush()
        logger.debug("Updated listing %s via %s", record.id, resolution.match_key)
        return UpsertResult(ResolutionAction.UPDATE, record.id, resolution.match_key)

    def _dialect_insert(self):
        dialect = self.db.get_bind().dialect.name
        insert = _INSERTS.get(dialect)
        if insert is None:
            raise MarketPulseError(f"Unsupported database dialect for listing upserts: {dialect}")
        return insert

    def _insert(self, normalized: NormalizedListing) -> Optional[int]:
        stmt = (
            self._dialect_insert()(ListingRecord)
            .values(**self._values(normalized))
            .on_conflict_do_nothing()
            .returning(ListingRecord.id)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def _add_alias(self, record: ListingRecord, source: str, source_url: str) -> None:
        stmt = (
            self._dialect_insert()(ListingAlias)
            .values(listing_id=record.id, source=source, source_url=source_url, created_at=datetime.utcnow())
            .on_conflict_do_nothing()
        )
        if self.db.execute(stmt).rowcount:
            logger.debug("Listing %s also listed at %s %s", record.id, source, source_url)

    def _values(self, normalized: NormalizedListing) -> Dict[str, Any]:
        raw = normalized.raw
        identity = normalized.identity
        now = datetime.utcnow()
        values: Dict[str, Any] = {
            "source": raw.source,
            "source_url": raw.source_url,
            "vin": normalized.vin,
            "title": raw.title,
            "exterior_color_id": normalized.exterior_color_id,
            "exterior_color_name": normalized.exterior_color_name,
            "is_paint_to_sample": normalized.is_paint_to_sample,
            "option_ids": list(normalized.option_ids),
            "validation_errors": list(normalized.validation_errors),
            "needs_review": normalized.needs_review,
            "taxonomy_method": normalized.method,
            "taxonomy_confidence": normalized.confidence,
            "price": raw.price,
            "mileage": raw.mileage,
            "sold_date": raw.sold_date,
            "status": listing_status(raw.sold_date),
            "scraped_at": raw.scraped_at,
            "created_at": now,
            "updated_at": now,
        }
        for name in IDENTITY_FIELDS:
            values[name] = getattr(identity, name) if identity else None
        return values

    def _apply_observation(self, record: ListingRecord, normalized: NormalizedListing, match_key: Optional[str]) -> None:
        raw = normalized.raw
        identity = normalized.identity

        if record.vin is None and normalized.vin:
            record.vin = normalized.vin
        elif record.vin and normalized.vin and record.vin != normalized.vin:
            logger.warning(
                "Listing %s re-listed with VIN %s but stored VIN is %s; keeping stored VIN",
                record.id,
                normalized.vin,
                record.vin,
            )

        if identity is not None and self._taxonomy_conflicts(record, identity):
            logger.warning(
                "Identity conflict on listing %s (matched by %s): stored %s/%s, observed %s/%s; keeping stored taxonomy",
                record.id,
                match_key,
                record.model_id,
                record.trim_id,
                identity.model_id,
                identity.trim_id,
            )
        elif identity is not None:
            filled = False
            for name in IDENTITY_FIELDS:
                value = getattr(identity, name)
                if getattr(record, name) is None and value is not None:
                    setattr(record, name, value)
                    filled = True
            if filled:
                record.taxonomy_method = normalized.method
                record.taxonomy_confidence = normalized.confidence
        record.needs_review = record.model_id is None or record.trim_id is None

        if record.exterior_color_id is None and normalized.exterior_color_id:
            record.exterior_color_id = normalized.exterior_color_id
        if record.exterior_color_name is None and normalized.exterior_color_name:
            record.exterior_color_name = normalized.exterior_color_name
        record.is_paint_to_sample = bool(record.is_paint_to_sample or normalized.is_paint_to_sample)

        options = list(record.option_ids or [])
        options.extend(option for option in normalized.option_ids if option not in options)
        record.option_ids = options
        record.validation_errors = list(normalized.validation_errors)

        # a missing value in a later scrape never erases what we already know
        if raw.title:
            record.title = raw.title
        if raw.price is not None:
            record.price = raw.price
        if raw.mileage is not None:
            record.mileage = raw.mileage
        if raw.sold_date is not None:
            record.sold_date = raw.sold_date
        record.status = listing_status(record.sold_date)
        if record.scraped_at is None or raw.scraped_at > record.scraped_at:
            record.scraped_at = raw.scraped_at
        record.updated_at = datetime.utcnow()

    @staticmethod
    def _taxonomy_conflicts(record: ListingRecord, identity: CanonicalVehicleIdentity) -> bool:
        if record.model_id is None:
            return False
        if record.model_id != identity.model_id:
            return True
        return record.trim_id is not None and identity.trim_id is not None and record.trim_id != identity.trim_id

    # -- reads ------------------------------------------------------------

    def _identity_filters(self, identity: CanonicalVehicleIdentity) -> List[Any]:
        filters = [ListingRecord.model_id == identity.model_id]
        for name in IDENTITY_FIELDS[1:]:
            value = getattr(identity, name)
            if value is not None:
                filters.append(getattr(ListingRecord, name) == value)
        return filters

    def latest_sale_date(self, identity: CanonicalVehicleIdentity, as_of: date) -> Optional[date]:
        stmt = (
            select(ListingRecord.sold_date)
            .where(*self._identity_filters(identity))
            .where(ListingRecord.price.is_not(None), ListingRecord.sold_date <= as_of)
            .order_by(ListingRecord.sold_date.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def sales_history(
        self,
        identity: CanonicalVehicleIdentity,
        start: Optional[date],
        end: date,
    ) -> List[Tuple[date, float]]:
        """``(sold_date, price)`` pairs for sold listings matching every set identity field."""
        stmt = (
            select(ListingRecord.sold_date, ListingRecord.price)
            .where(*self._identity_filters(identity))
            .where(
                ListingRecord.price.is_not(None),
                ListingRecord.sold_date.is_not(None),
                ListingRecord.sold_date <= end,
            )
            .order_by(ListingRecord.sold_date, ListingRecord.id)
        )
        if start is not None:
            stmt = stmt.where(ListingRecord.sold_date >= start)
        return [(sold_date, float(price)) for sold_date, price in self.db.execute(stmt).all()]

    def existing_urls(self, source: str, urls: Iterable[str]) -> Set[str]:
        urls = list(urls)
        if not urls:
            return set()
        stmt = union(
            select(ListingRecord.source_url).where(
                ListingRecord.source == source,
                ListingRecord.source_url.in_(urls),
            ),
            select(ListingAlias.source_url).where(
                ListingAlias.source == source,
                ListingAlias.source_url.in_(urls),
            ),
        )
        return set(self.db.execute(stmt).scalars().all())
