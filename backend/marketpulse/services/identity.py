import enum
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from marketpulse.models.listing import ListingAlias, ListingRecord
from marketpulse.schemas.listing import RawListing
from .validation import normalize_vin

logger = logging.getLogger(__name__)


class ResolutionAction(str, enum.Enum):
    INSERT = "insert"
    UPDATE = "update"


@dataclass(frozen=True)
class Resolution:
    action: ResolutionAction
    matched_record_id: Optional[int] = None
    match_key: Optional[str] = None


class IdentityResolver:
    """Decide whether a raw listing is a new vehicle event or a repeat sighting.

    A well-formed VIN is the strongest key; without one (or when the VIN has
    not been seen yet) the exact ``(source, source_url)`` pair is used, either
    the pair the listing was created under or one later merged into it by VIN.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def resolve(self, raw: RawListing) -> Resolution:
        vin = normalize_vin(raw.vin)
        if vin:
            record_id = self.db.execute(select(ListingRecord.id).where(ListingRecord.vin == vin)).scalar_one_or_none()
            if record_id is not None:
                return Resolution(ResolutionAction.UPDATE, record_id, "vin")

        record_id = self.db.execute(
            select(ListingRecord.id).where(
                ListingRecord.source == raw.source,
                ListingRecord.source_url == raw.source_url,
            )
        ).scalar_one_or_none()
        if record_id is None:
            # a URL first seen with a VIN that was already stored under another URL
            record_id = self.db.execute(
                select(ListingAlias.listing_id).where(
                    ListingAlias.source == raw.source,
                    ListingAlias.source_url == raw.source_url,
                )
            ).scalar_one_or_none()
        if record_id is not None:
            return Resolution(ResolutionAction.UPDATE, record_id, "source_url")
        return Resolution(ResolutionAction.INSERT)
