from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from marketpulse.api.deps import get_db
from marketpulse.models.listing import ListingRecord
from marketpulse.schemas.listing import ListingOut

router = APIRouter(prefix="/v1", tags=["listings"])


@router.get("/listings/{listing_id}", response_model=ListingOut)
def get_listing(listing_id: int, db: Session = Depends(get_db)) -> ListingOut:
    listing = db.get(ListingRecord, listing_id)
    if listing is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Listing not found")
    return listing
