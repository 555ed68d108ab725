from .listing import IngestionRun, ListingAlias, ListingRecord

__all__ = [
    "ListingRecord",
    "ListingAlias",
    "IngestionRun",
]
