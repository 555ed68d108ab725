from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from marketpulse.taxonomy.catalog import get_catalog


NormalizationMethod = Literal["rules", "ai", "rules_degraded", "unresolved"]


class RawListing(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    source_url: str
    vin: Optional[str] = None
    title: str
    year: Optional[int] = None
    price: Optional[float] = None
    mileage: Optional[int] = None
    exterior_color_text: Optional[str] = None
    options_text: Optional[str] = None
    sold_date: Optional[date] = None
    scraped_at: datetime

    @field_validator("source", "source_url", "title")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("vin")
    @classmethod
    def _strip_vin(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class CanonicalVehicleIdentity(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: str
    trim_id: Optional[str] = None
    generation_id: Optional[str] = None
    model_year: Optional[int] = None

    @model_validator(mode="after")
    def _check_membership(self) -> "CanonicalVehicleIdentity":
        catalog = get_catalog()
        if self.model_id not in catalog.models:
            raise ValueError(f"unknown model {self.model_id!r}")
        if self.trim_id is not None and not catalog.trim_belongs_to(self.trim_id, self.model_id):
            raise ValueError(f"trim {self.trim_id!r} does not belong to model {self.model_id!r}")
        if self.generation_id is not None and not catalog.generation_belongs_to(
            self.generation_id, self.model_id, self.model_year
        ):
            raise ValueError(
                f"generation {self.generation_id!r} does not belong to {self.model_id!r} for year {self.model_year}"
            )
        return self

    @property
    def cache_key(self) -> str:
        return "|".join(str(part or "*") for part in (self.model_id, self.trim_id, self.generation_id, self.model_year))


class NormalizedListing(BaseModel):
    raw: RawListing
    identity: Optional[CanonicalVehicleIdentity] = None
    vin: Optional[str] = None
    exterior_color_id: Optional[str] = None
    exterior_color_name: Optional[str] = None
    is_paint_to_sample: bool = False
    option_ids: List[str] = Field(default_factory=list)
    validation_errors: List[str] = Field(default_factory=list)
    method: NormalizationMethod = "rules"
    confidence: float = 1.0

    @property
    def needs_review(self) -> bool:
        return self.identity is None or self.identity.trim_id is None


class ListingOut(BaseModel):
    id: int
    source: str
    source_url: str
    vin: Optional[str] = None
    title: Optional[str] = None
    model_id: Optional[str] = None
    trim_id: Optional[str] = None
    generation_id: Optional[str] = None
    model_year: Optional[int] = None
    exterior_color_id: Optional[str] = None
    exterior_color_name: Optional[str] = None
    is_paint_to_sample: bool = False
    option_ids: List[str] = []
    validation_errors: List[str] = []
    needs_review: bool = False
    taxonomy_method: Optional[str] = None
    taxonomy_confidence: Optional[float] = None
    price: Optional[float] = None
    mileage: Optional[int] = None
    sold_date: Optional[date] = None
    status: str
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True
        protected_namespaces = ()
