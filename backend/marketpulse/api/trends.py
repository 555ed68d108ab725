from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from pydantic import ValidationError

from marketpulse.api.deps import get_trend_engine
from marketpulse.schemas.listing import CanonicalVehicleIdentity
from marketpulse.schemas.trend import TrendReport, TrendResult
from marketpulse.services.trends import TrendEngine
from marketpulse.taxonomy.catalog import get_catalog

router = APIRouter(prefix="/v1", tags=["trends"])


def _unprocessable(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


def identity_query(
    model: str = Query(..., description="Model name or id, e.g. '911' or '718 Cayman'"),
    trim: Optional[str] = Query(None, description="Trim name or id, e.g. 'GT3 RS'"),
    generation: Optional[str] = Query(None, description="Generation code, e.g. '992.1'"),
    year: Optional[int] = Query(None, ge=1950, le=2100),
) -> CanonicalVehicleIdentity:
    catalog = get_catalog()
    vehicle_model = catalog.models.get(model) or catalog.model_by_name(model)
    if vehicle_model is None:
        raise _unprocessable(f"Unknown model: {model}")

    trim_id = None
    if trim:
        trim_id = trim if catalog.trim_belongs_to(trim, vehicle_model.id) else catalog.trim_by_name(vehicle_model.id, trim)
        if trim_id is None:
            raise _unprocessable(f"Unknown trim for {vehicle_model.name}: {trim}")

    generation_id = None
    if generation:
        found = catalog.generation_by_token(vehicle_model.id, generation, year)
        if found is None:
            raise _unprocessable(f"Unknown generation for {vehicle_model.name}: {generation}")
        generation_id = found.id

    try:
        return CanonicalVehicleIdentity(
            model_id=vehicle_model.id,
            trim_id=trim_id,
            generation_id=generation_id,
            model_year=year,
        )
    except ValidationError as exc:
        raise _unprocessable(exc.errors()[0]["msg"]) from exc


@router.get("/trends", response_model=TrendReport)
def get_trends(
    identity: CanonicalVehicleIdentity = Depends(identity_query),
    as_of: Optional[date] = None,
    engine: TrendEngine = Depends(get_trend_engine),
) -> TrendReport:
    return engine.compute_trends(identity, as_of or engine.latest_sale_date(identity))


@router.get("/trends/{horizon_months}", response_model=TrendResult)
def get_trend(
    horizon_months: int = Path(..., ge=1, le=60),
    identity: CanonicalVehicleIdentity = Depends(identity_query),
    as_of: Optional[date] = None,
    engine: TrendEngine = Depends(get_trend_engine),
) -> TrendResult:
    return engine.compute_trend(identity, as_of or engine.latest_sale_date(identity), horizon_months)
