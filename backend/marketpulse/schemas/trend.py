from datetime import date
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict

from .listing import CanonicalVehicleIdentity


TrendStatus = Literal["ok", "insufficient_data"]


class TrendWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    period_label: str
    start: date
    end: date
    sample_prices: List[float] = []

    @property
    def sample_size(self) -> int:
        return len(self.sample_prices)


class TrendResult(BaseModel):
    """Median-based trend for one comparison horizon.

    ``percent_change`` is a fraction: 0.05 means the current median is 5% above
    the comparison median. Medians are only reported for windows that reached
    the minimum sample size.
    """

    model_config = ConfigDict(frozen=True)

    horizon_months: int
    status: TrendStatus
    current_median: Optional[float] = None
    comparison_median: Optional[float] = None
    percent_change: Optional[float] = None
    sample_size_current: int = 0
    sample_size_comparison: int = 0
    confidence: float = 0.0
    current_window: Optional[TrendWindow] = None
    comparison_window: Optional[TrendWindow] = None


class TrendReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    identity: CanonicalVehicleIdentity
    as_of: date
    anchor_date: Optional[date] = None
    min_sample_size: int
    trends: Dict[int, TrendResult]
