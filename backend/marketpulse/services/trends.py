"""Windowed, sample-gated median price trends.

Every window is anchored to the most recent observed sale on or before
``as_of``, never to the wall clock, so a report can be replayed for any past
date. A horizon only reports a change when both its windows hold at least
``trend_min_sample_size`` sales.
"""

import logging
import statistics
from datetime import date, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from marketpulse.core.config import Settings, get_settings
from marketpulse.schemas.listing import CanonicalVehicleIdentity
from marketpulse.schemas.trend import TrendReport, TrendResult, TrendWindow
from .listing_store import ListingStore
from .trend_cache import TrendCache, trend_cache_key

logger = logging.getLogger(__name__)

MONTH_DAYS = 30
MAX_SAMPLE_WEIGHT = 0.9
FULL_WEIGHT_SAMPLE_SIZE = 25
MAX_CONFIDENCE = 0.95

History = List[Tuple[date, float]]


def median_price(prices: Sequence[float]) -> Optional[float]:
    if not prices:
        return None
    return float(statistics.median(prices))


def relative_spread(prices: Sequence[float]) -> float:
    """Interquartile range over the median; 0 for fewer than two prices."""
    if len(prices) < 2:
        return 0.0
    q1, _, q3 = statistics.quantiles(prices, n=4)
    median = statistics.median(prices)
    if not median:
        return 0.0
    return max(q3 - q1, 0.0) / median


def prices_between(history: Iterable[Tuple[date, float]], start: date, end: date) -> List[float]:
    return [price for sold_date, price in history if start <= sold_date <= end]


def trend_confidence(
    current: Sequence[float],
    comparison: Sequence[float],
    lag_days: int,
    half_life_days: float,
) -> float:
    sample_size = min(len(current), len(comparison))
    sample_weight = min(MAX_SAMPLE_WEIGHT, sample_size / FULL_WEIGHT_SAMPLE_SIZE)
    recency = 0.5 ** (max(lag_days, 0) / half_life_days) if half_life_days > 0 else 1.0
    spread = max(relative_spread(current), relative_spread(comparison))
    score = sample_weight * recency / (1 + spread)
    return round(min(score, MAX_CONFIDENCE), 4)


class TrendEngine:
    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        cache: Optional[TrendCache] = None,
        store: Optional[ListingStore] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.cache = cache
        self.store = store or ListingStore(db)

    @property
    def min_sample_size(self) -> int:
        return self.settings.trend_min_sample_size

    def latest_sale_date(self, identity: CanonicalVehicleIdentity) -> date:
        """Most recent sale for ``identity``, the replayable default for ``as_of``.

        Falls back to today when nothing has sold; every horizon is then
        ``insufficient_data`` whatever the date.
        """
        return self.store.latest_sale_date(identity, date.max) or date.today()

    def compute_trend(self, identity: CanonicalVehicleIdentity, as_of: date, horizon_months: int) -> TrendResult:
        if horizon_months <= 0:
            raise ValueError("horizon_months must be positive")
        key = trend_cache_key(identity, as_of, horizon_months, self.min_sample_size)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Trend cache hit %s", key)
                return cached

        anchor, history = self._history(identity, as_of, (horizon_months,))
        result = self._trend(anchor, history, as_of, horizon_months)
        if self.cache is not None:
            self.cache.set(key, result)
        return result

    def compute_trends(self, identity: CanonicalVehicleIdentity, as_of: date) -> TrendReport:
        trends = {
            horizon: self.compute_trend(identity, as_of, horizon)
            for horizon in self.settings.trend_comparison_horizons_months
        }
        return TrendReport(
            identity=identity,
            as_of=as_of,
            anchor_date=self.store.latest_sale_date(identity, as_of),
            min_sample_size=self.min_sample_size,
            trends=trends,
        )

    def _history(
        self,
        identity: CanonicalVehicleIdentity,
        as_of: date,
        horizons: Sequence[int],
    ) -> Tuple[Optional[date], History]:
        anchor = self.store.latest_sale_date(identity, as_of)
        if anchor is None:
            return None, []
        lookback = max(
            max(horizons) * MONTH_DAYS + max(self.settings.trend_comparison_tolerance_days),
            max(self.settings.trend_current_window_days),
        )
        return anchor, self.store.sales_history(identity, anchor - timedelta(days=lookback), anchor)

    def _current_window(self, anchor: date, history: History) -> TrendWindow:
        window = None
        for width in sorted(self.settings.trend_current_window_days):
            start = anchor - timedelta(days=width)
            window = TrendWindow(
                period_label=f"last {width} days",
                start=start,
                end=anchor,
                sample_prices=prices_between(history, start, anchor),
            )
            if window.sample_size >= self.min_sample_size:
                break
        return window

    def _comparison_window(self, anchor: date, current: TrendWindow, horizon_months: int, history: History) -> TrendWindow:
        center = anchor - timedelta(days=horizon_months * MONTH_DAYS)
        latest_end = current.start - timedelta(days=1)
        window = None
        for tolerance in sorted(self.settings.trend_comparison_tolerance_days):
            start = center - timedelta(days=tolerance)
            end = min(center + timedelta(days=tolerance), latest_end)
            prices = prices_between(history, start, end) if end >= start else []
            window = TrendWindow(
                period_label=f"{horizon_months} months earlier (+/-{tolerance} days)",
                start=start,
                end=max(end, start),
                sample_prices=prices,
            )
            if window.sample_size >= self.min_sample_size:
                break
        return window

    def _trend(self, anchor: Optional[date], history: History, as_of: date, horizon_months: int) -> TrendResult:
        if anchor is None:
            return TrendResult(horizon_months=horizon_months, status="insufficient_data")

        k = self.min_sample_size
        current = self._current_window(anchor, history)
        comparison = self._comparison_window(anchor, current, horizon_months, history)
        current_median = median_price(current.sample_prices) if current.sample_size >= k else None
        comparison_median = median_price(comparison.sample_prices) if comparison.sample_size >= k else None

        fields = dict(
            horizon_months=horizon_months,
            current_median=current_median,
            comparison_median=comparison_median,
            sample_size_current=current.sample_size,
            sample_size_comparison=comparison.sample_size,
            current_window=current,
            comparison_window=comparison,
        )
        if current_median is None or not comparison_median:
            logger.debug(
                "Insufficient data for %sm trend: current=%s comparison=%s (k=%s)",
                horizon_months,
                current.sample_size,
                comparison.sample_size,
                k,
            )
            return TrendResult(status="insufficient_data", **fields)

        return TrendResult(
            status="ok",
            percent_change=(current_median - comparison_median) / comparison_median,
            confidence=trend_confidence(
                current.sample_prices,
                comparison.sample_prices,
                lag_days=(as_of - anchor).days,
                half_life_days=self.settings.trend_recency_half_life_days,
            ),
            **fields,
        )
