import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Dict, Optional

import redis

from marketpulse.core.config import Settings, get_settings
from marketpulse.schemas.listing import CanonicalVehicleIdentity
from marketpulse.schemas.trend import TrendResult

logger = logging.getLogger(__name__)


def trend_cache_key(identity: CanonicalVehicleIdentity, as_of: date, horizon_months: int, min_sample_size: int) -> str:
    return f"trend:{identity.cache_key}:{as_of.isoformat()}:{horizon_months}m:k{min_sample_size}"


class TrendCache(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[TrendResult]:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, result: TrendResult) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class InMemoryTrendCache(TrendCache):
    def __init__(self) -> None:
        self._items: Dict[str, TrendResult] = {}

    def get(self, key: str) -> Optional[TrendResult]:
        return self._items.get(key)

    def set(self, key: str, result: TrendResult) -> None:
        self._items[key] = result

    def __len__(self) -> int:
        return len(self._items)


class RedisTrendCache(TrendCache):
    """Trend results as JSON strings with a TTL.

    Results are keyed by the as-of day, so an entry never goes stale before it
    expires unless history for that day is rewritten.
    """

    def __init__(self, client: redis.Redis, ttl_seconds: int) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RedisTrendCache":
        settings = settings or get_settings()
        client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        return cls(client, settings.trend_cache_ttl_seconds)

    def get(self, key: str) -> Optional[TrendResult]:
        try:
            payload = self.client.get(key)
        except redis.RedisError as exc:
            logger.warning("Trend cache read failed for %s: %s", key, exc)
            return None
        if payload is None:
            return None
        return TrendResult.model_validate_json(payload)

    def set(self, key: str, result: TrendResult) -> None:
        try:
            self.client.set(key, result.model_dump_json(), ex=self.ttl_seconds)
        except redis.RedisError as exc:
            logger.warning("Trend cache write failed for %s: %s", key, exc)
