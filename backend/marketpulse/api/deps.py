from functools import lru_cache
from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from marketpulse.db.session import SessionLocal
from marketpulse.services.trend_cache import RedisTrendCache, TrendCache
from marketpulse.services.trends import TrendEngine


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def get_trend_cache() -> TrendCache:
    return RedisTrendCache.from_settings()


def get_trend_engine(db: Session = Depends(get_db), cache: TrendCache = Depends(get_trend_cache)) -> TrendEngine:
    return TrendEngine(db, cache=cache)
