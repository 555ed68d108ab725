import logging
from datetime import datetime
from typing import Any, Dict, Optional

from redis import Redis
from rq import Queue, Worker
from sqlalchemy.orm import Session

from marketpulse.connectors.base import RawListingSource
from marketpulse.connectors.json_feed import JsonFeedSource
from marketpulse.core.config import get_settings
from marketpulse.core.logging_config import setup_logging
from marketpulse.db.session import SessionLocal
from marketpulse.models.listing import IngestionRun
from marketpulse.services.identity import ResolutionAction
from marketpulse.services.listing_store import ListingStore
from marketpulse.services.normalization import TaxonomyNormalizer
from marketpulse.services.run_context import RunContext
from marketpulse.services.taxonomy_extractor import get_taxonomy_extractor

logger = logging.getLogger(__name__)


def _payload_url(payload: Any) -> str:
    if isinstance(payload, dict):
        return str(payload.get("source_url") or payload.get("url") or "<unknown>")
    return "<unparsed>"


def run_ingestion(
    db: Session,
    source: RawListingSource,
    normalizer: Optional[TaxonomyNormalizer] = None,
    context: Optional[RunContext] = None,
) -> RunContext:
    """Normalize and upsert every record of ``source``.

    Each record runs inside its own SAVEPOINT: a failing record is rolled back,
    logged and counted while the rest of the run continues.
    """
    context = context or RunContext(source=source.name)
    normalizer = normalizer or TaxonomyNormalizer(get_taxonomy_extractor())
    store = ListingStore(db)

    for payload in source.iter_payloads():
        url = _payload_url(payload)
        try:
            with db.begin_nested():
                raw = source.parse_listing(payload)
                url = raw.source_url
                normalized = normalizer.normalize(raw, context)
                result = store.upsert(normalized)
        except Exception as exc:
            logger.exception("[%s] failed to ingest %s", source.name, url)
            context.record_failure(url, str(exc))
            continue

        if result.action is ResolutionAction.INSERT:
            context.inserted += 1
        else:
            context.updated += 1
        if normalized.needs_review:
            context.needs_review += 1

    _record_run(db, context)
    db.commit()
    logger.info(
        "[%s] run=%s processed=%s inserted=%s updated=%s failed=%s needs_review=%s ai_calls=%s ai_disabled=%s",
        source.name,
        context.run_id,
        context.processed,
        context.inserted,
        context.updated,
        len(context.failures),
        context.needs_review,
        context.ai_calls,
        not context.ai_enabled,
    )
    return context


def _record_run(db: Session, context: RunContext) -> IngestionRun:
    summary = context.summary()
    run = IngestionRun(
        run_id=context.run_id,
        source=context.source,
        started_at=context.started_at,
        finished_at=datetime.utcnow(),
        inserted=context.inserted,
        updated=context.updated,
        failed=len(context.failures),
        needs_review=context.needs_review,
        ai_calls=context.ai_calls,
        ai_disabled=not context.ai_enabled,
        failures=summary["failures"],
    )
    db.add(run)
    return run


def ingest_source(source_name: str, feed_path: str) -> Dict[str, object]:
    source = JsonFeedSource(source_name, path=feed_path)
    with SessionLocal() as db:
        context = run_ingestion(db, source)
    return context.summary()


def get_queue() -> Queue:
    settings = get_settings()
    return Queue(settings.ingestion_queue, connection=Redis.from_url(settings.redis_url))


def enqueue_ingestion(source_name: str, feed_path: str, queue: Optional[Queue] = None) -> str:
    queue = queue or get_queue()
    job = queue.enqueue(ingest_source, source_name, feed_path)
    logger.info("[%s] enqueued ingestion job %s for %s", source_name, job.id, feed_path)
    return job.id


def run_worker() -> None:
    setup_logging()
    queue = get_queue()
    Worker([queue], connection=queue.connection).work()


if __name__ == "__main__":
    run_worker()
