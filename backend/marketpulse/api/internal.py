from fastapi import APIRouter
from pydantic import BaseModel

from marketpulse.workers import jobs

router = APIRouter(prefix="/internal", tags=["internal"])


class IngestRequest(BaseModel):
    feed_path: str


@router.post("/ingest/{source_name}")
def ingest_source(source_name: str, request: IngestRequest):
    job_id = jobs.enqueue_ingestion(source_name, request.feed_path)
    return {"enqueued": True, "job_id": job_id}
