import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class RecordFailure:
    source_url: str
    error: str


@dataclass
class RunContext:
    """State owned by a single ingestion run.

    Passed explicitly through normalization and storage so concurrent runs
    never share the AI-disabled flag or counters.
    """

    source: str
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = field(default_factory=datetime.utcnow)
    ai_enabled: bool = True
    ai_disabled_reason: Optional[str] = None
    ai_calls: int = 0
    inserted: int = 0
    updated: int = 0
    needs_review: int = 0
    failures: List[RecordFailure] = field(default_factory=list)

    def disable_ai(self, reason: str) -> None:
        if self.ai_enabled:
            logger.warning("[%s] AI fallback disabled for run %s: %s", self.source, self.run_id, reason)
        self.ai_enabled = False
        self.ai_disabled_reason = reason

    def record_failure(self, source_url: str, error: str) -> None:
        self.failures.append(RecordFailure(source_url=source_url, error=error))

    @property
    def processed(self) -> int:
        return self.inserted + self.updated + len(self.failures)

    def summary(self) -> Dict[str, object]:
        return {
            "run_id": self.run_id,
            "source": self.source,
            "processed": self.processed,
            "inserted": self.inserted,
            "updated": self.updated,
            "needs_review": self.needs_review,
            "failed": len(self.failures),
            "ai_calls": self.ai_calls,
            "ai_disabled": not self.ai_enabled,
            "ai_disabled_reason": self.ai_disabled_reason,
            "failures": [{"source_url": f.source_url, "error": f.error} for f in self.failures],
        }
