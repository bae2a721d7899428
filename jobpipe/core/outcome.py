"""
Extraction outcome - the result record of one extractor run
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional


@dataclass(frozen=True)
class ExtractionOutcome:
    source: str
    success: bool
    scraped: int = 0
    new: int = 0
    updated: int = 0
    errors: tuple[str, ...] = ()
    duration_seconds: float = 0.0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    pages_visited: int = 0
    stop_reason: Optional[str] = None

    @classmethod
    def failed(cls, source: str, error: str, started_at: Optional[datetime] = None, duration_seconds: float = 0.0) -> "ExtractionOutcome":
        finished_at = datetime.now()
        if started_at is None:
            started_at = finished_at - timedelta(seconds=duration_seconds)
        return cls(
            source=source,
            success=False,
            errors=(error,),
            duration_seconds=duration_seconds,
            started_at=started_at,
            finished_at=finished_at,
        )

    def to_audit_record(self) -> dict:
        """Audit log shape consumed by reporting."""
        return {
            "success": self.success,
            "scraped": self.scraped,
            "new": self.new,
            "updated": self.updated,
            "errors": list(self.errors),
            "source": self.source,
            "durationSeconds": round(self.duration_seconds, 3),
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class OutcomeTally:
    """Mutable counters an extractor fills in while it runs."""
    source: str
    started_at: datetime = field(default_factory=datetime.now)
    scraped: int = 0
    new: int = 0
    updated: int = 0
    errors: list[str] = field(default_factory=list)
    pages_visited: int = 0
    stop_reason: Optional[str] = None

    def record_save(self, is_new: bool) -> None:
        self.scraped += 1
        if is_new:
            self.new += 1
        else:
            self.updated += 1

    def finish(self, duration_seconds: float) -> ExtractionOutcome:
        # Partial success still counts as success
        success = not self.errors or self.scraped > 0
        return ExtractionOutcome(
            source=self.source,
            success=success,
            scraped=self.scraped,
            new=self.new,
            updated=self.updated,
            errors=tuple(self.errors),
            duration_seconds=duration_seconds,
            started_at=self.started_at,
            finished_at=datetime.now(),
            pages_visited=self.pages_visited,
            stop_reason=self.stop_reason,
        )
