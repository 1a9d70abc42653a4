from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


class RunKind(str, enum.Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    SINGLE = "single"


class RunStatus(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class RunCounters:
    """Counters owned by the run loop.

    `pages_scraped` counts listing pages for paginated runs and items for
    id-range and archive runs.
    """

    pages_scraped: int = 0
    articles_found: int = 0
    articles_new: int = 0
    articles_updated: int = 0
    articles_failed: int = 0
    articles_skipped: int = 0
    total_pages: Optional[int] = None

    def snapshot(self) -> "RunCounters":
        return RunCounters(**asdict(self))

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CrawlRun:
    id: str
    kind: RunKind
    status: RunStatus
    started_at: datetime
    counters: RunCounters = field(default_factory=RunCounters)
    completed_at: Optional[datetime] = None
    last_error: Optional[str] = None
    config: Optional[Dict[str, Any]] = None

    @property
    def is_running(self) -> bool:
        return self.status == RunStatus.RUNNING

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "scrape_type": self.kind.value,
            "status": self.status.value,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "last_error": self.last_error,
            "config": self.config,
        }
        out.update(self.counters.as_dict())
        return out

    def __repr__(self):
        return (
            f"<CrawlRun id={self.id} kind={self.kind.value} status={self.status.value} "
            f"start={self.started_at} end={self.completed_at}>"
        )
