from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional

from newscrawl.domain.crawl_run import RunCounters


class ProgressPhase(str, enum.Enum):
    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ProgressEvent:
    run_id: str
    phase: ProgressPhase
    pages_scraped: int = 0
    total_pages: Optional[int] = None
    articles_found: int = 0
    articles_new: int = 0
    articles_updated: int = 0
    articles_failed: int = 0
    articles_skipped: int = 0
    current_article: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_counters(
        cls,
        run_id: str,
        phase: ProgressPhase,
        counters: RunCounters,
        current_article: Optional[str] = None,
        message: Optional[str] = None,
    ) -> "ProgressEvent":
        return cls(
            run_id=run_id,
            phase=phase,
            pages_scraped=counters.pages_scraped,
            total_pages=counters.total_pages,
            articles_found=counters.articles_found,
            articles_new=counters.articles_new,
            articles_updated=counters.articles_updated,
            articles_failed=counters.articles_failed,
            articles_skipped=counters.articles_skipped,
            current_article=current_article,
            message=message,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "progress_type": self.phase.value,
            "pages_scraped": self.pages_scraped,
            "total_pages": self.total_pages,
            "articles_found": self.articles_found,
            "articles_new": self.articles_new,
            "articles_updated": self.articles_updated,
            "articles_failed": self.articles_failed,
            "articles_skipped": self.articles_skipped,
            "current_article": self.current_article,
            "message": self.message,
        }
