import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from newscrawl.db.models import ScrapeRun as DBScrapeRun
from newscrawl.domain import CrawlRun, RunCounters, RunKind, RunStatus
from newscrawl.exceptions import AlreadyRunningError

logger = logging.getLogger(__name__)


class ScrapeRunsRepository:
    """Run bookkeeping.

    The table carries a partial unique index on `status = 'running'`, so
    `create_run` fails in the database when another run is already running.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def get_session(self) -> Session:
        return self.session_factory()

    def _to_domain(self, r: DBScrapeRun) -> CrawlRun:
        return CrawlRun(
            id=r.id,
            kind=RunKind(r.scrape_type),
            status=RunStatus(r.status),
            started_at=r.started_at,
            completed_at=r.completed_at,
            last_error=r.last_error,
            config=r.config,
            counters=RunCounters(
                pages_scraped=r.pages_scraped or 0,
                articles_found=r.articles_found or 0,
                articles_new=r.articles_new or 0,
                articles_updated=r.articles_updated or 0,
                articles_failed=r.articles_failed or 0,
                articles_skipped=r.articles_skipped or 0,
                total_pages=r.total_pages,
            ),
        )

    def create_run(self, kind: RunKind, config: Optional[Dict[str, Any]] = None, total_pages: Optional[int] = None) -> str:
        now = datetime.now(timezone.utc)
        with self.get_session() as session:
            r = DBScrapeRun(
                scrape_type=RunKind(kind).value,
                status=RunStatus.RUNNING.value,
                started_at=now,
                config=config,
                total_pages=total_pages,
            )
            session.add(r)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                running = self.find_running_run()
                raise AlreadyRunningError(running.id if running else None)
            return r.id

    def update_run_progress(self, run_id: str, counters: RunCounters) -> None:
        with self.get_session() as session:
            session.execute(
                update(DBScrapeRun)
                .where(DBScrapeRun.id == run_id)
                .values(
                    pages_scraped=counters.pages_scraped,
                    articles_found=counters.articles_found,
                    articles_new=counters.articles_new,
                    articles_updated=counters.articles_updated,
                    articles_failed=counters.articles_failed,
                    articles_skipped=counters.articles_skipped,
                    total_pages=counters.total_pages,
                )
            )
            session.commit()

    def complete_run(self, run_id: str, status: RunStatus, error: Optional[str] = None) -> bool:
        """Move a running run to a terminal status.

        Returns False when the run was no longer running (e.g. already
        cancelled), in which case nothing is changed.
        """
        status = RunStatus(status)
        if status == RunStatus.RUNNING:
            raise ValueError("complete_run requires a terminal status")
        now = datetime.now(timezone.utc)
        values = {"status": status.value, "completed_at": now}
        if error is not None:
            values["last_error"] = error
        with self.get_session() as session:
            result = session.execute(
                update(DBScrapeRun)
                .where(DBScrapeRun.id == run_id, DBScrapeRun.status == RunStatus.RUNNING.value)
                .values(**values)
            )
            session.commit()
            return result.rowcount > 0

    def find_running_run(self) -> Optional[CrawlRun]:
        with self.get_session() as session:
            q = (
                select(DBScrapeRun)
                .where(DBScrapeRun.status == RunStatus.RUNNING.value)
                .order_by(DBScrapeRun.started_at.desc())
                .limit(1)
            )
            r = session.execute(q).scalars().first()
            return self._to_domain(r) if r else None

    def get_run(self, run_id: str) -> Optional[CrawlRun]:
        with self.get_session() as session:
            r = session.get(DBScrapeRun, run_id)
            return self._to_domain(r) if r else None

    def list_runs(self, limit: int = 20) -> List[CrawlRun]:
        """Return recent runs, most recent first."""
        with self.get_session() as session:
            q = select(DBScrapeRun).order_by(DBScrapeRun.started_at.desc()).limit(limit)
            return [self._to_domain(r) for r in session.execute(q).scalars().all()]

    def fail_incomplete_runs(self, message: str) -> int:
        """Mark runs left `running` by a previous process as failed.

        Returns the number of runs changed.
        """
        now = datetime.now(timezone.utc)
        with self.get_session() as session:
            result = session.execute(
                update(DBScrapeRun)
                .where(DBScrapeRun.status == RunStatus.RUNNING.value)
                .values(status=RunStatus.FAILED.value, completed_at=now, last_error=message)
            )
            session.commit()
            count = result.rowcount or 0
        if count:
            logger.warning("Marked %d incomplete scrape run(s) as failed: %s", count, message)
        return count
