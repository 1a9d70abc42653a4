import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from newscrawl.db.models import Article as DBArticle
from newscrawl.db.models import ArticleTag as DBArticleTag
from newscrawl.db.models import ScrapeRun as DBScrapeRun
from newscrawl.db.models import Tag as DBTag
from newscrawl.domain import Article, ArticleDraft

logger = logging.getLogger(__name__)


class ArticlesRepository:
    """Repository for Article database operations.

    Requires an explicit `session_factory` (callable returning a `Session`).
    Articles are unique per (source, external_id); `insert` relies on that
    constraint rather than on the caller's earlier `exists` check.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    @staticmethod
    def _sanitize_text(val: Optional[str]) -> Optional[str]:
        """Remove NUL (\x00) characters; Postgres TEXT columns cannot hold them."""
        if isinstance(val, str):
            return val.replace("\x00", "")
        return val

    def get_session(self) -> Session:
        return self.session_factory()

    def _to_domain(self, row: DBArticle, full: bool = True) -> Article:
        return Article(
            id=row.id,
            external_id=row.external_id,
            url=row.url,
            title=row.title,
            content=row.content if full else None,
            source=row.source,
            excerpt=row.excerpt,
            author=row.author,
            published_at=row.published_at,
            view_count=row.view_count,
            read_time_minutes=row.read_time_minutes,
            thumbnail_url=row.thumbnail_url,
            content_hash=row.content_hash,
            scraped_at=row.scraped_at,
            updated_at=row.updated_at,
            tags=sorted(t.name for t in row.tags),
        )

    def _apply_draft(self, row: DBArticle, draft: ArticleDraft) -> None:
        row.url = draft.url
        row.title = self._sanitize_text(draft.title)
        row.content = self._sanitize_text(draft.content)
        row.excerpt = self._sanitize_text(draft.excerpt)
        row.author = self._sanitize_text(draft.author)
        row.published_at = draft.published_at
        row.view_count = draft.view_count
        row.read_time_minutes = draft.read_time_minutes
        row.thumbnail_url = draft.thumbnail_url
        row.content_hash = draft.content_hash

    def _resolve_tags(self, session: Session, names: Iterable[str]) -> List[DBTag]:
        wanted = []
        for name in names:
            name = (name or "").strip()
            if name and name not in wanted:
                wanted.append(name)
        if not wanted:
            return []
        existing = session.execute(select(DBTag).where(DBTag.name.in_(wanted))).scalars().all()
        by_name = {t.name: t for t in existing}
        for name in wanted:
            if name not in by_name:
                tag = DBTag(name=name)
                session.add(tag)
                by_name[name] = tag
        return [by_name[name] for name in wanted]

    def exists(self, source: str, external_id: str) -> bool:
        with self.get_session() as session:
            q = select(DBArticle.id).where(DBArticle.source == source, DBArticle.external_id == external_id)
            return session.execute(q).first() is not None

    def insert(self, draft: ArticleDraft) -> str:
        """Insert a new article and return its id.

        If another writer inserted the same (source, external_id) first, the
        unique constraint fires; the existing row is updated instead.
        """
        with self.get_session() as session:
            row = DBArticle(external_id=draft.external_id, source=draft.source)
            self._apply_draft(row, draft)
            row.tags = self._resolve_tags(session, draft.tags)
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                q = select(DBArticle).where(
                    DBArticle.source == draft.source,
                    DBArticle.external_id == draft.external_id,
                )
                existing = session.execute(q).scalars().first()
                if existing is None:
                    raise
                logger.info(
                    "Article %s/%s inserted concurrently; updating instead",
                    draft.source,
                    draft.external_id,
                )
                self._apply_draft(existing, draft)
                existing.tags = self._resolve_tags(session, draft.tags)
                session.commit()
                return existing.id
            return row.id

    def update(self, source: str, external_id: str, draft: ArticleDraft) -> None:
        with self.get_session() as session:
            q = select(DBArticle).where(DBArticle.source == source, DBArticle.external_id == external_id)
            row = session.execute(q).scalars().first()
            if row is None:
                raise ValueError(f"Article {source}/{external_id} not found")
            self._apply_draft(row, draft)
            row.tags = self._resolve_tags(session, draft.tags)
            session.commit()

    def get(self, article_id: str) -> Optional[Article]:
        with self.get_session() as session:
            row = session.get(DBArticle, article_id)
            if row is None:
                return None
            return self._to_domain(row)

    def get_by_external_id(self, source: str, external_id: str) -> Optional[Article]:
        with self.get_session() as session:
            q = select(DBArticle).where(DBArticle.source == source, DBArticle.external_id == external_id)
            row = session.execute(q).scalars().first()
            return self._to_domain(row) if row else None

    def list_articles(
        self,
        limit: int = 20,
        offset: int = 0,
        source: Optional[str] = None,
        search: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> Tuple[List[Article], int]:
        """Return one page of articles (newest first, without content) and the total count."""
        filters = []
        if source:
            filters.append(DBArticle.source == source)
        if search:
            pattern = f"%{search}%"
            filters.append(DBArticle.title.ilike(pattern) | DBArticle.content.ilike(pattern))
        if tag:
            filters.append(DBArticle.tags.any(DBTag.name == tag))

        with self.get_session() as session:
            total = session.execute(select(func.count()).select_from(DBArticle).where(*filters)).scalar_one()
            q = (
                select(DBArticle)
                .where(*filters)
                .order_by(DBArticle.published_at.desc().nulls_last(), DBArticle.scraped_at.desc())
                .limit(limit)
                .offset(offset)
            )
            rows = session.execute(q).scalars().all()
            return [self._to_domain(r, full=False) for r in rows], total

    def delete(self, article_id: str) -> bool:
        with self.get_session() as session:
            session.execute(delete(DBArticleTag).where(DBArticleTag.article_id == article_id))
            result = session.execute(delete(DBArticle).where(DBArticle.id == article_id))
            session.commit()
            return result.rowcount > 0

    def get_stats(self) -> dict:
        now = datetime.now(timezone.utc)
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        with self.get_session() as session:
            total = session.execute(select(func.count()).select_from(DBArticle)).scalar_one()
            today = session.execute(
                select(func.count()).select_from(DBArticle).where(DBArticle.scraped_at >= start_of_day)
            ).scalar_one()
            week = session.execute(
                select(func.count()).select_from(DBArticle).where(DBArticle.scraped_at >= now - timedelta(days=7))
            ).scalar_one()
            last_scrape = session.execute(select(func.max(DBScrapeRun.completed_at))).scalar_one()
            total_runs = session.execute(select(func.count()).select_from(DBScrapeRun)).scalar_one()
        return {
            "total_articles": total,
            "articles_today": today,
            "articles_this_week": week,
            "last_scrape": last_scrape,
            "total_scrape_runs": total_runs,
        }

    def get_tag_stats(self, limit: int = 20) -> List[dict]:
        with self.get_session() as session:
            q = (
                select(DBTag.name, func.count(DBArticleTag.article_id).label("count"))
                .join(DBArticleTag, DBArticleTag.tag_id == DBTag.id)
                .group_by(DBTag.name)
                .order_by(func.count(DBArticleTag.article_id).desc(), DBTag.name)
                .limit(limit)
            )
            return [{"name": name, "count": count} for name, count in session.execute(q).all()]
