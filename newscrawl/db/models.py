from __future__ import annotations

import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
    select,
    text,
)
from sqlalchemy.orm import Session, declarative_base, relationship


Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class ArticleTag(Base):
    __tablename__ = "article_tags"

    article_id = Column(Text, ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)


class Article(Base):
    __tablename__ = "articles"
    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_articles_source_external_id"),
    )

    id = Column(Text, primary_key=True, default=_new_id)
    external_id = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    excerpt = Column(Text, nullable=True)
    author = Column(Text, nullable=True)
    source = Column(Text, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    view_count = Column(BigInteger, nullable=True)
    read_time_minutes = Column(Integer, nullable=True)
    thumbnail_url = Column(Text, nullable=True)
    content_hash = Column(Text, nullable=True)
    scraped_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    tags = relationship("Tag", secondary="article_tags", lazy="selectin")


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True)
    name = Column(Text, unique=True, nullable=False)


class ScrapeRun(Base):
    __tablename__ = "scrape_runs"
    __table_args__ = (
        # at most one row may be running at a time
        Index(
            "uq_scrape_runs_single_running",
            "status",
            unique=True,
            postgresql_where=text("status = 'running'"),
            sqlite_where=text("status = 'running'"),
        ),
    )

    id = Column(Text, primary_key=True, default=_new_id)
    scrape_type = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="running")
    total_pages = Column(Integer, nullable=True)
    pages_scraped = Column(Integer, nullable=False, default=0)
    articles_found = Column(Integer, nullable=False, default=0)
    articles_new = Column(Integer, nullable=False, default=0)
    articles_updated = Column(Integer, nullable=False, default=0)
    articles_failed = Column(Integer, nullable=False, default=0)
    articles_skipped = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)
    config = Column(JSON, nullable=True)


class ScraperSetting(Base):
    __tablename__ = "scraper_settings"

    key = Column(Text, primary_key=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


DEFAULT_SETTINGS = {
    "rate_limit": 2,
    "max_retries": 3,
    "max_pages": 100,
}


def seed_default_settings(engine) -> None:
    with Session(engine) as session:
        existing = set(session.execute(select(ScraperSetting.key)).scalars().all())
        for key, value in DEFAULT_SETTINGS.items():
            if key not in existing:
                session.add(ScraperSetting(key=key, value=value))
        session.commit()
