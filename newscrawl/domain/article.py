from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class ArticleDraft:
    """Normalized extractor output, handed to the store by the run loop."""

    external_id: str
    url: str
    title: str
    content: str
    content_hash: str
    source: Optional[str] = None
    excerpt: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    view_count: Optional[int] = None
    read_time_minutes: Optional[int] = None
    thumbnail_url: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class Article:
    id: str
    external_id: str
    url: str
    title: str
    content: Optional[str]
    source: Optional[str]
    excerpt: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    view_count: Optional[int] = None
    read_time_minutes: Optional[int] = None
    thumbnail_url: Optional[str] = None
    content_hash: Optional[str] = None
    scraped_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)

    def __repr__(self):
        return f"<Article id={self.id} source={self.source} external_id={self.external_id}>"
