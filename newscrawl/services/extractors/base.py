from __future__ import annotations

import hashlib
import logging
from typing import Callable, List, Optional

from bs4 import BeautifulSoup

from newscrawl.domain import ArticleDraft, Candidate, Source
from newscrawl.exceptions import ExtractionError

logger = logging.getLogger(__name__)

EXCERPT_LENGTH = 200
WORDS_PER_MINUTE = 200


def compute_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def estimate_read_time(content: str) -> int:
    return max(1, len(content.split()) // WORDS_PER_MINUTE)


def make_excerpt(content: str, length: int = EXCERPT_LENGTH) -> str:
    if len(content) > length:
        return content[:length].strip() + "..."
    return content


def element_text(el) -> str:
    return el.get_text(strip=False).strip() if el is not None else ""


class BaseExtractor:
    """Per-source markup handling.

    Knows the source's URLs and how to turn listing/archive markup into
    `Candidate`s and article markup into an `ArticleDraft`. Subclasses
    provide the selectors.
    """

    source: Source
    max_tags = 10

    def __init__(self, soup_factory: Optional[Callable[[str], BeautifulSoup]] = None):
        self._soup_factory = soup_factory or (lambda html: BeautifulSoup(html, "html.parser"))

    def soup(self, markup: str) -> BeautifulSoup:
        return self._soup_factory(markup)

    def article_url(self, external_id: str) -> str:
        raise NotImplementedError

    def parse_listing(self, markup: str) -> List[Candidate]:
        raise NotImplementedError(f"{self.source.display_name} has no paginated listing")

    def listing_url(self, page: int) -> str:
        raise NotImplementedError(f"{self.source.display_name} has no paginated listing")

    def archive_url(self) -> str:
        raise NotImplementedError(f"{self.source.display_name} has no archive")

    def parse_archive(self, markup: str, max_count: Optional[int] = None) -> List[Candidate]:
        raise NotImplementedError(f"{self.source.display_name} has no archive")

    def parse_article(self, external_id: str, url: str, soup: BeautifulSoup) -> ArticleDraft:
        raise NotImplementedError

    def extract(self, external_id: str, url: str, markup: str) -> ArticleDraft:
        """Turn article markup into a draft, raising `ExtractionError` if it is unusable."""
        if not markup or not markup.strip():
            raise ExtractionError(external_id, "empty document")
        try:
            soup = self.soup(markup)
        except Exception as e:
            raise ExtractionError(external_id, f"unparsable markup: {e}") from e
        draft = self.parse_article(external_id, url, soup)
        draft.source = self.source.display_name
        draft.content_hash = compute_hash(draft.content)
        draft.read_time_minutes = estimate_read_time(draft.content)
        if draft.excerpt is None:
            draft.excerpt = make_excerpt(draft.content)
        return draft

    def extract_tags(self, soup: BeautifulSoup, selector: str) -> List[str]:
        tags: List[str] = []
        for el in soup.select(selector):
            name = element_text(el)
            if name and len(name) < 50 and name not in tags:
                tags.append(name)
            if len(tags) >= self.max_tags:
                break
        return tags

    @staticmethod
    def dedupe(candidates: List[Candidate]) -> List[Candidate]:
        seen = set()
        out = []
        for c in candidates:
            if c.external_id in seen:
                continue
            seen.add(c.external_id)
            out.append(c)
        return out
