import logging
from datetime import datetime, timezone
from typing import List, Optional

from bs4 import BeautifulSoup

from newscrawl.domain import ArticleDraft, Candidate, Source
from newscrawl.exceptions import ExtractionError
from newscrawl.services.extractors.base import BaseExtractor, element_text

logger = logging.getLogger(__name__)

ARCHIVE_URL = "https://news.smol.ai/issues"

ISSUE_LINK = "a[href^='/issues/']"
ARTICLE_TITLE = "h1"
ARTICLE_CONTENT = "article.content-area"
ARTICLE_TAGS = "[data-pagefind-filter='company'], [data-pagefind-filter='topic']"

MIN_LOOSE_PARAGRAPH = 20


def parse_slug_date(slug: str) -> Optional[datetime]:
    """Issue slugs look like YY-MM-DD-some-title."""
    parts = slug.split("-")
    if len(parts) < 3:
        return None
    try:
        year, month, day = int(parts[0]), int(parts[1]), int(parts[2])
        if year < 100:
            year += 2000
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


class SmolAIExtractor(BaseExtractor):
    source = Source.SMOLAI
    max_tags = 20

    def archive_url(self) -> str:
        return ARCHIVE_URL

    def article_url(self, external_id: str) -> str:
        return f"{self.source.base_url}/issues/{external_id}"

    def parse_archive(self, markup: str, max_count: Optional[int] = None) -> List[Candidate]:
        soup = self.soup(markup)
        seen = set()
        candidates: List[Candidate] = []
        for link in soup.select(ISSUE_LINK):
            slug = (link.get("href") or "")[len("/issues/"):].strip("/")
            if not slug or slug == "issues" or slug in seen:
                continue
            seen.add(slug)
            candidates.append(Candidate(slug, element_text(link) or None, self.article_url(slug)))
            if max_count is not None and len(candidates) >= max_count:
                break
        logger.info("smol.ai: discovered %s issues in archive", len(candidates))
        return candidates

    def parse_article(self, external_id: str, url: str, soup: BeautifulSoup) -> ArticleDraft:
        content = self._extract_content(soup)
        if not content:
            raise ExtractionError(external_id, "no issue content found")
        return ArticleDraft(
            external_id=external_id,
            url=url,
            title=self._extract_title(soup, external_id),
            content=content,
            content_hash="",
            author="smol.ai",
            published_at=parse_slug_date(external_id),
            tags=self.extract_tags(soup, ARTICLE_TAGS),
        )

    def _extract_title(self, soup: BeautifulSoup, external_id: str) -> str:
        title = element_text(soup.select_one(ARTICLE_TITLE))
        if title:
            return title
        page_title = element_text(soup.find("title"))
        if page_title:
            # drop the " - AINews" suffix
            page_title = page_title.split(" - ")[0].strip()
            if page_title:
                return page_title
        words = " ".join(external_id.split("-")[3:])
        return words or f"Issue {external_id}"

    def _extract_content(self, soup: BeautifulSoup) -> str:
        for container in soup.select(ARTICLE_CONTENT):
            inner = container.decode_contents()
            if inner.strip():
                lines = [line.strip() for line in inner.splitlines()]
                return "\n".join(line for line in lines if line)

        paragraphs = [element_text(p) for p in soup.find_all("p")]
        paragraphs = [p for p in paragraphs if p and len(p) > MIN_LOOSE_PARAGRAPH]
        return "\n\n".join(paragraphs)
