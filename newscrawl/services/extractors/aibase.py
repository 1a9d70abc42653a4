import logging
from typing import List, Optional

from bs4 import BeautifulSoup

from newscrawl.domain import ArticleDraft, Candidate, Source
from newscrawl.exceptions import ExtractionError
from newscrawl.services.extractors.base import BaseExtractor, element_text
from newscrawl.utils.datetime_utils import from_timestamp_millis, parse_text_date, parse_to_utc

logger = logging.getLogger(__name__)

LISTING_URL = "https://news.aibase.com/news"

LISTING_CARD = "a[href^='/news/']"
LISTING_TITLE = "h2, h3, .title"

ARTICLE_TITLE = "h1"
ARTICLE_CONTENT = "article, .article-content, .content, .post-content, main"
ARTICLE_DATE = "time, [datetime], .date, .published"
ARTICLE_AUTHOR = ".author, .byline, [rel='author']"
ARTICLE_TAGS = ".tag, .tags a, [rel='tag']"
ARTICLE_VIEW_COUNT = ".views, .view-count, .read-count"
ARTICLE_THUMBNAIL = "meta[property='og:image'], .featured-image img, article img"

# paragraphs shorter than this outside a content container are navigation noise
MIN_LOOSE_PARAGRAPH = 20


class AIBaseExtractor(BaseExtractor):
    source = Source.AIBASE
    max_tags = 10

    def listing_url(self, page: int) -> str:
        if page <= 1:
            return LISTING_URL
        return f"{LISTING_URL}?page={page}"

    def article_url(self, external_id: str) -> str:
        return f"{self.source.base_url}/news/{external_id}"

    def parse_listing(self, markup: str) -> List[Candidate]:
        soup = self.soup(markup)
        candidates = []
        for link in soup.select(LISTING_CARD):
            href = link.get("href") or ""
            external_id = href[len("/news/"):].strip("/")
            if not external_id.isdigit():
                continue
            title = element_text(link.select_one(LISTING_TITLE))
            if not title:
                text = element_text(link)
                title = text.splitlines()[0].strip() if text else f"Article {external_id}"
            candidates.append(Candidate(external_id, title, f"{self.source.base_url}{href}"))
        candidates = self.dedupe(candidates)
        logger.debug("Found %s articles on listing page", len(candidates))
        return candidates

    def parse_article(self, external_id: str, url: str, soup: BeautifulSoup) -> ArticleDraft:
        content = self._extract_content(soup)
        if not content:
            raise ExtractionError(external_id, "no article content found")
        title = element_text(soup.select_one(ARTICLE_TITLE)) or f"Article {external_id}"
        author = element_text(soup.select_one(ARTICLE_AUTHOR)) or None
        return ArticleDraft(
            external_id=external_id,
            url=url,
            title=title,
            content=content,
            content_hash="",
            author=author,
            published_at=self._extract_date(soup),
            view_count=self._extract_view_count(soup),
            thumbnail_url=self._extract_thumbnail(soup),
            tags=self.extract_tags(soup, ARTICLE_TAGS),
        )

    def _extract_content(self, soup: BeautifulSoup) -> str:
        for container in soup.select(ARTICLE_CONTENT):
            paragraphs = [element_text(p) for p in container.find_all("p")]
            paragraphs = [p for p in paragraphs if p]
            if paragraphs:
                return "\n\n".join(paragraphs)

        paragraphs = [element_text(p) for p in soup.find_all("p")]
        paragraphs = [p for p in paragraphs if p and len(p) > MIN_LOOSE_PARAGRAPH]
        return "\n\n".join(paragraphs)

    def _extract_date(self, soup: BeautifulSoup):
        for el in soup.select(ARTICLE_DATE):
            dt = parse_to_utc(el.get("datetime")) if el.get("datetime") else None
            if dt is None:
                dt = from_timestamp_millis(el.get("data-timestamp"))
            if dt is None:
                dt = parse_text_date(element_text(el))
            if dt is not None:
                return dt
        return None

    def _extract_view_count(self, soup: BeautifulSoup) -> Optional[int]:
        for el in soup.select(ARTICLE_VIEW_COUNT):
            digits = "".join(c for c in element_text(el) if c.isdigit())
            if digits:
                return int(digits)
        return None

    def _extract_thumbnail(self, soup: BeautifulSoup) -> Optional[str]:
        for el in soup.select(ARTICLE_THUMBNAIL):
            value = el.get("content") if el.name == "meta" else el.get("src")
            if value and value.startswith("http"):
                return value
        return None
