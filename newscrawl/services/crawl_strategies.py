"""Crawl strategies: what to enumerate and when to stop.

Every strategy yields `CandidateBatch`es lazily and answers
`should_stop_early` for the run loop. The loop itself is generic and lives in
`RunCoordinator`; strategies never touch the store.
"""
import logging
from typing import Any, Dict, Iterator, Mapping, Optional

from newscrawl.domain import BatchOutcome, Candidate, CandidateBatch, RunKind, Source
from newscrawl.exceptions import FetchError, InvalidRunRequest
from newscrawl.services.extractors.base import BaseExtractor

logger = logging.getLogger(__name__)

PAGINATED_LISTING = "paginated_listing"
ID_RANGE = "id_range"
ARCHIVE_DISCOVERY = "archive_discovery"

MODE_FULL = "full"
MODE_INCREMENTAL = "incremental"

DEFAULT_MAX_PAGES = 100
DEFAULT_BATCH_SIZE = 100
DEFAULT_MAX_RANGE_ITEMS = 50_000


class CrawlStrategy:
    """Base contract shared by all strategies."""

    kind: str = ""
    # what pages_scraped counts: listing pages or individual items
    progress_unit = "pages"
    # whether enumeration alone proves a candidate exists upstream
    candidates_confirmed = True
    # whether a whole batch counts as found the moment it is enumerated
    found_on_discovery = False

    def __init__(self, source: Source, extractor: BaseExtractor, fetcher, force_rescrape: bool = False):
        self.source = source
        self.extractor = extractor
        self.fetcher = fetcher
        self.force_rescrape = bool(force_rescrape)

    @property
    def incremental(self) -> bool:
        return False

    @property
    def run_kind(self) -> RunKind:
        return RunKind.INCREMENTAL if self.incremental else RunKind.FULL

    @property
    def total_hint(self) -> Optional[int]:
        return None

    def article_url(self, candidate: Candidate) -> str:
        return candidate.url or self.extractor.article_url(candidate.external_id)

    def config(self) -> Dict[str, Any]:
        return {
            "strategy": self.kind,
            "source": self.source.id,
            "force_rescrape": self.force_rescrape,
        }

    def produce_batches(self) -> Iterator[CandidateBatch]:
        raise NotImplementedError

    def produce_candidates(self) -> Iterator[Candidate]:
        for batch in self.produce_batches():
            yield from batch.candidates

    def should_stop_early(self, outcome: BatchOutcome) -> bool:
        return False


class PaginatedListingStrategy(CrawlStrategy):
    """Walk listing pages 1..max_pages until a page comes back empty."""

    kind = PAGINATED_LISTING

    def __init__(self, source, extractor, fetcher, max_pages: int = DEFAULT_MAX_PAGES,
                 stop_on_existing: bool = True, force_rescrape: bool = False):
        super().__init__(source, extractor, fetcher, force_rescrape)
        self.max_pages = int(max_pages)
        self.stop_on_existing = bool(stop_on_existing)

    @property
    def incremental(self) -> bool:
        return self.stop_on_existing

    @property
    def total_hint(self) -> Optional[int]:
        return self.max_pages

    def config(self) -> Dict[str, Any]:
        cfg = super().config()
        cfg.update({"max_pages": self.max_pages, "stop_on_existing": self.stop_on_existing})
        return cfg

    def produce_batches(self) -> Iterator[CandidateBatch]:
        for page in range(1, self.max_pages + 1):
            url = self.extractor.listing_url(page)
            logger.info("%s: scraping listing page %s", self.source.display_name, page)
            try:
                markup = self.fetcher.fetch(url)
            except FetchError as e:
                logger.warning("Failed to fetch listing page %s: %s", page, e)
                continue
            candidates = self.extractor.parse_listing(markup)
            if not candidates:
                logger.info("No more articles found at page %s", page)
                return
            yield CandidateBatch(page, candidates)
        logger.info("Reached max pages limit: %s", self.max_pages)

    def should_stop_early(self, outcome: BatchOutcome) -> bool:
        if not self.stop_on_existing or self.force_rescrape:
            return False
        return outcome.batch_complete and outcome.all_existing


class IdRangeStrategy(CrawlStrategy):
    """Probe every integer id in [start_id, end_id]; never stops early."""

    kind = ID_RANGE
    progress_unit = "items"
    candidates_confirmed = False

    def __init__(self, source, extractor, fetcher, start_id: int, end_id: int,
                 batch_size: int = DEFAULT_BATCH_SIZE, force_rescrape: bool = False):
        super().__init__(source, extractor, fetcher, force_rescrape)
        self.start_id = int(start_id)
        self.end_id = int(end_id)
        self.batch_size = int(batch_size)

    @property
    def run_kind(self) -> RunKind:
        return RunKind.SINGLE if self.start_id == self.end_id else RunKind.FULL

    @property
    def total_hint(self) -> Optional[int]:
        return self.end_id - self.start_id + 1

    def config(self) -> Dict[str, Any]:
        cfg = super().config()
        cfg.update({"start_id": self.start_id, "end_id": self.end_id, "batch_size": self.batch_size})
        return cfg

    def produce_batches(self) -> Iterator[CandidateBatch]:
        index = 0
        for first in range(self.start_id, self.end_id + 1, self.batch_size):
            last = min(first + self.batch_size - 1, self.end_id)
            index += 1
            yield CandidateBatch(index, [Candidate(str(i)) for i in range(first, last + 1)])


class ArchiveDiscoveryStrategy(CrawlStrategy):
    """Enumerate everything the archive page links to in one fetch."""

    kind = ARCHIVE_DISCOVERY
    progress_unit = "items"
    found_on_discovery = True

    def __init__(self, source, extractor, fetcher, max_count: Optional[int] = None,
                 stop_on_existing: bool = True, force_rescrape: bool = False):
        super().__init__(source, extractor, fetcher, force_rescrape)
        self.max_count = max_count
        self.stop_on_existing = bool(stop_on_existing)
        self._discovered: Optional[int] = None

    @property
    def incremental(self) -> bool:
        return self.stop_on_existing

    @property
    def total_hint(self) -> Optional[int]:
        if self._discovered is not None:
            return self._discovered
        return self.max_count

    def config(self) -> Dict[str, Any]:
        cfg = super().config()
        cfg.update({"max_count": self.max_count, "stop_on_existing": self.stop_on_existing})
        return cfg

    def produce_batches(self) -> Iterator[CandidateBatch]:
        # a failed archive fetch propagates and fails the run
        markup = self.fetcher.fetch(self.extractor.archive_url())
        candidates = self.extractor.parse_archive(markup, self.max_count)
        self._discovered = len(candidates)
        if candidates:
            yield CandidateBatch(1, candidates)

    def should_stop_early(self, outcome: BatchOutcome) -> bool:
        if not self.stop_on_existing or self.force_rescrape:
            return False
        return outcome.last_existing and not outcome.batch_complete


STRATEGY_KINDS = (PAGINATED_LISTING, ID_RANGE, ARCHIVE_DISCOVERY)


def _positive_int(params: Mapping[str, Any], name: str, default: Optional[int]) -> Optional[int]:
    raw = params.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InvalidRunRequest(f"{name} must be an integer")
    if value < 1:
        raise InvalidRunRequest(f"{name} must be at least 1")
    return value


_TRUE_STRINGS = ("true", "1", "yes")
_FALSE_STRINGS = ("false", "0", "no", "")


def _parse_flag(params: Mapping[str, Any], name: str) -> bool:
    raw = params.get(name)
    if raw is None:
        return False
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        value = raw.strip().lower()
        if value in _TRUE_STRINGS:
            return True
        if value in _FALSE_STRINGS:
            return False
    raise InvalidRunRequest(f"{name} must be a boolean")


def _parse_mode(params: Mapping[str, Any]) -> bool:
    """Return True for incremental runs."""
    mode = params.get("mode") or MODE_INCREMENTAL
    if not isinstance(mode, str):
        raise InvalidRunRequest("mode must be a string")
    mode = mode.strip().lower()
    if mode not in (MODE_FULL, MODE_INCREMENTAL):
        raise InvalidRunRequest(f"Unknown scrape mode: {mode}")
    return mode == MODE_INCREMENTAL


def build_strategy(
    strategy_kind: Optional[str],
    params: Mapping[str, Any],
    *,
    extractors: Mapping[Source, BaseExtractor],
    fetcher,
    max_range_items: int = DEFAULT_MAX_RANGE_ITEMS,
    default_max_pages: int = DEFAULT_MAX_PAGES,
) -> CrawlStrategy:
    """Validate run parameters and construct the matching strategy.

    `strategy_kind` may be None, in which case the source's default strategy
    is used. Raises `InvalidRunRequest` for anything that should be rejected
    before a run exists.
    """
    raw_source = params.get("source") or Source.AIBASE.id
    if not isinstance(raw_source, str):
        raise InvalidRunRequest("source must be a string")
    source = Source.parse(raw_source)
    if source is None:
        raise InvalidRunRequest(f"Unknown source: {raw_source}")

    kind = strategy_kind or source.default_strategy
    if kind not in STRATEGY_KINDS:
        raise InvalidRunRequest(f"Unknown strategy: {kind}")
    if not source.supports(kind):
        raise InvalidRunRequest(f"{source.display_name} does not support {kind}")

    extractor = extractors.get(source)
    if extractor is None:
        raise InvalidRunRequest(f"No extractor registered for {source.display_name}")

    force_rescrape = _parse_flag(params, "force_rescrape")

    if kind == PAGINATED_LISTING:
        return PaginatedListingStrategy(
            source,
            extractor,
            fetcher,
            max_pages=_positive_int(params, "max_pages", default_max_pages),
            stop_on_existing=_parse_mode(params),
            force_rescrape=force_rescrape,
        )

    if kind == ARCHIVE_DISCOVERY:
        max_count = _positive_int(params, "max_count", None)
        if max_count is None:
            max_count = _positive_int(params, "max_pages", None)
        return ArchiveDiscoveryStrategy(
            source,
            extractor,
            fetcher,
            max_count=max_count,
            stop_on_existing=_parse_mode(params),
            force_rescrape=force_rescrape,
        )

    # id range
    if params.get("start_id") is None or params.get("end_id") is None:
        raise InvalidRunRequest("start_id and end_id are required")
    try:
        start_id = int(params["start_id"])
        end_id = int(params["end_id"])
    except (TypeError, ValueError):
        raise InvalidRunRequest("start_id and end_id must be integers")
    if start_id < 0:
        raise InvalidRunRequest("start_id must not be negative")
    if start_id > end_id:
        raise InvalidRunRequest("start_id must not be greater than end_id")
    total = end_id - start_id + 1
    if total > max_range_items:
        raise InvalidRunRequest(f"Range too large. Maximum {max_range_items} articles per run.")
    return IdRangeStrategy(
        source,
        extractor,
        fetcher,
        start_id=start_id,
        end_id=end_id,
        batch_size=_positive_int(params, "batch_size", DEFAULT_BATCH_SIZE),
        force_rescrape=force_rescrape,
    )
