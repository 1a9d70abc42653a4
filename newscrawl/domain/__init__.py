"""Domain objects for NewsCrawl - explicit re-exports to satisfy linters."""
from .article import Article as Article
from .article import ArticleDraft as ArticleDraft
from .candidate import BatchOutcome as BatchOutcome
from .candidate import Candidate as Candidate
from .candidate import CandidateBatch as CandidateBatch
from .crawl_run import CrawlRun as CrawlRun
from .crawl_run import RunCounters as RunCounters
from .crawl_run import RunKind as RunKind
from .crawl_run import RunStatus as RunStatus
from .http_response import HttpResponse as HttpResponse
from .progress import ProgressEvent as ProgressEvent
from .progress import ProgressPhase as ProgressPhase
from .source import Source as Source

__all__ = [
    "Article",
    "ArticleDraft",
    "BatchOutcome",
    "Candidate",
    "CandidateBatch",
    "CrawlRun",
    "RunCounters",
    "RunKind",
    "RunStatus",
    "HttpResponse",
    "ProgressEvent",
    "ProgressPhase",
    "Source",
]
