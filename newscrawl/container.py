"""Dependency injection container for the application."""
from dependency_injector import containers, providers
import requests
from sqlalchemy.orm import sessionmaker

from newscrawl import config as env
from newscrawl.db.engine import make_engine
from newscrawl.repository.articles import ArticlesRepository
from newscrawl.repository.scrape_runs import ScrapeRunsRepository
from newscrawl.repository.settings import SettingsRepository
from newscrawl.services.deduplicator import Deduplicator
from newscrawl.services.extractors import default_extractors
from newscrawl.services.fetcher import RateLimitedFetcher
from newscrawl.services.http_service import HttpService
from newscrawl.services.progress_bus import ProgressBus
from newscrawl.services.rate_limiter import TokenBucket
from newscrawl.services.run_coordinator import RunCoordinator
from newscrawl.services.scheduler_service import SchedulerService


# Environment variables used by the container (read via `newscrawl.config` helpers).
#
# DATABASE_URL (str | optional)
#   SQLAlchemy URL. `make_engine()` raises if it is unset when the engine is built.
#
# USER_AGENT (str, default: browser-like Chrome UA)
#   User-Agent header for outbound requests.
#
# HTTP_TIMEOUT (int seconds, default: 30)
#
# SCRAPER_RATE_LIMIT (float requests/second, default: 2)
# SCRAPER_MAX_RETRIES (int, default: 3)
#   Additional attempts after the first one.
# SCRAPER_BACKOFF_BASE (float seconds, default: 1.0)
#   Retry n waits base * 2**n.
# SCRAPER_MAX_RETRY_AFTER (float seconds, default: 300)
#   Upper bound on a server-supplied Retry-After wait.
# SCRAPER_FLUSH_EVERY (int, default: 50)
#   Persist run counters every N processed candidates.
# SCRAPER_PROGRESS_EVERY (int, default: 100)
#   Emit a progress event every N skipped candidates.
# SCRAPER_MAX_RANGE_ITEMS (int, default: 50000)
# SCRAPER_DEFAULT_MAX_PAGES (int, default: 100)
#   Used when neither the request nor the `max_pages` setting supplies one.
#
# PROGRESS_QUEUE_SIZE (int, default: 100)
#   Per-subscriber progress buffer; events beyond it are dropped for that subscriber.
#
# SCRAPE_SCHEDULE (cron str | optional), SCRAPE_SCHEDULE_SOURCE (str, default: "aibase")
#
# ADMIN_TOKEN is read at request time by `newscrawl.api.auth` and is not listed here.
#
# SERVER_HOST / SERVER_PORT (default: 0.0.0.0 / 8000)
ENV = {
    "DATABASE_URL": env.get_optional_str_env("DATABASE_URL"),
    "USER_AGENT": env.get_str_env("USER_AGENT", env.DEFAULT_USER_AGENT),
    "HTTP_TIMEOUT": env.get_int_env("HTTP_TIMEOUT", 30),
    "SCRAPER_RATE_LIMIT": env.get_float_env("SCRAPER_RATE_LIMIT", 2.0),
    "SCRAPER_MAX_RETRIES": env.get_int_env("SCRAPER_MAX_RETRIES", 3),
    "SCRAPER_BACKOFF_BASE": env.get_float_env("SCRAPER_BACKOFF_BASE", 1.0),
    "SCRAPER_MAX_RETRY_AFTER": env.get_float_env("SCRAPER_MAX_RETRY_AFTER", 300.0),
    "SCRAPER_FLUSH_EVERY": env.get_int_env("SCRAPER_FLUSH_EVERY", 50),
    "SCRAPER_PROGRESS_EVERY": env.get_int_env("SCRAPER_PROGRESS_EVERY", 100),
    "SCRAPER_MAX_RANGE_ITEMS": env.get_int_env("SCRAPER_MAX_RANGE_ITEMS", 50_000),
    "SCRAPER_DEFAULT_MAX_PAGES": env.get_int_env("SCRAPER_DEFAULT_MAX_PAGES", 100),
    "PROGRESS_QUEUE_SIZE": env.get_int_env("PROGRESS_QUEUE_SIZE", 100),
    "SCRAPE_SCHEDULE": env.get_optional_str_env("SCRAPE_SCHEDULE"),
    "SCRAPE_SCHEDULE_SOURCE": env.get_str_env("SCRAPE_SCHEDULE_SOURCE", "aibase").strip().lower(),
    "SERVER_HOST": env.get_str_env("SERVER_HOST", "0.0.0.0"),
    "SERVER_PORT": env.get_int_env("SERVER_PORT", 8000),
}


class Container(containers.DeclarativeContainer):
    """Dependency injection container for NewsCrawl."""

    config = providers.Configuration(default=ENV)

    # Database engine - Singleton to reuse connection pool
    db_engine = providers.Singleton(
        make_engine,
        database_url=config.DATABASE_URL
    )
    session_factory = providers.Singleton(
        sessionmaker,
        bind=db_engine,
        future=True,
        expire_on_commit=False,
    )

    articles_repository = providers.Singleton(
        ArticlesRepository,
        session_factory=session_factory
    )

    scrape_runs_repository = providers.Singleton(
        ScrapeRunsRepository,
        session_factory=session_factory
    )

    settings_repository = providers.Singleton(
        SettingsRepository,
        session_factory=session_factory
    )

    http_service = providers.Singleton(
        HttpService,
        user_agent=config.USER_AGENT.as_(str),
        http_client=providers.Object(requests.get),
        timeout=config.HTTP_TIMEOUT.as_(int)
    )

    rate_limiter = providers.Singleton(
        TokenBucket,
        rate=config.SCRAPER_RATE_LIMIT.as_(float),
    )

    fetcher = providers.Singleton(
        RateLimitedFetcher,
        transport=http_service,
        rate_limiter=rate_limiter,
        max_retries=config.SCRAPER_MAX_RETRIES.as_(int),
        backoff_base=config.SCRAPER_BACKOFF_BASE.as_(float),
        max_retry_after=config.SCRAPER_MAX_RETRY_AFTER.as_(float),
    )

    extractors = providers.Singleton(default_extractors)

    progress_bus = providers.Singleton(
        ProgressBus,
        queue_size=config.PROGRESS_QUEUE_SIZE.as_(int),
    )

    deduplicator = providers.Singleton(
        Deduplicator,
        articles_repo=articles_repository,
    )

    run_coordinator = providers.Singleton(
        RunCoordinator,
        runs_repo=scrape_runs_repository,
        articles_repo=articles_repository,
        fetcher=fetcher,
        extractors=extractors,
        progress_bus=progress_bus,
        deduplicator=deduplicator,
        settings_repo=settings_repository,
        flush_every=config.SCRAPER_FLUSH_EVERY.as_(int),
        progress_every=config.SCRAPER_PROGRESS_EVERY.as_(int),
        max_range_items=config.SCRAPER_MAX_RANGE_ITEMS.as_(int),
        default_max_pages=config.SCRAPER_DEFAULT_MAX_PAGES.as_(int),
    )

    scheduler_service = providers.Singleton(
        SchedulerService,
        coordinator=run_coordinator,
        schedule=config.SCRAPE_SCHEDULE,
        source=config.SCRAPE_SCHEDULE_SOURCE.as_(str),
    )
