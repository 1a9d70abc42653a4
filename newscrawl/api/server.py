import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from newscrawl.api.routers import (
    create_articles_router,
    create_scraper_router,
    create_settings_router,
    create_sources_router,
    create_stats_router,
    create_systems_router,
)
from newscrawl.db.engine import init_orm

logger = logging.getLogger(__name__)


def create_app(container) -> FastAPI:
    """Build the FastAPI app from a wired container.

    Startup creates tables, fails runs a previous process left running and
    starts the cron scheduler when one is configured.
    """
    coordinator = container.run_coordinator()
    articles_repo = container.articles_repository()
    settings_repo = container.settings_repository()
    scheduler = container.scheduler_service()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_orm(container.db_engine())
        recovered = coordinator.recover_incomplete_runs()
        if recovered:
            logger.info("Recovered %s interrupted scrape run(s)", recovered)
        scheduler.start()
        try:
            yield
        finally:
            scheduler.shutdown(wait=False)

    app = FastAPI(title="NewsCrawl", lifespan=lifespan)
    app.include_router(create_scraper_router(coordinator))
    app.include_router(create_articles_router(articles_repo))
    app.include_router(create_stats_router(articles_repo))
    app.include_router(create_settings_router(settings_repo))
    app.include_router(create_sources_router())
    app.include_router(create_systems_router(container.config(), coordinator))
    return app
