"""API router factory functions."""
from .articles import create_articles_router
from .scraper import create_scraper_router
from .settings import create_settings_router
from .sources import create_sources_router
from .stats import create_stats_router
from .systems import create_systems_router

__all__ = [
    "create_articles_router",
    "create_scraper_router",
    "create_settings_router",
    "create_sources_router",
    "create_stats_router",
    "create_systems_router",
]
