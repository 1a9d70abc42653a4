from .engine import make_engine, init_orm
from .models import Article, ArticleTag, Base, ScrapeRun, ScraperSetting, Tag

__all__ = [
    "make_engine",
    "init_orm",
    "Article",
    "ArticleTag",
    "Base",
    "ScrapeRun",
    "ScraperSetting",
    "Tag",
]
