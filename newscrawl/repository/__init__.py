from .articles import ArticlesRepository
from .scrape_runs import ScrapeRunsRepository
from .settings import SettingsRepository

__all__ = ["ArticlesRepository", "ScrapeRunsRepository", "SettingsRepository"]
