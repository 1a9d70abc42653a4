from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from newscrawl import config

# Simple cache to avoid creating multiple Engine objects in the same process.
_ENGINE: Optional[Engine] = None


def make_engine(database_url: Optional[str] = None) -> Engine:
    """Create or return a cached SQLAlchemy Engine for `database_url`.

    Caches a single Engine instance per process to avoid the cost of
    creating many engines when repository instances are created.
    """
    global _ENGINE
    database_url = database_url or config.DATABASE_URL
    if not database_url:
        raise RuntimeError("DATABASE_URL not set")
    if _ENGINE is None:
        kwargs = {"future": True}
        if database_url.startswith("sqlite"):
            # run loop and API share the engine from different threads
            kwargs["connect_args"] = {"check_same_thread": False}
        _ENGINE = create_engine(database_url, **kwargs)
    return _ENGINE


def init_orm(engine: Engine) -> None:
    """Create tables and seed default settings."""
    from newscrawl.db.models import Base, seed_default_settings

    Base.metadata.create_all(engine)
    seed_default_settings(engine)
