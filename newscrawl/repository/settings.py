from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from newscrawl.db.models import ScraperSetting as DBScraperSetting


class SettingsRepository:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    def get_session(self) -> Session:
        return self.session_factory()

    @staticmethod
    def _to_dict(s: DBScraperSetting) -> dict:
        return {"key": s.key, "value": s.value, "updated_at": s.updated_at}

    def get_all(self) -> List[dict]:
        with self.get_session() as session:
            rows = session.execute(select(DBScraperSetting).order_by(DBScraperSetting.key)).scalars().all()
            return [self._to_dict(s) for s in rows]

    def get(self, key: str) -> Optional[dict]:
        with self.get_session() as session:
            s = session.get(DBScraperSetting, key)
            return self._to_dict(s) if s else None

    def get_value(self, key: str, default: Any = None) -> Any:
        setting = self.get(key)
        if setting is None or setting["value"] is None:
            return default
        return setting["value"]

    def update(self, key: str, value: Any) -> bool:
        """Update an existing setting; unknown keys are not created."""
        with self.get_session() as session:
            s = session.get(DBScraperSetting, key)
            if s is None:
                return False
            s.value = value
            session.commit()
            return True
