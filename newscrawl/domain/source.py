from __future__ import annotations

import enum
from typing import Optional


class Source(enum.Enum):
    """Closed set of news sites the crawler knows how to harvest."""

    AIBASE = "aibase"
    SMOLAI = "smolai"

    @property
    def id(self) -> str:
        return self.value

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def base_url(self) -> str:
        return _BASE_URLS[self]

    @property
    def supported_strategies(self) -> tuple[str, ...]:
        return _STRATEGIES[self]

    @property
    def default_strategy(self) -> str:
        return _STRATEGIES[self][0]

    def supports(self, strategy_kind: str) -> bool:
        return strategy_kind in _STRATEGIES[self]

    def info(self) -> dict:
        return {
            "id": self.id,
            "name": self.display_name,
            "base_url": self.base_url,
            "strategies": list(self.supported_strategies),
        }

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Source"]:
        if not value:
            return None
        return _ALIASES.get(value.strip().lower())


_DISPLAY_NAMES = {
    Source.AIBASE: "AIBase",
    Source.SMOLAI: "smol.ai",
}

_BASE_URLS = {
    Source.AIBASE: "https://news.aibase.com",
    Source.SMOLAI: "https://news.smol.ai",
}

# first entry is what a plain "start" request uses
_STRATEGIES = {
    Source.AIBASE: ("paginated_listing", "id_range"),
    Source.SMOLAI: ("archive_discovery",),
}

_ALIASES = {
    "aibase": Source.AIBASE,
    "smolai": Source.SMOLAI,
    "smol.ai": Source.SMOLAI,
    "smol": Source.SMOLAI,
}
