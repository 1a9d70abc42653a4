"""Per-source markup extractors."""
from typing import Dict

from newscrawl.domain import Source
from newscrawl.services.extractors.aibase import AIBaseExtractor
from newscrawl.services.extractors.base import BaseExtractor
from newscrawl.services.extractors.smolai import SmolAIExtractor


def default_extractors() -> Dict[Source, BaseExtractor]:
    return {
        Source.AIBASE: AIBaseExtractor(),
        Source.SMOLAI: SmolAIExtractor(),
    }


__all__ = ["AIBaseExtractor", "BaseExtractor", "SmolAIExtractor", "default_extractors"]
