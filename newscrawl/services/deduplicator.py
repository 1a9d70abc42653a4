import enum
import logging

logger = logging.getLogger(__name__)


class Decision(str, enum.Enum):
    SKIP = "skip"
    INSERT = "insert"
    UPDATE = "update"


class Deduplicator:
    """Decide what to do with a candidate based on what the store already holds.

    The check is not atomic with the later write; the articles repository
    resolves a lost insert race by updating the existing row.
    """

    def __init__(self, articles_repo):
        self.articles_repo = articles_repo

    def classify(self, source: str, external_id: str, force_rescrape: bool = False) -> Decision:
        if not self.articles_repo.exists(source, external_id):
            return Decision.INSERT
        if force_rescrape:
            return Decision.UPDATE
        logger.debug("Skipping existing article %s/%s", source, external_id)
        return Decision.SKIP
