from typing import Optional

from fastapi import APIRouter


def create_stats_router(articles_repo):
    router = APIRouter(prefix="/stats", tags=["Stats"])

    @router.get("")
    def stats():
        return articles_repo.get_stats()

    @router.get("/tags")
    def tag_stats(limit: Optional[int] = 20):
        return articles_repo.get_tag_stats(limit=min(max(1, limit or 20), 100))

    return router
