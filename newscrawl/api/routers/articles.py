from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from newscrawl.api.auth import require_admin
from newscrawl.domain import Source

MAX_PAGE_SIZE = 100


def create_articles_router(articles_repo):
    router = APIRouter(prefix="/articles", tags=["Articles"])

    @router.get("")
    def list_articles(
        page: int = 1,
        per_page: int = 20,
        source: Optional[str] = None,
        search: Optional[str] = None,
        tag: Optional[str] = None,
    ):
        page = max(1, page)
        per_page = min(max(1, per_page), MAX_PAGE_SIZE)
        source_name = None
        if source:
            parsed = Source.parse(source)
            if parsed is None:
                raise HTTPException(status_code=400, detail=f"Unknown source: {source}")
            source_name = parsed.display_name
        items, total = articles_repo.list_articles(
            limit=per_page,
            offset=(page - 1) * per_page,
            source=source_name,
            search=search,
            tag=tag,
        )
        return {
            "articles": [asdict(a) for a in items],
            "total": total,
            "page": page,
            "per_page": per_page,
            "total_pages": (total + per_page - 1) // per_page,
        }

    @router.get("/{article_id}")
    def get_article(article_id: str):
        article = articles_repo.get(article_id)
        if article is None:
            raise HTTPException(status_code=404, detail="article not found")
        return asdict(article)

    @router.delete("/{article_id}", dependencies=[Depends(require_admin)])
    def delete_article(article_id: str):
        if not articles_repo.delete(article_id):
            raise HTTPException(status_code=404, detail="article not found")
        return {"status": "deleted", "id": article_id}

    return router
