from fastapi import APIRouter

from newscrawl.domain import Source


def create_sources_router():
    router = APIRouter(prefix="/sources", tags=["Sources"])

    @router.get("")
    def list_sources():
        return [s.info() for s in Source]

    return router
