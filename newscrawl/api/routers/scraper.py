import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, WebSocket
from pydantic import BaseModel

from newscrawl.api.auth import require_admin
from newscrawl.exceptions import AlreadyRunningError, InvalidRunRequest, NoRunError
from newscrawl.services.crawl_strategies import ID_RANGE
from newscrawl.services.run_coordinator import RunCoordinator

logger = logging.getLogger(__name__)

# interval between queue checks for each websocket
POLL_SECONDS = 0.1


class StartScrapeRequest(BaseModel):
    scrape_type: str = "incremental"
    max_pages: Optional[int] = None
    force_rescrape: bool = False
    source: str = "aibase"


class StartRangeScrapeRequest(BaseModel):
    start_id: int
    end_id: int
    force_rescrape: bool = False
    source: str = "aibase"


def create_scraper_router(coordinator: RunCoordinator):
    router = APIRouter(prefix="/scraper", tags=["Scraper"])

    def _admit(strategy_kind, params: dict):
        try:
            run_id = coordinator.admit_run(strategy_kind, params)
        except InvalidRunRequest as e:
            raise HTTPException(status_code=400, detail=e.reason)
        except AlreadyRunningError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except Exception:
            logger.exception("Could not start scrape")
            raise HTTPException(status_code=500, detail="could not start scrape")
        return {"run_id": run_id, "message": "Scrape started"}

    @router.post("/start", dependencies=[Depends(require_admin)])
    def start(req: StartScrapeRequest):
        """Start a listing (AIBase) or archive (smol.ai) scrape."""
        return _admit(None, {
            "source": req.source,
            "mode": req.scrape_type,
            "max_pages": req.max_pages,
            "force_rescrape": req.force_rescrape,
        })

    @router.post("/start-range", dependencies=[Depends(require_admin)])
    def start_range(req: StartRangeScrapeRequest):
        return _admit(ID_RANGE, {
            "source": req.source,
            "start_id": req.start_id,
            "end_id": req.end_id,
            "force_rescrape": req.force_rescrape,
        })

    @router.post("/stop", dependencies=[Depends(require_admin)])
    def stop():
        try:
            run_id = coordinator.cancel_current_run()
        except NoRunError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"run_id": run_id, "message": "Scrape cancelled"}

    @router.get("/status")
    def status():
        run = coordinator.current_run_status()
        return {"running": run is not None, "current_run": run.to_dict() if run else None}

    @router.get("/runs")
    def list_runs(limit: Optional[int] = 20):
        """Return the last `limit` scrape runs (most recent first)."""
        try:
            runs = coordinator.list_runs(limit=limit or 20)
        except Exception:
            logger.exception("Could not list runs")
            raise HTTPException(status_code=500, detail="could not list runs")
        return [r.to_dict() for r in runs]

    @router.websocket("/progress")
    async def progress(websocket: WebSocket):
        await websocket.accept()
        sub = coordinator.subscribe_progress()
        sender = asyncio.create_task(_forward_events(websocket, sub))
        try:
            # nothing is expected from the client; wait for it to go away
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        finally:
            sender.cancel()
            sub.close()
            await asyncio.gather(sender, return_exceptions=True)
            logger.debug("Progress websocket closed (dropped=%s)", sub.dropped)

    return router


async def _forward_events(websocket: WebSocket, sub) -> None:
    while True:
        for event in sub.drain():
            await websocket.send_json(event.to_dict())
        await asyncio.sleep(POLL_SECONDS)
