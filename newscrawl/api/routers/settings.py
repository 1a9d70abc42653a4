from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from newscrawl.api.auth import require_admin


class UpdateSettingRequest(BaseModel):
    value: Any


def create_settings_router(settings_repo):
    router = APIRouter(prefix="/settings", tags=["Settings"])

    @router.get("")
    def list_settings():
        return settings_repo.get_all()

    @router.patch("/{key}", dependencies=[Depends(require_admin)])
    def update_setting(key: str, req: UpdateSettingRequest):
        if not settings_repo.update(key, req.value):
            raise HTTPException(status_code=404, detail="setting not found")
        return settings_repo.get(key)

    return router
