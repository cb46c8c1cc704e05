"""
Remote sync store: one AppState document per opaque user id.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException
from pydantic import ValidationError

from core.logger import get_logger
from core.models import AppState
from core.paths import SYNC_DIR
from core.persistence import USER_ID_PATTERN, SyncRepository

router = APIRouter()
logger = get_logger("routers.sync")


def get_sync_repository() -> SyncRepository:
    return SyncRepository(SYNC_DIR)


def _require_user_id(user_id: Optional[str]) -> str:
    if not user_id:
        raise HTTPException(status_code=400, detail="Missing userId")
    if not USER_ID_PATTERN.fullmatch(user_id):
        raise HTTPException(status_code=400, detail="Invalid userId")
    return user_id


@router.post("/push")
async def push(payload: Dict[str, Any] = Body(...)):
    user_id = _require_user_id(payload.get("userId"))
    if payload.get("appState") is None:
        raise HTTPException(status_code=400, detail="Missing appState")

    try:
        app_state = AppState.model_validate(payload["appState"])
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid appState: {exc.error_count()} validation error(s)")

    get_sync_repository().save(user_id, app_state.to_dict())
    return {"success": True}


@router.get("/pull")
async def pull(userId: Optional[str] = None):
    user_id = _require_user_id(userId)
    return {"appState": get_sync_repository().load(user_id)}
