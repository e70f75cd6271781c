from fastapi import APIRouter, Depends

from chatsync.schemas.state import EngineState
from chatsync.services.sync_engine import SyncEngine
from chatsync.utils.dependencies import get_sync_engine


router = APIRouter(prefix="/state", tags=["state"])


@router.get("", response_model=EngineState)
async def get_state(engine: SyncEngine = Depends(get_sync_engine)):
    return engine.state()


@router.delete("/error")
async def dismiss_error(engine: SyncEngine = Depends(get_sync_engine)):
    engine.dismiss_error()
    return {"ok": True}
