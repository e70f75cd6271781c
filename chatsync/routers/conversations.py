from typing import Optional

from fastapi import APIRouter, Depends, Query

from chatsync.services.sync_engine import SyncEngine
from chatsync.utils.dependencies import get_sync_engine, raise_for_outcome


router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("")
async def list_conversations(search: Optional[str] = None, engine: SyncEngine = Depends(get_sync_engine)):
    if search is not None:
        engine.search(search)
    return {"items": engine.conversations(), "search": engine.search_term}


@router.post("/refresh")
async def refresh_conversations(page: int = Query(1, ge=1), engine: SyncEngine = Depends(get_sync_engine)):
    outcome = raise_for_outcome(await engine.refresh_conversations(page))
    return {"items": outcome.value, "page": page}


@router.post("/open/{user_id}")
async def open_conversation(user_id: str, engine: SyncEngine = Depends(get_sync_engine)):
    outcome = raise_for_outcome(await engine.open_by_target_user(user_id))
    return {"item": outcome.value, "messages": engine.messages()}


@router.post("/{conversation_id}/select")
async def select_conversation(conversation_id: str, engine: SyncEngine = Depends(get_sync_engine)):
    outcome = raise_for_outcome(await engine.select(conversation_id))
    return {"item": outcome.value, "messages": engine.messages()}
