from fastapi import APIRouter, Depends, Query

from chatsync.schemas.state import SendRequest
from chatsync.services.sync_engine import SyncEngine
from chatsync.utils.dependencies import get_sync_engine, raise_for_outcome


router = APIRouter(prefix="/messages", tags=["chat"])


@router.get("")
async def list_messages(engine: SyncEngine = Depends(get_sync_engine)):
    return {"conversation_id": engine.selected_conversation_id, "items": engine.messages()}


@router.post("")
async def send_message(body: SendRequest, engine: SyncEngine = Depends(get_sync_engine)):
    outcome = raise_for_outcome(await engine.send(body.conversation_id, body.content))
    return {"item": outcome.value}


@router.post("/paginate")
async def paginate_messages(page: int = Query(..., ge=1), engine: SyncEngine = Depends(get_sync_engine)):
    outcome = raise_for_outcome(await engine.paginate(page))
    return {"conversation_id": engine.selected_conversation_id, "items": outcome.value, "page": page}
