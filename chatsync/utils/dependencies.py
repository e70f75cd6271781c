from fastapi import HTTPException, Request

from chatsync.schemas.outcome import Outcome
from chatsync.services.sync_engine import SyncEngine

STATUS_BY_KIND = {
    "validation": 400,
    "conflict": 409,
    "not_found": 404,
    "transport": 503,
}


def get_sync_engine(request: Request) -> SyncEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Sync engine not started")
    return engine


def raise_for_outcome(outcome: Outcome) -> Outcome:
    if not outcome.ok and outcome.error is not None:
        raise HTTPException(
            status_code=STATUS_BY_KIND.get(outcome.error.kind, 500),
            detail=outcome.error.model_dump(),
        )
    return outcome
