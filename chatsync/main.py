from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from chatsync.clients.messaging_client import MessagingClient
from chatsync.routers.conversations import router as conversations_router
from chatsync.routers.messages import router as messages_router
from chatsync.routers.state import router as state_router
from chatsync.services.sync_engine import SyncEngine
from chatsync.utils.logs import configure_logging
from chatsync.utils.settings import get_settings


def create_app(engine: Optional[SyncEngine] = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        configure_logging(settings.log_level)
        if engine is not None:
            app.state.engine = engine
            yield
            return
        client = MessagingClient.from_settings(settings)
        app.state.engine = SyncEngine.from_settings(settings, client)
        try:
            yield
        finally:
            await client.aclose()

    app = FastAPI(title="Chat Sync Engine", lifespan=lifespan)
    if engine is not None:
        app.state.engine = engine

    app.include_router(conversations_router)
    app.include_router(messages_router)
    app.include_router(state_router)

    @app.get("/")
    async def root():
        current = getattr(app.state, "engine", None)
        return {
            "message": "Chat sync engine running",
            "selected_conversation_id": current.selected_conversation_id if current else None,
        }

    return app


app = create_app()
