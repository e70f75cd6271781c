import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from chatsync.clients.messaging_client import MessagingClient
from chatsync.repositories.conversation_store import ConversationStore
from chatsync.repositories.message_store import MessageStore
from chatsync.schemas.conversation import Conversation, ConversationView, MessagePreview
from chatsync.schemas.message import Message
from chatsync.schemas.outcome import ErrorInfo, Outcome
from chatsync.schemas.state import EngineState
from chatsync.services.chat_resolver import ChatResolver
from chatsync.utils.errors import ConversationNotFoundError, SyncError, TransportError, ValidationError
from chatsync.utils.identity import StaticIdentityProvider
from chatsync.utils.settings import Settings
from chatsync.utils.timeutils import utc_now

logger = logging.getLogger(__name__)


class SyncEngine:
    """
    Composition root driven by UI intents.

    Intents never raise: every failure comes back as an `Outcome` and is also
    kept as the dismissible `error` for the presentation layer.
    """

    def __init__(
        self,
        service: MessagingClient,
        identity: StaticIdentityProvider,
        clock: Callable[[], datetime] = utc_now,
        conversation_page_size: int = 50,
        message_page_size: int = 50,
        preview_length: int = 200,
    ) -> None:
        self._service = service
        self._identity = identity
        self._clock = clock
        self._conversation_page_size = conversation_page_size
        self._message_page_size = message_page_size
        self._preview_length = preview_length

        self.conversation_store = ConversationStore(service, clock=clock)
        self.message_store = MessageStore(service, clock=clock)
        self.resolver = ChatResolver(service, self.conversation_store, identity)

        self._selected: Optional[str] = None
        self._message_page = 1
        self._search_term = ""
        self._drafts: Dict[str, str] = {}
        self._error: Optional[ErrorInfo] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        service: MessagingClient,
        identity: Optional[StaticIdentityProvider] = None,
    ) -> "SyncEngine":
        return cls(
            service,
            identity or StaticIdentityProvider(settings.current_user_id),
            conversation_page_size=settings.conversation_page_size,
            message_page_size=settings.message_page_size,
            preview_length=settings.preview_length,
        )

    # read accessors

    @property
    def selected_conversation_id(self) -> Optional[str]:
        return self._selected

    @property
    def search_term(self) -> str:
        return self._search_term

    @property
    def error(self) -> Optional[ErrorInfo]:
        return self._error

    def dismiss_error(self) -> None:
        self._error = None

    def selected_conversation(self) -> Optional[Conversation]:
        if self._selected is None:
            return None
        return self.conversation_store.get(self._selected)

    def conversations(self) -> List[ConversationView]:
        return self.conversation_store.views(self._search_term, self._clock())

    def messages(self) -> List[Message]:
        if self._selected is None:
            return []
        return self.message_store.messages(self._selected)

    def draft(self, conversation_id: Optional[str] = None) -> Optional[str]:
        conversation_id = conversation_id or self._selected
        if conversation_id is None:
            return None
        return self._drafts.get(conversation_id)

    def state(self) -> EngineState:
        try:
            current_user_id: Optional[str] = self._identity.current_user_id()
        except SyncError:
            current_user_id = None
        return EngineState(
            current_user_id=current_user_id,
            selected_conversation_id=self._selected,
            search_term=self._search_term,
            message_page=self._message_page,
            draft=self.draft(),
            error=self._error,
        )

    # intents

    async def open_by_target_user(self, user_id: str) -> Outcome:
        self._error = None
        try:
            conversation = await self.resolver.resolve(user_id)
        except SyncError as exc:
            return self._fail("open conversation", exc)

        self._select(conversation.id)
        loaded = await self._load(conversation.id, 1)
        if not loaded.ok:
            return loaded
        return Outcome.success(self._view(conversation.id))

    async def select(self, conversation_id: str) -> Outcome:
        self._error = None
        if self.conversation_store.get(conversation_id) is None:
            refreshed = await self.refresh_conversations(1)
            if not refreshed.ok:
                return refreshed
            if self.conversation_store.get(conversation_id) is None:
                return self._fail("select conversation", ConversationNotFoundError(f"Conversation {conversation_id} not found"))

        self._select(conversation_id)
        loaded = await self._load(conversation_id, 1)
        if not loaded.ok:
            return loaded
        return Outcome.success(self._view(conversation_id))

    async def send(self, conversation_id: str, content: str) -> Outcome:
        self._error = None
        text = (content or "").strip()
        if not conversation_id:
            return self._fail("send", ValidationError("Conversation id is required", "MISSING_CHAT_ID"))
        if not text:
            return self._fail("send", ValidationError("Message content cannot be empty", "MISSING_MESSAGE_CONTENT"))
        try:
            current_user_id = self._identity.current_user_id()
        except SyncError as exc:
            return self._fail("send", exc)

        temporary = self.message_store.append_optimistic(conversation_id, text, current_user_id)
        self._drafts.pop(conversation_id, None)
        try:
            sent = await self._service.send_message(conversation_id, text)
        except asyncio.CancelledError:
            self.message_store.discard(temporary.id)
            self._drafts[conversation_id] = content
            logger.warning("Send to %s cancelled before confirmation", conversation_id)
            raise
        except Exception as exc:
            self.message_store.discard(temporary.id)
            self._drafts[conversation_id] = content
            return self._fail("send", _as_sync_error(exc))

        confirmed = self.message_store.reconcile(temporary.id, sent)
        if confirmed is None:
            confirmed = sent.model_copy(update={"is_mine": True, "is_temporary": False})

        existing = self.conversation_store.get(conversation_id)
        if existing is not None:
            self.conversation_store.upsert(existing.model_copy(update={
                "last_activity_at": confirmed.created_at,
                "last_message_preview": MessagePreview(content=text[: self._preview_length], created_at=confirmed.created_at),
                "unread_count": 0,
            }))
        else:
            logger.debug("Sent to %s, which is not in the conversation list", conversation_id)
        logger.info("Sent %s to %s", confirmed.id, conversation_id)
        return Outcome.success(confirmed)

    def search(self, term: Optional[str]) -> Outcome:
        self._search_term = (term or "").strip()
        return Outcome.success(self.conversations())

    async def paginate(self, page: int) -> Outcome:
        self._error = None
        if self._selected is None:
            return self._fail("paginate", ValidationError("No conversation selected", "NO_CONVERSATION_SELECTED"))
        if page < 1:
            return self._fail("paginate", ValidationError("Page must be 1 or greater", "INVALID_PAGE"))
        loaded = await self._load(self._selected, page)
        if not loaded.ok:
            return loaded
        return Outcome.success(self.messages())

    async def refresh_conversations(self, page: int = 1) -> Outcome:
        self._error = None
        try:
            await self.conversation_store.load(page=page, limit=self._conversation_page_size)
        except Exception as exc:
            return self._fail("refresh conversations", _as_sync_error(exc))
        return Outcome.success(self.conversations())

    # internals

    def _select(self, conversation_id: str) -> None:
        self._selected = conversation_id
        self._message_page = 1
        self.conversation_store.mark_read(conversation_id)

    async def _load(self, conversation_id: str, page: int) -> Outcome:
        try:
            result = await self.message_store.load(
                conversation_id,
                page,
                self._identity.current_user_id(),
                limit=self._message_page_size,
                accept=lambda: self._selected == conversation_id,
            )
        except Exception as exc:
            if self._selected != conversation_id:
                # the user moved on, nobody is looking at this failure
                logger.warning("Load of %s failed after deselection: %s", conversation_id, exc)
                return Outcome.success(None)
            return self._fail("load messages", _as_sync_error(exc))
        if result is not None and page > self._message_page:
            self._message_page = page
        return Outcome.success(result)

    def _view(self, conversation_id: str) -> Optional[ConversationView]:
        for view in self.conversation_store.views(now=self._clock()):
            if view.id == conversation_id:
                return view
        return None

    def _fail(self, action: str, exc: SyncError) -> Outcome:
        logger.warning("Could not %s: %s (%s)", action, exc.message, exc.code)
        outcome = Outcome.failure(exc)
        self._error = outcome.error
        return outcome


def _as_sync_error(exc: Exception) -> SyncError:
    if isinstance(exc, SyncError):
        return exc
    logger.error("Unexpected messaging failure: %r", exc)
    return TransportError(f"Unexpected messaging failure: {exc}", "UNEXPECTED")
