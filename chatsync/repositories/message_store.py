import logging
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from chatsync.clients.messaging_client import MessagingClient
from chatsync.schemas.message import TEMP_ID_PREFIX, Message, MessagePage
from chatsync.utils.timeutils import utc_now

logger = logging.getLogger(__name__)


class MessageStore:
    """
    Per-conversation message cache.

    Each thread is an ordered mapping message id -> Message, oldest first.
    Optimistic entries live under their `temp-` id until `reconcile` swaps the
    server copy into the same slot or `discard` drops them.
    """

    def __init__(self, service: MessagingClient, clock: Callable[[], datetime] = utc_now) -> None:
        self._service = service
        self._clock = clock
        self._threads: Dict[str, "OrderedDict[str, Message]"] = {}
        # temporary id -> owning conversation id
        self._temporary: Dict[str, str] = {}
        self._pages: Dict[str, int] = {}

    def messages(self, conversation_id: str) -> List[Message]:
        return list(self._threads.get(conversation_id, OrderedDict()).values())

    def pages_loaded(self, conversation_id: str) -> int:
        return self._pages.get(conversation_id, 0)

    def pending(self, conversation_id: str) -> List[Message]:
        return [m for m in self.messages(conversation_id) if m.is_temporary]

    async def load(
        self,
        conversation_id: str,
        page: int,
        current_user_id: str,
        limit: int = 50,
        accept: Optional[Callable[[], bool]] = None,
    ) -> Optional[MessagePage]:
        """
        Fetch one page of history. Page 1 replaces the confirmed messages,
        later pages merge older history in. Errors from the service propagate
        untouched and leave the cache as it was. Returns None when `accept`
        rejects the result after the fetch.
        """
        result = await self._service.list_messages(conversation_id, page=page, limit=limit)
        if accept is not None and not accept():
            logger.warning("Discarding page %d for %s: no longer selected", page, conversation_id)
            return None

        incoming = [
            m.model_copy(update={"is_mine": m.sender_id == current_user_id, "is_temporary": False})
            for m in result.messages
        ]
        current = self._threads.get(conversation_id, OrderedDict())
        pending = [m for m in current.values() if m.is_temporary]

        if page <= 1:
            confirmed: Dict[str, Message] = {}
        else:
            confirmed = {mid: m for mid, m in current.items() if not m.is_temporary}
        for message in incoming:
            confirmed[message.id] = message

        thread: "OrderedDict[str, Message]" = OrderedDict(
            (m.id, m) for m in sorted(confirmed.values(), key=lambda m: m.created_at)
        )
        for message in pending:
            thread[message.id] = message
        self._threads[conversation_id] = thread
        self._pages[conversation_id] = page if page <= 1 else max(page, self._pages.get(conversation_id, 1))

        logger.debug("Loaded %d messages for %s (page %d)", len(incoming), conversation_id, page)
        return result.model_copy(update={"messages": incoming})

    def append_optimistic(self, conversation_id: str, content: str, current_user_id: str) -> Message:
        message = Message(
            id=f"{TEMP_ID_PREFIX}{uuid4().hex}",
            conversation_id=conversation_id,
            sender_id=current_user_id,
            content=content,
            created_at=self._clock(),
            is_mine=True,
            is_temporary=True,
        )
        self._threads.setdefault(conversation_id, OrderedDict())[message.id] = message
        self._temporary[message.id] = conversation_id
        logger.debug("Appended optimistic %s to %s", message.id, conversation_id)
        return message

    def reconcile(self, temporary_id: str, server_message: Message) -> Optional[Message]:
        conversation_id = self._temporary.pop(temporary_id, None)
        thread = self._threads.get(conversation_id) if conversation_id else None
        if thread is None or temporary_id not in thread:
            logger.debug("Nothing to reconcile for %s", temporary_id)
            return None

        temporary = thread[temporary_id]
        confirmed = server_message.model_copy(
            update={"conversation_id": conversation_id, "is_mine": temporary.is_mine, "is_temporary": False}
        )
        if confirmed.id in thread:
            # a history reload already placed the server copy in created_at order
            del thread[temporary_id]
            thread[confirmed.id] = confirmed
            logger.debug("Dropped %s, %s already loaded", temporary_id, confirmed.id)
            return confirmed

        replaced: "OrderedDict[str, Message]" = OrderedDict()
        for mid, message in thread.items():
            if mid == temporary_id:
                replaced[confirmed.id] = confirmed
            else:
                replaced[mid] = message
        self._threads[conversation_id] = replaced
        logger.debug("Reconciled %s -> %s", temporary_id, confirmed.id)
        return confirmed

    def discard(self, temporary_id: str) -> Optional[Message]:
        conversation_id = self._temporary.pop(temporary_id, None)
        thread = self._threads.get(conversation_id) if conversation_id else None
        if thread is None:
            return None
        removed = thread.pop(temporary_id, None)
        if removed is not None:
            logger.debug("Discarded %s from %s", temporary_id, conversation_id)
        return removed
