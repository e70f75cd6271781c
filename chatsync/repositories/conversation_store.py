import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from chatsync.clients.messaging_client import MessagingClient
from chatsync.schemas.conversation import Conversation, ConversationPage, ConversationView
from chatsync.services import priority_ranker
from chatsync.utils.timeutils import utc_now

logger = logging.getLogger(__name__)


class ConversationStore:

    def __init__(self, service: MessagingClient, clock: Callable[[], datetime] = utc_now) -> None:
        self._service = service
        self._clock = clock
        self._conversations: Dict[str, Conversation] = {}
        self._order: List[str] = []

    def __len__(self) -> int:
        return len(self._conversations)

    def get(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def upsert(self, conversation: Conversation) -> Conversation:
        stored = self._put(conversation)
        self._rerank(self._clock())
        return stored

    def upsert_many(self, conversations: Iterable[Conversation]) -> List[Conversation]:
        stored = [self._put(conversation) for conversation in conversations]
        self._rerank(self._clock())
        return stored

    def mark_read(self, conversation_id: str) -> Optional[Conversation]:
        existing = self._conversations.get(conversation_id)
        if existing is None or existing.unread_count == 0:
            return existing
        updated = existing.model_copy(update={"unread_count": 0})
        self._conversations[conversation_id] = updated
        return updated

    @property
    def order(self) -> List[str]:
        """Conversation ids as ranked by the last mutation."""
        return list(self._order)

    def ranked(self, now: Optional[datetime] = None) -> List[Conversation]:
        # priority windows expire on their own, so every read ranks a snapshot
        return priority_ranker.rank(list(self._conversations.values()), now or self._clock())

    def list(self, search: Optional[str] = None, now: Optional[datetime] = None) -> List[Conversation]:
        snapshot = self.ranked(now)
        term = (search or "").strip().lower()
        if not term:
            return snapshot
        return [c for c in snapshot if term in c.counterpart.display_name.lower()]

    def views(self, search: Optional[str] = None, now: Optional[datetime] = None) -> List[ConversationView]:
        now = now or self._clock()
        return [
            ConversationView.from_conversation(c, priority_ranker.is_priority(c.counterpart, now))
            for c in self.list(search, now)
        ]

    def find(self, predicate: Callable[[Conversation], bool]) -> Optional[Conversation]:
        for conversation in self.ranked():
            if predicate(conversation):
                return conversation
        return None

    def find_by_counterpart(self, user_id: str) -> Optional[Conversation]:
        return self.find(lambda c: c.counterpart.id == user_id)

    async def load(
        self,
        page: int = 1,
        limit: int = 50,
        search: Optional[str] = None,
        archived: bool = False,
    ) -> ConversationPage:
        result = await self._service.list_conversations(page=page, limit=limit, search=search, archived=archived)
        self.upsert_many(result.conversations)
        logger.info("Loaded %d conversations (page %d, has_more=%s)", len(result.conversations), page, result.pagination.has_more)
        return result

    def _put(self, incoming: Conversation) -> Conversation:
        existing = self._conversations.get(incoming.id)
        if existing is None:
            self._conversations[incoming.id] = incoming
            logger.debug("Inserted conversation %s", incoming.id)
            return incoming

        update = {
            "last_activity_at": incoming.last_activity_at,
            "unread_count": incoming.unread_count,
        }
        # a preview never disappears once a message exists
        if incoming.last_message_preview is not None:
            update["last_message_preview"] = incoming.last_message_preview
        if incoming.counterpart.id == existing.counterpart.id:
            update["counterpart"] = incoming.counterpart
        else:
            logger.warning(
                "Ignoring counterpart change on conversation %s (%s -> %s)",
                incoming.id, existing.counterpart.id, incoming.counterpart.id,
            )
        merged = existing.model_copy(update=update)
        self._conversations[incoming.id] = merged
        logger.debug("Merged conversation %s", incoming.id)
        return merged

    def _rerank(self, now: datetime) -> None:
        self._order = [c.id for c in priority_ranker.rank(self._conversations.values(), now)]
