import asyncio
import logging
from enum import Enum
from typing import Dict

from chatsync.clients.messaging_client import MessagingClient
from chatsync.repositories.conversation_store import ConversationStore
from chatsync.schemas.conversation import Conversation
from chatsync.utils.errors import SelfTargetError, SyncError, TransportError, ValidationError
from chatsync.utils.identity import StaticIdentityProvider

logger = logging.getLogger(__name__)


class ResolutionState(str, Enum):

    IDLE = "idle"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"


class ChatResolver:
    """
    Open-or-create for one-to-one conversations.

    Concurrent `resolve` calls for the same target share one pending
    get-or-create task; the entry is removed the moment that task settles, so
    the next call starts over from the local store.
    """

    def __init__(self, service: MessagingClient, conversations: ConversationStore, identity: StaticIdentityProvider) -> None:
        self._service = service
        self._conversations = conversations
        self._identity = identity
        self._in_flight: Dict[str, "asyncio.Task[Conversation]"] = {}

    def state(self, target_user_id: str) -> ResolutionState:
        if target_user_id in self._in_flight:
            return ResolutionState.RESOLVING
        return ResolutionState.IDLE

    async def resolve(self, target_user_id: str) -> Conversation:
        if not target_user_id:
            raise ValidationError("Target user id is required", "MISSING_RECEIVER_ID")
        if target_user_id == self._identity.current_user_id():
            raise SelfTargetError("Cannot open a conversation with yourself")

        existing = self._conversations.find_by_counterpart(target_user_id)
        if existing is not None:
            logger.debug("Conversation %s with %s already known", existing.id, target_user_id)
            return existing

        task = self._in_flight.get(target_user_id)
        if task is None:
            task = asyncio.ensure_future(self._create(target_user_id))
            task.add_done_callback(_consume_exception)
            self._in_flight[target_user_id] = task
        else:
            logger.debug("Joining pending resolution for %s", target_user_id)
        # one caller going away must not cancel the shared request
        return await asyncio.shield(task)

    async def _create(self, target_user_id: str) -> Conversation:
        logger.info("Resolving conversation with %s: %s", target_user_id, ResolutionState.RESOLVING.value)
        try:
            resolved = await self._service.get_or_create_conversation(target_user_id)
        except SyncError as exc:
            logger.warning("Resolving conversation with %s: %s (%s)", target_user_id, ResolutionState.FAILED.value, exc.code)
            raise
        except Exception as exc:
            logger.exception("Resolving conversation with %s: %s", target_user_id, ResolutionState.FAILED.value)
            raise TransportError(f"Unexpected failure opening conversation: {exc}", "UNEXPECTED") from exc
        finally:
            self._in_flight.pop(target_user_id, None)

        conversation = self._conversations.upsert(resolved.conversation)
        logger.info(
            "Resolving conversation with %s: %s -> %s (new=%s)",
            target_user_id, ResolutionState.RESOLVED.value, conversation.id, resolved.is_new,
        )
        return conversation


def _consume_exception(task: "asyncio.Task[Conversation]") -> None:
    # callers may all have gone away; the failure was already logged
    if not task.cancelled():
        task.exception()
