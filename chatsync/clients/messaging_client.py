import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from chatsync.schemas.conversation import Conversation, ConversationPage, ResolvedConversation
from chatsync.schemas.message import Message, MessagePage
from chatsync.utils.errors import SyncError, TransportError, ValidationError, error_from_response
from chatsync.utils.settings import Settings

logger = logging.getLogger(__name__)


class MessagingClient:
    """
    HTTP adapter for the remote messaging backend.

    Every response is unwrapped from the backend envelope
    `{success, data, message, errorCode}`; every failure leaves this class as a
    `SyncError` subclass. Transport failures and 5xx responses are retried with
    exponential backoff, anything else fails on the first attempt.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        retry_attempts: int = 3,
        backoff_seconds: float = 1.0,
        backoff_max_seconds: float = 3.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, headers=headers, transport=transport)
        self._retry_attempts = max(1, retry_attempts)
        self._backoff = backoff_seconds
        self._backoff_max = backoff_max_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "MessagingClient":
        return cls(
            base_url=settings.messaging_api_url,
            token=settings.messaging_api_token,
            timeout=settings.timeout_seconds,
            retry_attempts=settings.retry_attempts,
            backoff_seconds=settings.retry_backoff_seconds,
            backoff_max_seconds=settings.retry_backoff_max_seconds,
            **kwargs,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def get_or_create_conversation(self, target_user_id: str) -> ResolvedConversation:
        if not target_user_id:
            raise ValidationError("Target user id is required", "MISSING_RECEIVER_ID")
        data = await self._request("POST", "/chat", json={"receiverId": target_user_id})
        chat = data.get("chat") or {}
        try:
            conversation = Conversation.from_document(chat)
        except (KeyError, ValueError) as exc:
            raise TransportError(f"Malformed conversation in response: {exc}", "BAD_RESPONSE") from exc
        return ResolvedConversation(conversation=conversation, is_new=bool(data.get("isNew", False)))

    async def list_conversations(
        self,
        page: int = 1,
        limit: int = 50,
        search: Optional[str] = None,
        archived: bool = False,
    ) -> ConversationPage:
        params: Dict[str, Any] = {"page": page, "limit": limit, "archived": archived}
        if search:
            params["search"] = search
        data = await self._request("GET", "/chat", params=params)
        return ConversationPage.from_document(data, page, limit)

    async def list_messages(self, conversation_id: str, page: int = 1, limit: int = 50) -> MessagePage:
        data = await self._request(
            "GET",
            f"/chat/{conversation_id}/messages",
            params={"page": page, "limit": limit},
            conversation_scope=True,
        )
        # is_mine is left for the caller, who knows the current identity
        return MessagePage.from_document(data, conversation_id, None, page, limit)

    async def send_message(self, conversation_id: str, content: str) -> Message:
        if not content or not content.strip():
            raise ValidationError("Message content cannot be empty", "MISSING_MESSAGE_CONTENT")
        data = await self._request(
            "POST",
            f"/chat/{conversation_id}/messages",
            json={"content": content, "messageType": "TEXT"},
            conversation_scope=True,
        )
        try:
            return Message.from_document(data, conversation_id, None)
        except (KeyError, ValueError) as exc:
            raise TransportError(f"Malformed message in response: {exc}", "BAD_RESPONSE") from exc

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        conversation_scope: bool = False,
    ) -> Dict[str, Any]:
        last_error: Optional[SyncError] = None
        for attempt in range(self._retry_attempts):
            try:
                response = await self._http.request(method, path, params=params, json=json)
            except httpx.TimeoutException:
                last_error = TransportError(f"{method} {path} timed out", "TIMEOUT")
            except httpx.HTTPError as exc:
                last_error = TransportError(f"{method} {path} failed: {exc}", "NETWORK_ERROR")
            else:
                payload = self._decode(response)
                if response.is_success and payload is not None and payload.get("success", True):
                    return payload.get("data") or {}
                if response.is_success and payload is None:
                    raise TransportError(f"{method} {path} returned a non-JSON body", "BAD_RESPONSE", response.status_code)
                error = error_from_response(response.status_code, payload, conversation_scope)
                if response.status_code < 500:
                    raise error
                last_error = error

            if attempt < self._retry_attempts - 1:
                delay = min(self._backoff * (2 ** attempt), self._backoff_max)
                logger.warning(
                    "%s %s failed (%s), retrying in %.1fs (attempt %d/%d)",
                    method, path, last_error.code, delay, attempt + 1, self._retry_attempts,
                )
                await self._sleep(delay)

        assert last_error is not None
        raise last_error

    @staticmethod
    def _decode(response: httpx.Response) -> Optional[Dict[str, Any]]:
        try:
            payload = response.json()
        except ValueError:
            return None
        return payload if isinstance(payload, dict) else None
