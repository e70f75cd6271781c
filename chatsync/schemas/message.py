import logging
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from chatsync.models.message import MessageDocument, MessageListDocument
from chatsync.schemas.conversation import Pagination
from chatsync.utils.timeutils import parse_timestamp

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "temp-"


def is_temporary_id(message_id: str) -> bool:
    return message_id.startswith(TEMP_ID_PREFIX)


class Message(BaseModel):

    id: str
    conversation_id: str
    sender_id: str
    content: str
    message_type: str = "TEXT"
    created_at: datetime
    is_mine: bool = False
    is_temporary: bool = False

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, value: Any) -> datetime:
        parsed = parse_timestamp(value)
        if parsed is None:
            raise ValueError("created_at must be a timestamp")
        return parsed

    @classmethod
    def from_document(cls, doc: MessageDocument, conversation_id: str, current_user_id: Optional[str]) -> "Message":
        sender_id = str(doc["senderId"])
        return cls(
            id=str(doc["id"]),
            conversation_id=str(doc.get("chatId") or conversation_id),
            sender_id=sender_id,
            content=doc.get("content") or "",
            message_type=doc.get("messageType") or "TEXT",
            created_at=doc.get("createdAt"),
            is_mine=sender_id == current_user_id,
            is_temporary=False,
        )


class MessagePage(BaseModel):

    messages: List[Message] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)

    @classmethod
    def from_document(
        cls,
        doc: MessageListDocument,
        conversation_id: str,
        current_user_id: Optional[str],
        page: int,
        limit: int,
    ) -> "MessagePage":
        messages: List[Message] = []
        for item in doc.get("messages") or []:
            try:
                messages.append(Message.from_document(item, conversation_id, current_user_id))
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping unusable message %s in %s: %s", item.get("id"), conversation_id, exc)
        return cls(messages=messages, pagination=Pagination.from_document(doc.get("pagination"), page, limit))
