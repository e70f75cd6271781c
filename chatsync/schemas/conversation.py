import logging
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from chatsync.models.conversation import ConversationDocument, ConversationListDocument, OtherUserDocument, PaginationDocument
from chatsync.utils.timeutils import parse_timestamp

logger = logging.getLogger(__name__)


class Counterpart(BaseModel):

    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    avatar: Optional[str] = None
    role: Optional[str] = None
    priority_expires_at: Optional[datetime] = None

    @field_validator("priority_expires_at", mode="before")
    @classmethod
    def _lenient_expiry(cls, value: Any) -> Optional[datetime]:
        # an unreadable expiry means "no priority", never a rejected record
        return parse_timestamp(value)

    @property
    def display_name(self) -> str:
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full or self.username or "User"

    @classmethod
    def from_document(cls, doc: OtherUserDocument) -> "Counterpart":
        client = doc.get("client") or {}
        return cls(
            id=str(doc["id"]),
            first_name=doc.get("firstName"),
            last_name=doc.get("lastName"),
            username=doc.get("username"),
            avatar=doc.get("avatar"),
            role=doc.get("userType"),
            priority_expires_at=client.get("chatPriorityUntil"),
        )


class MessagePreview(BaseModel):

    content: str
    created_at: Optional[datetime] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)


class Conversation(BaseModel):

    id: str
    counterpart: Counterpart
    last_message_preview: Optional[MessagePreview] = None
    last_activity_at: datetime
    unread_count: int = Field(default=0, ge=0)

    @field_validator("last_activity_at", mode="before")
    @classmethod
    def _parse_activity(cls, value: Any) -> datetime:
        parsed = parse_timestamp(value)
        if parsed is None:
            raise ValueError("last_activity_at must be a timestamp")
        return parsed

    @classmethod
    def from_document(cls, doc: ConversationDocument) -> "Conversation":
        other = doc.get("otherUser")
        if not other:
            raise ValueError(f"Conversation {doc.get('id')} has no counterpart")
        last = doc.get("lastMessage")
        preview = None
        if last and last.get("content") is not None:
            preview = MessagePreview(content=last["content"], created_at=last.get("createdAt"))
        return cls(
            id=str(doc["id"]),
            counterpart=Counterpart.from_document(other),
            last_message_preview=preview,
            last_activity_at=doc.get("lastActivity") or doc.get("createdAt"),
            unread_count=max(0, int(doc.get("unreadCount") or 0)),
        )


class ConversationView(BaseModel):
    """Conversation as handed to the presentation layer, priority resolved at read time."""

    id: str
    counterpart: Counterpart
    display_name: str
    last_message_preview: Optional[MessagePreview] = None
    last_activity_at: datetime
    unread_count: int = 0
    has_priority: bool = False
    priority_expires_at: Optional[datetime] = None

    @classmethod
    def from_conversation(cls, conversation: Conversation, has_priority: bool) -> "ConversationView":
        return cls(
            id=conversation.id,
            counterpart=conversation.counterpart,
            display_name=conversation.counterpart.display_name,
            last_message_preview=conversation.last_message_preview,
            last_activity_at=conversation.last_activity_at,
            unread_count=conversation.unread_count,
            has_priority=has_priority,
            priority_expires_at=conversation.counterpart.priority_expires_at,
        )


class Pagination(BaseModel):

    page: int = 1
    limit: int = 0
    total: Optional[int] = None
    has_more: bool = False

    @classmethod
    def from_document(cls, doc: Optional[PaginationDocument], page: int, limit: int) -> "Pagination":
        doc = doc or {}
        return cls(
            page=int(doc.get("page") or page),
            limit=int(doc.get("limit") or limit),
            total=doc.get("total"),
            has_more=bool(doc.get("hasMore", False)),
        )


class ConversationPage(BaseModel):

    conversations: List[Conversation] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)

    @classmethod
    def from_document(cls, doc: ConversationListDocument, page: int, limit: int) -> "ConversationPage":
        conversations: List[Conversation] = []
        for item in doc.get("chats") or []:
            try:
                conversations.append(Conversation.from_document(item))
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping unusable conversation %s: %s", item.get("id"), exc)
        return cls(conversations=conversations, pagination=Pagination.from_document(doc.get("pagination"), page, limit))


class ResolvedConversation(BaseModel):

    conversation: Conversation
    is_new: bool = False
