from typing import List, Optional, TypedDict

from chatsync.models.message import MessageDocument


class ClientProfileDocument(TypedDict, total=False):
    # ISO-8601 expiry of the paid chat priority window
    chatPriorityUntil: Optional[str]


class OtherUserDocument(TypedDict, total=False):
    id: str
    firstName: Optional[str]
    lastName: Optional[str]
    username: Optional[str]
    avatar: Optional[str]
    userType: Optional[str]
    lastActiveAt: Optional[str]
    client: Optional[ClientProfileDocument]


class ConversationDocument(TypedDict, total=False):
    id: str
    isGroup: bool
    otherUser: Optional[OtherUserDocument]
    lastMessage: Optional[MessageDocument]
    lastActivity: Optional[str]
    unreadCount: int
    createdAt: str


class PaginationDocument(TypedDict, total=False):
    page: int
    limit: int
    total: int
    hasMore: bool


class ConversationListDocument(TypedDict, total=False):
    chats: List[ConversationDocument]
    pagination: PaginationDocument
