from typing import List, Optional, TypedDict


class MessageDocument(TypedDict, total=False):
    id: str
    chatId: str
    senderId: str
    content: str
    messageType: str
    createdAt: str
    isMine: Optional[bool]


class MessageListDocument(TypedDict, total=False):
    messages: List[MessageDocument]
    # same shape as models.conversation.PaginationDocument
    pagination: dict
