from typing import Optional

from pydantic import BaseModel

from chatsync.schemas.outcome import ErrorInfo


class EngineState(BaseModel):

    current_user_id: Optional[str] = None
    selected_conversation_id: Optional[str] = None
    search_term: str = ""
    message_page: int = 1
    draft: Optional[str] = None
    error: Optional[ErrorInfo] = None


class SendRequest(BaseModel):

    conversation_id: str
    content: str
