from typing import Any, Dict, Optional


class SyncError(Exception):

    kind = "sync"
    retryable = False
    default_code = "SYNC_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }


class TransportError(SyncError):

    kind = "transport"
    retryable = True
    default_code = "TRANSPORT_ERROR"


class ValidationError(SyncError):

    kind = "validation"
    default_code = "VALIDATION_ERROR"


class ConflictError(SyncError):

    kind = "conflict"
    default_code = "CONFLICT"


class SelfTargetError(ConflictError):

    default_code = "CANNOT_CHAT_WITH_SELF"


class ForbiddenError(ConflictError):

    default_code = "FORBIDDEN"


class NotFoundError(SyncError):

    kind = "not_found"
    default_code = "NOT_FOUND"


class ConversationNotFoundError(NotFoundError):

    default_code = "CHAT_NOT_FOUND"


def error_from_response(status: int, payload: Optional[Dict[str, Any]], conversation_scope: bool = False) -> SyncError:
    """
    Map a MessagingService error response to one of the sync error kinds.
    `conversation_scope` marks endpoints addressed by conversation id, where a
    404 means the conversation itself is gone.
    """
    payload = payload or {}
    code = payload.get("errorCode") or payload.get("code")
    message = payload.get("message") or f"Messaging service responded with {status}"

    if code == SelfTargetError.default_code:
        return SelfTargetError(message, code, status)
    if status in (401, 403):
        return ForbiddenError(message, code, status)
    if status == 404:
        if conversation_scope:
            return ConversationNotFoundError(message, code, status)
        return NotFoundError(message, code, status)
    if status == 409:
        return ConflictError(message, code, status)
    if status == 429 or status >= 500:
        return TransportError(message, code, status)
    return ValidationError(message, code, status)
