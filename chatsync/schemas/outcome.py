from typing import Any, Optional

from pydantic import BaseModel

from chatsync.utils.errors import SyncError


class ErrorInfo(BaseModel):

    kind: str
    code: str
    message: str
    retryable: bool = False


class Outcome(BaseModel):
    """Result of a UI intent. Exactly one of `value` / `error` is meaningful."""

    ok: bool
    value: Any = None
    error: Optional[ErrorInfo] = None

    @classmethod
    def success(cls, value: Any = None) -> "Outcome":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, exc: SyncError) -> "Outcome":
        return cls(ok=False, error=ErrorInfo(**exc.to_dict()))
