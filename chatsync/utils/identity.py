from typing import Optional

from chatsync.utils.errors import ValidationError


class StaticIdentityProvider:
    """Identity for a single signed-in user, fixed for the engine's lifetime."""

    def __init__(self, user_id: Optional[str]) -> None:
        self._user_id = user_id

    def current_user_id(self) -> str:
        if not self._user_id:
            raise ValidationError("No authenticated user configured", "MISSING_USER_ID")
        return self._user_id
