import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class Settings:
    """Environment-backed settings for the sync engine and its messaging client."""

    def __init__(self) -> None:
        self.messaging_api_url: str = os.getenv("MESSAGING_API_URL", "http://localhost:3000/api").rstrip("/")
        self.messaging_api_token: Optional[str] = os.getenv("MESSAGING_API_TOKEN") or None
        self.current_user_id: Optional[str] = os.getenv("CHATSYNC_USER_ID") or None
        self.timeout_seconds = _float_env("MESSAGING_TIMEOUT_SECONDS", 30.0)
        self.retry_attempts = max(1, _int_env("MESSAGING_RETRY_ATTEMPTS", 3))
        self.retry_backoff_seconds = _float_env("MESSAGING_RETRY_BACKOFF_SECONDS", 1.0)
        self.retry_backoff_max_seconds = _float_env("MESSAGING_RETRY_BACKOFF_MAX_SECONDS", 3.0)
        self.conversation_page_size = _int_env("CONVERSATION_PAGE_SIZE", 50)
        self.message_page_size = _int_env("MESSAGE_PAGE_SIZE", 50)
        self.preview_length = _int_env("PREVIEW_LENGTH", 200)
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
