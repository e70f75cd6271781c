"""
Conversation ordering.

A counterpart holding an unexpired chat priority window sorts ahead of every
other conversation. Priority is derived from the stored expiry each time these
functions are called, so callers must pass the `now` of the read, not the time
the data was fetched.
"""
from datetime import datetime
from functools import cmp_to_key
from typing import Iterable, List, Optional

from chatsync.schemas.conversation import Conversation, Counterpart
from chatsync.utils.timeutils import ensure_utc


def is_priority(counterpart: Optional[Counterpart], now: datetime) -> bool:
    if counterpart is None:
        return False
    expires_at = getattr(counterpart, "priority_expires_at", None)
    if not isinstance(expires_at, datetime):
        return False
    return ensure_utc(expires_at) > ensure_utc(now)


def compare(a: Conversation, b: Conversation, now: datetime) -> int:
    a_priority = is_priority(a.counterpart, now)
    b_priority = is_priority(b.counterpart, now)
    if a_priority != b_priority:
        return -1 if a_priority else 1

    a_activity = ensure_utc(a.last_activity_at)
    b_activity = ensure_utc(b.last_activity_at)
    if a_activity != b_activity:
        # most recent first
        return -1 if a_activity > b_activity else 1

    if a.id != b.id:
        return -1 if a.id < b.id else 1
    return 0


def rank(conversations: Iterable[Conversation], now: datetime) -> List[Conversation]:
    return sorted(conversations, key=cmp_to_key(lambda a, b: compare(a, b, now)))
