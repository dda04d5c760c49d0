"""
In-memory session table and duplicate message memory.

Both are owned by one ConversationEngine and only touched while it handles
an event. Nothing here survives a restart: an interrupted conversation is
simply started again.
"""

from collections import OrderedDict
from typing import Optional

from cashflow_bot.models.conversation import UserSession


class SessionStore:
    """UserSession values keyed by user identity."""

    def __init__(self):
        self._sessions: dict[int, UserSession] = {}

    def get(self, identity: int) -> Optional[UserSession]:
        return self._sessions.get(identity)

    def put(self, session: UserSession) -> None:
        self._sessions[session.identity] = session

    def evict(self, identity: int) -> Optional[UserSession]:
        return self._sessions.pop(identity, None)

    def __contains__(self, identity: int) -> bool:
        return identity in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class ProcessedMessages:
    """
    Remembers the most recent (identity, message_id) pairs.

    Messaging transports redeliver on timeouts; a redelivered final
    selection must not append the same record twice.
    """

    def __init__(self, capacity: int = 100):
        self._capacity = capacity
        self._seen: OrderedDict[tuple[int, int], None] = OrderedDict()

    def check_and_remember(self, identity: int, message_id: int) -> bool:
        """Return True if this message was already seen, remembering it otherwise."""
        key = (identity, message_id)
        if key in self._seen:
            return True
        self._seen[key] = None
        if len(self._seen) > self._capacity:
            self._seen.popitem(last=False)
        return False

    def __len__(self) -> int:
        return len(self._seen)
