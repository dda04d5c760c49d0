"""Conversation engine package."""

from cashflow_bot.engine.session_store import ProcessedMessages, SessionStore
from cashflow_bot.engine.conversation import ConversationEngine, Transition

__all__ = [
    "ConversationEngine",
    "ProcessedMessages",
    "SessionStore",
    "Transition",
]
