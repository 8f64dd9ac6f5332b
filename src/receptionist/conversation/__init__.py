"""Conversation state: the store contract, the in-memory store and turn locks."""

from receptionist.conversation.locks import KeyedLock
from receptionist.conversation.store import (
    ConversationStore,
    InMemoryConversationStore,
    apply_filters,
)

__all__ = ["ConversationStore", "InMemoryConversationStore", "KeyedLock", "apply_filters"]
