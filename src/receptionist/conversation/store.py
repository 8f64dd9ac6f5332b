"""
Conversation persistence.

``ConversationStore`` is the protocol every store implements; the
orchestrator and channel clients depend only on it, so a durable store is a
drop-in replacement for ``InMemoryConversationStore``.

Guarantees every implementation must keep:

- ``save`` upserts by id and refreshes the ``call_sid``/``message_sid``
  indexes, dropping index entries the conversation no longer carries;
- lookups return ``None`` on a miss and never raise;
- ``update`` raises ``ConversationNotFoundError`` for an unknown id;
- ``delete`` removes the conversation and both of its index entries;
- ``list`` filters by channel, status and start window, then truncates.

The in-memory store hands out deep copies so callers can never mutate stored
state without going through ``save``/``update``.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import fields, replace
from typing import Any, Protocol, runtime_checkable

from receptionist.errors import ConversationNotFoundError
from receptionist.models import Conversation, ConversationFilters

logger = logging.getLogger(__name__)

_UPDATABLE = {f.name for f in fields(Conversation)} - {"id"}


@runtime_checkable
class ConversationStore(Protocol):
    """Persistence contract for conversations."""

    async def save(self, conversation: Conversation) -> None: ...

    async def get(self, conversation_id: str) -> Conversation | None: ...

    async def get_by_call_id(self, call_sid: str) -> Conversation | None: ...

    async def get_by_message_id(self, message_sid: str) -> Conversation | None: ...

    async def update(self, conversation_id: str, **changes: Any) -> Conversation: ...

    async def delete(self, conversation_id: str) -> None: ...

    async def list(self, filters: ConversationFilters | None = None) -> list[Conversation]: ...


def apply_filters(
    conversations: list[Conversation], filters: ConversationFilters | None
) -> list[Conversation]:
    """Filter by channel, status and start window, then apply ``limit``."""
    if filters is None:
        return conversations
    result = conversations
    if filters.channel is not None:
        result = [c for c in result if c.channel == filters.channel]
    if filters.status is not None:
        result = [c for c in result if c.status == filters.status]
    if filters.start_date is not None:
        result = [c for c in result if c.started_at >= filters.start_date]
    if filters.end_date is not None:
        result = [c for c in result if c.started_at <= filters.end_date]
    if filters.limit is not None:
        result = result[: max(filters.limit, 0)]
    return result


class InMemoryConversationStore:
    """Dict-backed store; contents are lost on restart.

    A single ``asyncio.Lock`` guards the maps. Store operations never await
    while holding it except to acquire it, so distinct conversations do not
    block each other for longer than one dict operation.
    """

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._call_index: dict[str, str] = {}
        self._message_index: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def save(self, conversation: Conversation) -> None:
        async with self._lock:
            self._put(copy.deepcopy(conversation))
        logger.debug("Saved conversation %s", conversation.id)

    async def get(self, conversation_id: str) -> Conversation | None:
        async with self._lock:
            found = self._conversations.get(conversation_id)
            return copy.deepcopy(found) if found is not None else None

    async def get_by_call_id(self, call_sid: str) -> Conversation | None:
        async with self._lock:
            conversation_id = self._call_index.get(call_sid)
            found = self._conversations.get(conversation_id) if conversation_id else None
            return copy.deepcopy(found) if found is not None else None

    async def get_by_message_id(self, message_sid: str) -> Conversation | None:
        async with self._lock:
            conversation_id = self._message_index.get(message_sid)
            found = self._conversations.get(conversation_id) if conversation_id else None
            return copy.deepcopy(found) if found is not None else None

    async def update(self, conversation_id: str, **changes: Any) -> Conversation:
        """Apply *changes* to an existing conversation and return the result.

        Raises:
            ConversationNotFoundError: If *conversation_id* was never saved.
            ValueError: If *changes* names an unknown or read-only field.
        """
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update conversation fields: {sorted(unknown)}")
        async with self._lock:
            current = self._conversations.get(conversation_id)
            if current is None:
                raise ConversationNotFoundError(conversation_id)
            updated = replace(current, **copy.deepcopy(changes))
            self._put(updated)
            return copy.deepcopy(updated)

    async def delete(self, conversation_id: str) -> None:
        async with self._lock:
            conversation = self._conversations.pop(conversation_id, None)
            if conversation is not None:
                self._drop_indexes(conversation)
        logger.debug("Deleted conversation %s", conversation_id)

    async def list(self, filters: ConversationFilters | None = None) -> list[Conversation]:
        async with self._lock:
            snapshot = list(self._conversations.values())
            return copy.deepcopy(apply_filters(snapshot, filters))

    def count(self) -> int:
        """Return the number of stored conversations."""
        return len(self._conversations)

    def clear(self) -> None:
        """Remove all conversations and indexes."""
        self._conversations.clear()
        self._call_index.clear()
        self._message_index.clear()
        logger.debug("Cleared all conversations")

    # ------------------------------------------------------------------
    # Private helpers (caller holds the lock)
    # ------------------------------------------------------------------

    def _put(self, conversation: Conversation) -> None:
        previous = self._conversations.get(conversation.id)
        if previous is not None:
            self._drop_indexes(previous)
        self._conversations[conversation.id] = conversation
        if conversation.call_sid:
            self._call_index[conversation.call_sid] = conversation.id
        if conversation.message_sid:
            self._message_index[conversation.message_sid] = conversation.id

    def _drop_indexes(self, conversation: Conversation) -> None:
        if conversation.call_sid and self._call_index.get(conversation.call_sid) == conversation.id:
            del self._call_index[conversation.call_sid]
        if (
            conversation.message_sid
            and self._message_index.get(conversation.message_sid) == conversation.id
        ):
            del self._message_index[conversation.message_sid]
