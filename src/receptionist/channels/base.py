"""
Base class shared by the channel clients.

A channel client turns a channel-native event into an orchestrator turn and
the turn's ``ChannelResponse`` back into something its communication provider
can deliver. Clients never call the model directly.
"""

from __future__ import annotations

import logging
from typing import Any

from receptionist.config import ConversationCallback
from receptionist.conversation.locks import KeyedLock
from receptionist.conversation.store import ConversationStore
from receptionist.errors import ConversationNotFoundError
from receptionist.models import (
    Channel,
    ChannelResponse,
    Conversation,
    ConversationEvent,
    ConversationStatus,
    utcnow,
)
from receptionist.orchestrator import AIOrchestrator, TurnResult
from receptionist.providers.communication import CommunicationProvider
from receptionist.tools.executor import notify

logger = logging.getLogger(__name__)

PROCESSED_IDS_KEY = "processed_message_ids"


def with_id(metadata: dict[str, Any], key: str, value: str) -> dict[str, Any]:
    """Return a copy of *metadata* with *value* appended to the id list under *key*."""
    updated = dict(metadata)
    updated[key] = [*updated.get(key, []), value]
    return updated


class ChannelClient:
    """Common plumbing: conversation lifecycle, turn locking, field selection.

    Attributes:
        channel: The channel tag this client passes to the orchestrator.
        orchestrator: Runs turns.
        store: Conversation persistence.
        provider: The communication provider this client delivers through.
        locks: Serialises turns of the same conversation. Shared between
            clients of one receptionist.
        webhook_base_url: Public base URL provider callbacks are sent to.
    """

    channel: Channel

    def __init__(
        self,
        orchestrator: AIOrchestrator,
        store: ConversationStore,
        provider: CommunicationProvider,
        locks: KeyedLock | None = None,
        webhook_base_url: str = "",
        on_conversation_start: ConversationCallback | None = None,
        on_conversation_end: ConversationCallback | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.store = store
        self.provider = provider
        self.locks = locks or KeyedLock()
        self.webhook_base_url = webhook_base_url.rstrip("/")
        self._on_start = on_conversation_start
        self._on_end = on_conversation_end

    def select_response(self, response: ChannelResponse) -> str | None:
        """Pick the rendering this channel delivers."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Conversation lifecycle
    # ------------------------------------------------------------------

    async def start_conversation(
        self,
        call_sid: str | None = None,
        message_sid: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Conversation:
        conversation = Conversation(
            channel=self.channel,
            call_sid=call_sid,
            message_sid=message_sid,
            metadata=dict(metadata or {}),
        )
        await self.store.save(conversation)
        logger.info("Started %s conversation %s", self.channel.value, conversation.id)
        notify(
            self._on_start,
            ConversationEvent(
                conversation_id=conversation.id,
                channel=self.channel,
                metadata=dict(conversation.metadata),
            ),
        )
        return conversation

    async def end_conversation(self, conversation_id: str) -> Conversation:
        """Mark the conversation ended; a no-op if it already is.

        Raises:
            ConversationNotFoundError: If the conversation does not exist.
        """
        conversation = await self.store.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        if not conversation.is_active:
            return conversation
        ended = await self.store.update(
            conversation_id, status=ConversationStatus.ENDED, ended_at=utcnow()
        )
        logger.info("Ended %s conversation %s", self.channel.value, conversation_id)
        notify(
            self._on_end,
            ConversationEvent(
                conversation_id=conversation_id,
                channel=self.channel,
                metadata=dict(ended.metadata),
            ),
        )
        return ended

    async def get_conversation(self, conversation_id: str) -> Conversation:
        conversation = await self.store.get(conversation_id)
        if conversation is None or conversation.channel is not self.channel:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def respond(self, conversation_id: str, text: str) -> TurnResult:
        """Run one turn, queued behind any turn already running for the conversation."""
        async with self.locks.hold(conversation_id):
            return await self.orchestrator.run_turn(conversation_id, text)

    def webhook_url(self, path: str) -> str:
        return f"{self.webhook_base_url}/{path.lstrip('/')}"
