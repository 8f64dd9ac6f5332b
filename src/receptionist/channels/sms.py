"""
SMS threads.

An SMS conversation is the active thread with one remote number: outbound
messages and inbound replies from the same number share history until the
thread is ended. Inbound webhooks may be redelivered, so every inbound
message id is recorded on its thread and a repeat is dropped without a turn.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from receptionist.channels.base import PROCESSED_IDS_KEY, ChannelClient, with_id
from receptionist.errors import TurnError
from receptionist.models import (
    Channel,
    ChannelResponse,
    Conversation,
    ConversationFilters,
    ConversationStatus,
    Message,
    MessageRole,
)

logger = logging.getLogger(__name__)

OUTBOUND_IDS_KEY = "outbound_message_ids"


@dataclass(frozen=True)
class SMSDelivery:
    conversation_id: str
    message_sid: str
    to: str


class SMSClient(ChannelClient):
    """Outbound texts and inbound SMS turns."""

    channel = Channel.SMS

    def select_response(self, response: ChannelResponse) -> str | None:
        return response.message or response.text

    async def send(
        self, to: str, body: str, metadata: dict[str, Any] | None = None
    ) -> SMSDelivery:
        """Text *to* and record the message on its thread.

        The body is stored as an assistant message so a reply continues the
        same conversation with the outbound text in its history.
        """
        async with self.locks.hold(self._thread_key(to)):
            conversation = await self.find_thread(to)
            if conversation is None:
                conversation = await self.start_conversation(
                    metadata={**(metadata or {}), "remote": to, "direction": "outbound"}
                )
            message_sid = await self.provider.send_sms(to, body)
            async with self.locks.hold(conversation.id):
                latest = await self.get_conversation(conversation.id)
                await self.store.update(
                    conversation.id,
                    messages=latest.messages + [Message(role=MessageRole.ASSISTANT, content=body)],
                    metadata=with_id(latest.metadata, OUTBOUND_IDS_KEY, message_sid),
                )
        return SMSDelivery(conversation_id=conversation.id, message_sid=message_sid, to=to)

    async def handle_inbound(
        self, message_sid: str, from_number: str, body: str
    ) -> SMSDelivery | None:
        """Run a turn for an inbound text and send the reply.

        Returns:
            The reply delivery, or ``None`` when nothing was sent: a duplicate
            delivery, a failed turn or an empty reply.
        """
        async with self.locks.hold(self._thread_key(from_number)):
            if await self.is_duplicate(message_sid, from_number):
                logger.warning("Dropping duplicate SMS delivery %s from %s", message_sid, from_number)
                return None

            conversation = await self.find_thread(from_number)
            if conversation is None:
                conversation = await self.start_conversation(
                    message_sid=message_sid,
                    metadata={"remote": from_number, "direction": "inbound"},
                )
            # Recorded before the turn so a redelivery during the turn is dropped.
            await self.store.update(
                conversation.id,
                message_sid=message_sid,
                metadata=with_id(conversation.metadata, PROCESSED_IDS_KEY, message_sid),
            )

            try:
                result = await self.respond(conversation.id, body)
            except TurnError as exc:
                logger.error("Turn failed for SMS %s: %s; sending nothing", message_sid, exc)
                return None

            reply = self.select_response(result.response)
            if not reply:
                logger.warning("Turn for SMS %s produced no message; sending nothing", message_sid)
                return None

            reply_sid = await self.provider.send_sms(from_number, reply)
            latest = await self.get_conversation(conversation.id)
            await self.store.update(
                conversation.id,
                metadata=with_id(latest.metadata, OUTBOUND_IDS_KEY, reply_sid),
            )
        return SMSDelivery(conversation_id=conversation.id, message_sid=reply_sid, to=from_number)

    async def is_duplicate(self, message_sid: str, from_number: str) -> bool:
        if await self.store.get_by_message_id(message_sid) is not None:
            return True
        thread = await self.find_thread(from_number)
        return thread is not None and message_sid in thread.metadata.get(PROCESSED_IDS_KEY, [])

    async def find_thread(self, remote: str) -> Conversation | None:
        """Return the most recent active SMS conversation with *remote*."""
        threads = [
            c
            for c in await self.store.list(
                ConversationFilters(channel=Channel.SMS, status=ConversationStatus.ACTIVE)
            )
            if c.metadata.get("remote") == remote
        ]
        return max(threads, key=lambda c: c.started_at, default=None)

    async def end(self, conversation_id: str) -> Conversation:
        """Close the thread; the next text from the number starts a new one."""
        return await self.end_conversation(conversation_id)

    @staticmethod
    def _thread_key(remote: str) -> str:
        return f"sms:{remote}"
