"""Email conversations: outbound mail and inbound replies answered with html and text parts."""

from __future__ import annotations

import html
import logging
import re
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
from receptionist.orchestrator import render_html

logger = logging.getLogger(__name__)

_TAG = re.compile(r"<[^>]+>")


def html_to_text(markup: str) -> str:
    text = re.sub(r"</p>\s*", "\n\n", markup)
    text = re.sub(r"<br\s*/?>", "\n", text)
    return html.unescape(_TAG.sub("", text)).strip()


def reply_subject(subject: str | None) -> str:
    subject = (subject or "").strip()
    if not subject:
        return "Re: your message"
    return subject if subject.lower().startswith("re:") else f"Re: {subject}"


@dataclass(frozen=True)
class EmailDelivery:
    conversation_id: str
    message_id: str
    to: str
    subject: str


class EmailClient(ChannelClient):
    """Outbound email and inbound email turns."""

    channel = Channel.EMAIL

    def select_response(self, response: ChannelResponse) -> str | None:
        return response.html or response.text

    async def send(
        self,
        to: str,
        subject: str,
        text: str,
        html_body: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> EmailDelivery:
        """Send an email and record it as the start of a conversation with *to*."""
        async with self.locks.hold(self._thread_key(to)):
            conversation = await self.find_thread(to)
            if conversation is None:
                conversation = await self.start_conversation(
                    metadata={**(metadata or {}), "remote": to, "subject": subject, "direction": "outbound"}
                )
            message_id = await self.provider.send_email(to, subject, text, html_body)
            async with self.locks.hold(conversation.id):
                latest = await self.get_conversation(conversation.id)
                await self.store.update(
                    conversation.id,
                    messages=latest.messages + [Message(role=MessageRole.ASSISTANT, content=text)],
                )
        return EmailDelivery(
            conversation_id=conversation.id, message_id=message_id, to=to, subject=subject
        )

    async def handle_inbound(
        self,
        from_address: str,
        text: str,
        subject: str | None = None,
        message_id: str | None = None,
    ) -> EmailDelivery | None:
        """Run a turn for an inbound email and mail the reply.

        Returns ``None`` when nothing was sent: a redelivered message, a
        failed turn or an empty reply.
        """
        async with self.locks.hold(self._thread_key(from_address)):
            if message_id and await self.is_duplicate(message_id, from_address):
                logger.warning("Dropping duplicate email %s from %s", message_id, from_address)
                return None

            conversation = await self.find_thread(from_address)
            if conversation is None:
                conversation = await self.start_conversation(
                    message_sid=message_id,
                    metadata={"remote": from_address, "subject": subject, "direction": "inbound"},
                )
            if message_id:
                await self.store.update(
                    conversation.id,
                    message_sid=message_id,
                    metadata=with_id(conversation.metadata, PROCESSED_IDS_KEY, message_id),
                )

            try:
                result = await self.respond(conversation.id, text)
            except TurnError as exc:
                logger.error("Turn failed for email from %s: %s; sending nothing", from_address, exc)
                return None

            body = self.select_response(result.response)
            if not body:
                logger.warning("Turn for email from %s produced no body; sending nothing", from_address)
                return None
            plain = result.response.text or result.response.message or html_to_text(body)
            markup = result.response.html or render_html(plain)

            outgoing_subject = reply_subject(subject or conversation.metadata.get("subject"))
            sent_id = await self.provider.send_email(from_address, outgoing_subject, plain, markup)
        logger.info("Replied to %s (conversation %s)", from_address, conversation.id)
        return EmailDelivery(
            conversation_id=conversation.id,
            message_id=sent_id,
            to=from_address,
            subject=outgoing_subject,
        )

    async def is_duplicate(self, message_id: str, from_address: str) -> bool:
        """True if *message_id* was already handled in any email thread with the sender."""
        if await self.store.get_by_message_id(message_id) is not None:
            return True
        threads = await self.store.list(ConversationFilters(channel=Channel.EMAIL))
        return any(
            message_id in c.metadata.get(PROCESSED_IDS_KEY, [])
            for c in threads
            if c.metadata.get("remote") == from_address
        )

    async def find_thread(self, remote: str) -> Conversation | None:
        threads = [
            c
            for c in await self.store.list(
                ConversationFilters(channel=Channel.EMAIL, status=ConversationStatus.ACTIVE)
            )
            if c.metadata.get("remote") == remote
        ]
        return max(threads, key=lambda c: c.started_at, default=None)

    async def end(self, conversation_id: str) -> Conversation:
        return await self.end_conversation(conversation_id)

    @staticmethod
    def _thread_key(remote: str) -> str:
        return f"email:{remote}"
