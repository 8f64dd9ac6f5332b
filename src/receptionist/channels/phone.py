"""
Voice calls.

Speech reaches the agent through the provider's voice webhook; each reply is
returned as a voice response document (TwiML for Twilio) that speaks the
answer and gathers the caller's next utterance. A failed turn speaks the
fallback utterance instead of hanging up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from receptionist.channels.base import ChannelClient
from receptionist.config import DEFAULT_FALLBACK_UTTERANCE
from receptionist.errors import TurnError
from receptionist.models import Channel, ChannelResponse, Conversation

logger = logging.getLogger(__name__)

# Twilio CallStatus values after which the call is over.
TERMINAL_CALL_STATUSES = frozenset({"completed", "busy", "failed", "no-answer", "canceled"})

REPROMPT = "Sorry, I didn't catch that. Could you say it again?"


@dataclass(frozen=True)
class CallSession:
    conversation_id: str
    call_sid: str
    to: str


class PhoneClient(ChannelClient):
    """Outbound and inbound voice calls."""

    channel = Channel.PHONE

    def __init__(
        self,
        *args: Any,
        greeting: str = "Hello, how can I help you today?",
        fallback_utterance: str = DEFAULT_FALLBACK_UTTERANCE,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.greeting = greeting
        self.fallback_utterance = fallback_utterance

    def select_response(self, response: ChannelResponse) -> str | None:
        return response.speak

    def voice_url(self, conversation_id: str) -> str:
        return self.webhook_url(f"webhooks/voice/{conversation_id}")

    @property
    def status_url(self) -> str:
        return self.webhook_url("webhooks/call-status")

    async def make(self, to: str, metadata: dict[str, Any] | None = None) -> CallSession:
        """Place an outbound call.

        The conversation is created first so the answer webhook can carry its
        id; it is removed again if the provider rejects the call.
        """
        conversation = await self.start_conversation(
            metadata={**(metadata or {}), "remote": to, "direction": "outbound"}
        )
        try:
            call_sid = await self.provider.make_call(
                to,
                webhook_url=self.voice_url(conversation.id),
                status_callback=self.status_url,
            )
        except Exception:
            await self.store.delete(conversation.id)
            raise
        await self.store.update(conversation.id, call_sid=call_sid)
        logger.info("Outbound call %s to %s (conversation %s)", call_sid, to, conversation.id)
        return CallSession(conversation_id=conversation.id, call_sid=call_sid, to=to)

    async def handle_inbound_call(self, call_sid: str, from_number: str | None = None) -> str:
        """Answer a call: resolve or create its conversation and speak the greeting."""
        conversation = await self._resolve(call_sid, from_number)
        return self.greet(conversation.id)

    def greet(self, conversation_id: str) -> str:
        return self.provider.render_voice_response(
            self.greeting, gather_action=self.voice_url(conversation_id)
        )

    async def handle_speech(
        self,
        speech: str,
        call_sid: str | None = None,
        conversation_id: str | None = None,
        from_number: str | None = None,
    ) -> str:
        """Run a turn for the caller's utterance and return the voice response."""
        if conversation_id is not None:
            conversation = await self.get_conversation(conversation_id)
        elif call_sid is not None:
            conversation = await self._resolve(call_sid, from_number)
        else:
            raise ValueError("Either call_sid or conversation_id is required")

        if not conversation.is_active:
            logger.warning("Speech received for ended call conversation %s", conversation.id)
            return self.provider.render_voice_response(self.fallback_utterance, hangup=True)

        gather = self.voice_url(conversation.id)
        if not speech.strip():
            return self.provider.render_voice_response(REPROMPT, gather_action=gather)

        try:
            result = await self.respond(conversation.id, speech)
        except TurnError as exc:
            logger.error("Turn failed on call %s: %s", conversation.call_sid, exc)
            return self.provider.render_voice_response(self.fallback_utterance, gather_action=gather)

        utterance = self.select_response(result.response) or self.fallback_utterance
        return self.provider.render_voice_response(utterance, gather_action=gather)

    async def handle_status(self, call_sid: str, status: str) -> Conversation | None:
        """Apply a provider status callback; terminal statuses end the conversation."""
        conversation = await self.store.get_by_call_id(call_sid)
        if conversation is None:
            logger.warning("Status %r for unknown call %s", status, call_sid)
            return None
        if status not in TERMINAL_CALL_STATUSES:
            logger.debug("Call %s status %s", call_sid, status)
            return conversation
        return await self.end_conversation(conversation.id)

    async def end(self, conversation_id: str) -> Conversation:
        """Hang up the call and end its conversation."""
        conversation = await self.get_conversation(conversation_id)
        if conversation.is_active and conversation.call_sid:
            await self.provider.end_call(conversation.call_sid)
        return await self.end_conversation(conversation_id)

    async def _resolve(self, call_sid: str, from_number: str | None) -> Conversation:
        conversation = await self.store.get_by_call_id(call_sid)
        if conversation is not None:
            return conversation
        metadata: dict[str, Any] = {"direction": "inbound"}
        if from_number:
            metadata["remote"] = from_number
        return await self.start_conversation(call_sid=call_sid, metadata=metadata)

