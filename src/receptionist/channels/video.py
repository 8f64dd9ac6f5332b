"""Video sessions backed by provider video rooms; the room id is the conversation's call_sid."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from receptionist.channels.base import ChannelClient
from receptionist.config import DEFAULT_FALLBACK_UTTERANCE
from receptionist.errors import TurnError
from receptionist.models import Channel, ChannelResponse, Conversation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VideoSession:
    conversation_id: str
    room_sid: str
    room_name: str


class VideoClient(ChannelClient):
    channel = Channel.VIDEO

    def __init__(
        self, *args: Any, fallback_utterance: str = DEFAULT_FALLBACK_UTTERANCE, **kwargs: Any
    ) -> None:
        super().__init__(*args, **kwargs)
        self.fallback_utterance = fallback_utterance

    def select_response(self, response: ChannelResponse) -> str | None:
        return response.speak

    async def start(
        self, room_name: str | None = None, metadata: dict[str, Any] | None = None
    ) -> VideoSession:
        """Open a video room and its conversation."""
        conversation = await self.start_conversation(metadata=dict(metadata or {}))
        name = room_name or f"receptionist-{conversation.id}"
        try:
            room_sid = await self.provider.create_video_room(name)
        except Exception:
            await self.store.delete(conversation.id)
            raise
        await self.store.update(
            conversation.id,
            call_sid=room_sid,
            metadata={**conversation.metadata, "room_name": name},
        )
        return VideoSession(conversation_id=conversation.id, room_sid=room_sid, room_name=name)

    async def handle_speech(
        self,
        speech: str,
        room_sid: str | None = None,
        conversation_id: str | None = None,
    ) -> str:
        """Return the utterance the agent speaks in reply to *speech*."""
        if conversation_id is not None:
            conversation = await self.get_conversation(conversation_id)
        elif room_sid is not None:
            found = await self.store.get_by_call_id(room_sid)
            if found is None or found.channel is not Channel.VIDEO:
                raise ValueError(f"No video conversation for room {room_sid!r}")
            conversation = found
        else:
            raise ValueError("Either room_sid or conversation_id is required")

        if not conversation.is_active:
            logger.warning("Speech received for ended video conversation %s", conversation.id)
            return self.fallback_utterance

        try:
            result = await self.respond(conversation.id, speech)
        except TurnError as exc:
            logger.error("Turn failed in video room %s: %s", conversation.call_sid, exc)
            return self.fallback_utterance
        return self.select_response(result.response) or self.fallback_utterance

    async def end(self, conversation_id: str) -> Conversation:
        """Close the room and end the conversation."""
        conversation = await self.get_conversation(conversation_id)
        if conversation.is_active and conversation.call_sid:
            await self.provider.complete_video_room(conversation.call_sid)
        return await self.end_conversation(conversation_id)
