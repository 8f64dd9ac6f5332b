"""
Core data types shared across the receptionist package.

Messages are stored in a provider-neutral shape and converted to the OpenAI
chat format with :meth:`Message.to_openai_format` when a turn is sent to the
model.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Channel(str, Enum):
    """A communication medium the agent can be reached through."""

    PHONE = "phone"
    SMS = "sms"
    EMAIL = "email"
    VIDEO = "video"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    Attributes:
        id: Call ID returned by the model; echoed back with the tool result.
        name: Name of the tool to invoke.
        parameters: Parsed JSON arguments.
    """

    id: str
    name: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChannelResponse:
    """Channel-appropriate renderings of a result.

    Which field is used is decided by the channel client: ``speak`` for phone
    and video, ``message`` then ``text`` for SMS, ``html`` then ``text`` for
    email.
    """

    speak: str | None = None
    message: str | None = None
    text: str | None = None
    html: str | None = None

    def is_empty(self) -> bool:
        return not any((self.speak, self.message, self.text, self.html))


@dataclass
class ToolResult:
    """Outcome of one tool handler invocation."""

    success: bool
    response: ChannelResponse = field(default_factory=ChannelResponse)
    data: Any = None
    error: str | None = None

    @classmethod
    def failure(cls, error: str) -> ToolResult:
        return cls(success=False, error=error, response=ChannelResponse(text=error))

    def to_observation(self) -> str:
        """Serialise the result as the tool message content fed back to the model."""
        payload: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        rendered = {k: v for k, v in asdict(self.response).items() if v}
        if rendered:
            payload["response"] = rendered
        return json.dumps(payload, default=str)


@dataclass
class Message:
    """One entry of a conversation's history.

    Assistant messages that requested tools carry ``tool_calls``; tool
    messages carry the ``tool_call_id`` they answer.
    """

    role: MessageRole
    content: str = ""
    timestamp: datetime = field(default_factory=utcnow)
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None

    def to_openai_format(self) -> dict[str, Any]:
        msg: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            msg["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {
                        "name": tc.name,
                        "arguments": json.dumps(tc.parameters),
                    },
                }
                for tc in self.tool_calls
            ]
        if self.tool_call_id is not None:
            msg["tool_call_id"] = self.tool_call_id
        return msg


@dataclass
class Conversation:
    """Persisted session state for one channel interaction.

    ``call_sid`` and ``message_sid`` are the external correlation ids that
    provider callbacks carry; stores index them.
    """

    channel: Channel
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: ConversationStatus = ConversationStatus.ACTIVE
    messages: list[Message] = field(default_factory=list)
    call_sid: str | None = None
    message_sid: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    ended_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status is ConversationStatus.ACTIVE


@dataclass
class ConversationFilters:
    """Filters for ``ConversationStore.list``; applied before ``limit``."""

    channel: Channel | None = None
    status: ConversationStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int | None = None


@dataclass(frozen=True)
class ExecutionContext:
    """Context handed to a tool handler."""

    conversation_id: str
    channel: Channel
    agent_name: str = ""
    call_sid: str | None = None
    message_sid: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Observer events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolExecutionEvent:
    tool_name: str
    parameters: dict[str, Any]
    result: ToolResult
    duration: float
    channel: Channel
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ToolErrorEvent:
    tool_name: str
    parameters: dict[str, Any]
    error: BaseException
    channel: Channel
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ConversationEvent:
    conversation_id: str
    channel: Channel
    timestamp: datetime = field(default_factory=utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)


ToolHandler = Callable[[dict[str, Any], ExecutionContext], Awaitable[ToolResult]]
