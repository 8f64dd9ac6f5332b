"""Test doubles and builders shared by the unit tests."""

from __future__ import annotations

from typing import Any

from receptionist.models import ChannelResponse, ExecutionContext, ToolCall, ToolResult
from receptionist.providers.ai import AIModelProvider, AIResponse, ToolDefinition
from receptionist.providers.communication import CommunicationProvider
from receptionist.tools.base import Tool


# ---------------------------------------------------------------------------
# Doubles
# ---------------------------------------------------------------------------


class ScriptedAIProvider(AIModelProvider):
    """Returns queued ``AIResponse`` objects (or raises queued exceptions)."""

    def __init__(self, name: str = "openai") -> None:
        super().__init__(name)
        self.responses: list[AIResponse | BaseException] = []
        self.calls: list[tuple[list[dict[str, Any]], list[ToolDefinition]]] = []
        self.setup_count = 0
        self.teardown_count = 0

    def script(self, *responses: AIResponse | BaseException) -> ScriptedAIProvider:
        self.responses.extend(responses)
        return self

    async def _setup(self) -> None:
        self.setup_count += 1

    async def _teardown(self) -> None:
        self.teardown_count += 1

    async def complete(
        self, messages: list[dict[str, Any]], tools: list[ToolDefinition]
    ) -> AIResponse:
        self.ensure_initialized()
        self.calls.append((messages, tools))
        if not self.responses:
            return AIResponse(finish_reason="stop", content="")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


class RecordingCommunicationProvider(CommunicationProvider):
    """Records every transport call; voice responses render as plain markers."""

    def __init__(self, name: str = "twilio") -> None:
        super().__init__(name)
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self._counter = 0
        self.teardown_count = 0

    def _next(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter}"

    async def _teardown(self) -> None:
        self.teardown_count += 1

    async def make_call(
        self, to: str, webhook_url: str, status_callback: str | None = None
    ) -> str:
        self.calls.append(("make_call", (to, webhook_url, status_callback)))
        return self._next("CA")

    async def end_call(self, call_sid: str) -> None:
        self.calls.append(("end_call", (call_sid,)))

    def render_voice_response(
        self, text: str, gather_action: str | None = None, hangup: bool = False
    ) -> str:
        return f"SAY[{text}] GATHER[{gather_action}] HANGUP[{hangup}]"

    async def send_sms(self, to: str, body: str, status_callback: str | None = None) -> str:
        self.calls.append(("send_sms", (to, body)))
        return self._next("SM")

    async def send_email(
        self, to: str, subject: str, text: str, html: str | None = None
    ) -> str:
        self.calls.append(("send_email", (to, subject, text, html)))
        return self._next("EM")

    async def create_video_room(
        self, unique_name: str, status_callback: str | None = None
    ) -> str:
        self.calls.append(("create_video_room", (unique_name,)))
        return self._next("RM")

    async def complete_video_room(self, room_sid: str) -> None:
        self.calls.append(("complete_video_room", (room_sid,)))

    def sent(self, operation: str) -> list[tuple[Any, ...]]:
        return [args for op, args in self.calls if op == operation]


# ---------------------------------------------------------------------------
# Response builders
# ---------------------------------------------------------------------------


def stop(text: str) -> AIResponse:
    return AIResponse(finish_reason="stop", content=text)


def tool_calls(*calls: tuple[str, str, dict[str, Any]]) -> AIResponse:
    return AIResponse(
        finish_reason="tool_calls",
        tool_calls=[ToolCall(id=id_, name=name, parameters=args) for id_, name, args in calls],
    )


def echo_tool(name: str = "check_inventory") -> Tool:
    async def handler(params: dict[str, Any], context: ExecutionContext) -> ToolResult:
        return ToolResult(
            success=True,
            data={"tool": name, "params": params},
            response=ChannelResponse(text=f"{name} ok"),
        )

    return Tool(name=name, description=f"{name} tool", default_handler=handler)


