"""
AIOrchestrator — the tool-calling turn loop.

One turn moves through::

    BUILDING_PROMPT -> AWAITING_MODEL -> (TOOL_DISPATCH <-> AWAITING_MODEL)* -> RESPONSE_READY

The prompt is one system message derived from the agent's ``AgentConfig``,
then the stored history, then the new user message. When the model requests
tools, each call is dispatched in the order the model returned it and its
result is appended as a ``tool`` message tagged with the call id, and the
model is called again. The loop ends on a text response or after
``max_iterations`` model calls.

Messages produced during a turn are buffered and written to the store in a
single update once the turn has completed. A model failure or timeout
therefore persists nothing, and history never holds a tool call without its
result.
"""

from __future__ import annotations

import asyncio
import html
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from receptionist.config import AgentConfig
from receptionist.conversation.store import ConversationStore
from receptionist.errors import ConversationNotFoundError, MaxIterationsExceededError, TurnError
from receptionist.models import (
    Channel,
    ChannelResponse,
    Conversation,
    ExecutionContext,
    Message,
    MessageRole,
    ToolCall,
    ToolResult,
)
from receptionist.providers.ai import AIModelProvider, AIResponse, LLMError
from receptionist.tools.executor import ToolExecutor
from receptionist.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

_CHANNEL_GUIDANCE: dict[Channel, str] = {
    Channel.PHONE: "You are speaking on a phone call. Keep replies short and conversational.",
    Channel.VIDEO: "You are speaking on a video call. Keep replies short and conversational.",
    Channel.SMS: "You are replying by SMS. Keep replies brief and plain text.",
    Channel.EMAIL: "You are replying by email. Be complete, clear and courteous.",
}


def build_system_prompt(agent: AgentConfig, channel: Channel | None = None) -> str:
    """Return the agent's explicit system prompt, or synthesise one."""
    if agent.system_prompt:
        return agent.system_prompt
    prompt = f"You are {agent.name}, a {agent.role}."
    if agent.personality:
        prompt += f" Your personality is {agent.personality}."
    if agent.tone:
        prompt += f" Use a {agent.tone} tone."
    if channel is not None:
        prompt += f"\n\n{_CHANNEL_GUIDANCE[channel]}"
    if agent.instructions:
        prompt += f"\n\nInstructions:\n{agent.instructions}"
    return prompt


def render_html(text: str) -> str:
    paragraphs = [p for p in text.split("\n\n") if p.strip()]
    return "".join(
        f"<p>{html.escape(p).replace(chr(10), '<br>')}</p>" for p in paragraphs
    )


@dataclass
class TurnResult:
    """Outcome of one completed turn.

    Attributes:
        conversation_id: The conversation the turn belongs to.
        text: The model's final text.
        response: Channel renderings of the final answer.
        tool_results: ``(call, result)`` pairs in dispatch order.
        messages: Messages appended to the conversation by this turn.
        iterations: Number of model calls made.
    """

    conversation_id: str
    text: str
    response: ChannelResponse
    tool_results: list[tuple[ToolCall, ToolResult]] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    iterations: int = 0


class AIOrchestrator:
    """Drives one request/response turn for a conversation.

    Attributes:
        provider: The model backend.
        registry: Tools offered to the model, filtered per channel.
        executor: Runs requested tool calls.
        store: Conversation persistence.
        agent: Persona used for the system prompt.
        max_iterations: Maximum model calls per turn. Default: 10.
        turn_timeout: Default seconds allowed for a whole turn; ``None``
            disables the deadline.
    """

    def __init__(
        self,
        provider: AIModelProvider,
        registry: ToolRegistry,
        executor: ToolExecutor,
        store: ConversationStore,
        agent: AgentConfig,
        max_iterations: int = 10,
        turn_timeout: float | None = None,
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.executor = executor
        self.store = store
        self.agent = agent
        self.max_iterations = max_iterations
        self.turn_timeout = turn_timeout

    async def run_turn(
        self,
        conversation_id: str,
        user_text: str,
        timeout: float | None = None,
    ) -> TurnResult:
        """Run one turn and persist its messages.

        Args:
            conversation_id: An existing conversation.
            user_text: The user's input for this turn.
            timeout: Deadline for this turn; defaults to ``turn_timeout``.

        Returns:
            The ``TurnResult`` of the completed turn.

        Raises:
            ConversationNotFoundError: If the conversation does not exist.
            TurnError: If the model call fails or the deadline passes.
            MaxIterationsExceededError: If the model never stops calling tools.
            NoHandlerForChannelError: On a tool configuration error.
        """
        conversation = await self.store.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)

        deadline = timeout if timeout is not None else self.turn_timeout
        turn_start = time.monotonic()
        logger.info(
            "Turn start: conversation=%s channel=%s history=%d",
            conversation_id,
            conversation.channel.value,
            len(conversation.messages),
        )

        try:
            if deadline is not None:
                result = await asyncio.wait_for(
                    self._loop(conversation, user_text), timeout=deadline
                )
            else:
                result = await self._loop(conversation, user_text)
        except asyncio.TimeoutError as exc:
            logger.error(
                "Turn for conversation %s timed out after %.1fs", conversation_id, deadline
            )
            raise TurnError(
                f"Turn timed out after {deadline}s", conversation_id
            ) from exc
        except LLMError as exc:
            logger.error("Model call failed for conversation %s: %s", conversation_id, exc)
            raise TurnError(f"Model call failed: {exc}", conversation_id) from exc

        # Re-read so concurrent metadata/status updates are not overwritten.
        latest = await self.store.get(conversation_id)
        if latest is None:
            raise ConversationNotFoundError(conversation_id)
        await self.store.update(conversation_id, messages=latest.messages + result.messages)

        logger.info(
            "Turn complete: conversation=%s iterations=%d tools=%d in %.3fs",
            conversation_id,
            result.iterations,
            len(result.tool_results),
            time.monotonic() - turn_start,
        )
        return result

    async def _loop(self, conversation: Conversation, user_text: str) -> TurnResult:
        channel = conversation.channel
        system: dict[str, Any] = {
            "role": MessageRole.SYSTEM.value,
            "content": build_system_prompt(self.agent, channel),
        }
        history = [m.to_openai_format() for m in conversation.messages]
        buffered: list[Message] = [Message(role=MessageRole.USER, content=user_text)]
        tools = self.registry.get_definitions(channel)
        context = ExecutionContext(
            conversation_id=conversation.id,
            channel=channel,
            agent_name=self.agent.name,
            call_sid=conversation.call_sid,
            message_sid=conversation.message_sid,
            metadata=dict(conversation.metadata),
        )
        tool_results: list[tuple[ToolCall, ToolResult]] = []

        for iteration in range(self.max_iterations):
            logger.debug("Turn iteration %d/%d", iteration + 1, self.max_iterations)
            messages = [system, *history, *(m.to_openai_format() for m in buffered)]

            llm_t0 = time.monotonic()
            response: AIResponse = await self.provider.complete(messages, tools)
            logger.debug(
                "Model call %d took %.3fs (finish_reason=%s)",
                iteration + 1,
                time.monotonic() - llm_t0,
                response.finish_reason,
            )

            if not response.wants_tools:
                text = response.content or ""
                buffered.append(Message(role=MessageRole.ASSISTANT, content=text))
                return TurnResult(
                    conversation_id=conversation.id,
                    text=text,
                    response=self._shape(text, tool_results),
                    tool_results=tool_results,
                    messages=buffered,
                    iterations=iteration + 1,
                )

            buffered.append(
                Message(
                    role=MessageRole.ASSISTANT,
                    content=response.content or "",
                    tool_calls=list(response.tool_calls),
                )
            )
            # Sequential, in model order, so results pair with calls causally.
            for call in response.tool_calls:
                result = await self.executor.execute(call, context)
                tool_results.append((call, result))
                buffered.append(
                    Message(
                        role=MessageRole.TOOL,
                        content=result.to_observation(),
                        tool_call_id=call.id,
                    )
                )

        raise MaxIterationsExceededError(
            f"Model exceeded max_iterations={self.max_iterations} "
            "without reaching a final response",
            conversation.id,
        )

    @staticmethod
    def _shape(text: str, tool_results: list[tuple[ToolCall, ToolResult]]) -> ChannelResponse:
        """Render the final answer for every channel.

        An empty model answer falls back to the last successful tool's own
        channel renderings.
        """
        if not text.strip():
            for _call, result in reversed(tool_results):
                if result.success and not result.response.is_empty():
                    return result.response
            return ChannelResponse()
        return ChannelResponse(speak=text, message=text, text=text, html=render_html(text))
