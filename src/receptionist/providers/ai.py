"""
AI model provider boundary.

``AIModelProvider`` is the contract the ``AIOrchestrator`` talks to: given the
full message sequence and the tool definitions visible this turn, return
either final text or a list of ``ToolCall``\\ s.

The concrete implementation, ``OpenAICompatibleProvider``, uses
``openai.AsyncOpenAI`` which supports any OpenAI-compatible base URL.
``OpenRouterProvider`` points it at OpenRouter. ``create_ai_provider`` maps the
configured backend name to a provider class.

Also provides the exception hierarchy for model API errors.
"""

from __future__ import annotations

import json
import logging
from abc import abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)

from receptionist.config import AIModelConfig
from receptionist.errors import ConfigurationError
from receptionist.models import ToolCall
from receptionist.providers.base import BaseProvider, ProviderKind

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Custom exception hierarchy
# ---------------------------------------------------------------------------


class LLMError(Exception):
    """Base exception for all model provider errors."""


class LLMRateLimitError(LLMError):
    """Raised when the model API returns a rate-limit (429) response."""


class LLMConnectionError(LLMError):
    """Raised when the model API endpoint cannot be reached."""


class LLMTimeoutError(LLMConnectionError):
    """Raised when a model request exceeds its deadline."""


class LLMAPIError(LLMError):
    """Raised for other model API errors (e.g., 5xx, authentication failures).

    Attributes:
        status_code: HTTP status code from the API, or ``None`` if unavailable.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Core data types
# ---------------------------------------------------------------------------


@dataclass
class UsageStats:
    """Token usage recorded for a single completion call."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ToolDefinition:
    """Describes a callable tool available to the model.

    Attributes:
        name: The tool's unique name (used by the model to invoke it).
        description: Human-readable description shown in the tool prompt.
        parameters: JSON Schema dict describing the tool's input parameters.
    """

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_openai_format(self) -> dict[str, Any]:
        """Serialise to OpenAI tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass
class AIResponse:
    """Result of a single model call.

    Attributes:
        finish_reason: ``"stop"``, ``"tool_calls"`` or ``"length"``.
        content: Text content; may be ``None`` when tools were requested.
        tool_calls: Requested tool invocations, in the order the model
            returned them.
        usage: Token usage for this call, or ``None`` if unavailable.
    """

    finish_reason: str
    content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: UsageStats | None = None

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


# ---------------------------------------------------------------------------
# Provider contract
# ---------------------------------------------------------------------------


class AIModelProvider(BaseProvider):
    """Base class for model backends used by ``AIOrchestrator``."""

    kind = ProviderKind.AI

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
    ) -> AIResponse:
        """Send a completion request to the model.

        Args:
            messages: The full message sequence in OpenAI message format.
            tools: The tool definitions available this turn.

        Raises:
            ProviderNotInitializedError: If called before ``initialize()``.
            LLMRateLimitError: If the API returns a 429 rate-limit response.
            LLMConnectionError: If the API endpoint cannot be reached.
            LLMAPIError: For other API-level failures.
        """


# ---------------------------------------------------------------------------
# Concrete provider implementations
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider(AIModelProvider):
    """Model provider backed by any OpenAI-compatible endpoint.

    The sampling parameters (temperature, max tokens) come from the
    ``AIModelConfig`` the provider was built with.
    """

    default_base_url: str | None = None

    def __init__(self, config: AIModelConfig, name: str | None = None) -> None:
        super().__init__(name or config.provider)
        self.config = config
        self._client: AsyncOpenAI | None = None

    @property
    def model(self) -> str:
        return self.config.model

    def _default_headers(self) -> dict[str, str] | None:
        return None

    async def _setup(self) -> None:
        self._client = AsyncOpenAI(
            api_key=self.config.api_key,
            base_url=self.config.base_url or self.default_base_url,
            timeout=self.config.timeout,
            default_headers=self._default_headers(),
        )

    async def _teardown(self) -> None:
        if self._client is not None:
            await self._client.close()
        self._client = None

    async def _check(self) -> bool:
        assert self._client is not None
        await self._client.models.list()
        return True

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
    ) -> AIResponse:
        """Call the model and return a structured ``AIResponse``.

        Raises:
            LLMRateLimitError: If the API returns a 429 response.
            LLMTimeoutError: If the request times out.
            LLMConnectionError: If the API endpoint cannot be reached.
            LLMAPIError: For other API-level failures (e.g. 4xx/5xx).
        """
        self.ensure_initialized()
        assert self._client is not None

        openai_tools = [t.to_openai_format() for t in tools] if tools else []

        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "temperature": self.config.temperature,
        }
        if self.config.max_tokens is not None:
            kwargs["max_tokens"] = self.config.max_tokens
        if openai_tools:
            kwargs["tools"] = openai_tools

        logger.debug(
            "Model request: provider=%s model=%s, messages=%d, tools=%d",
            self.name,
            self.config.model,
            len(messages),
            len(openai_tools),
        )

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except RateLimitError as exc:
            logger.warning("Model rate limit exceeded: %s", exc)
            raise LLMRateLimitError(f"Rate limit exceeded: {exc}") from exc
        except APITimeoutError as exc:
            logger.error("Model request timed out: %s", exc)
            raise LLMTimeoutError(f"Model request timed out: {exc}") from exc
        except APIConnectionError as exc:
            logger.error("Model connection failed: %s", exc)
            raise LLMConnectionError(f"Could not connect to model endpoint: {exc}") from exc
        except APIStatusError as exc:
            logger.error("Model API error %d: %s", exc.status_code, exc)
            raise LLMAPIError(
                f"Model API returned status {exc.status_code}: {exc}",
                status_code=exc.status_code,
            ) from exc

        choice = response.choices[0]
        message = choice.message

        tool_calls: list[ToolCall] = []
        if message.tool_calls:
            for tc in message.tool_calls:
                try:
                    args = json.loads(tc.function.arguments or "{}")
                except json.JSONDecodeError:
                    logger.warning(
                        "Model sent malformed arguments for tool %r; using {}",
                        tc.function.name,
                    )
                    args = {}
                tool_calls.append(ToolCall(id=tc.id, name=tc.function.name, parameters=args))

        finish_reason = choice.finish_reason or "stop"
        if tool_calls:
            finish_reason = "tool_calls"

        usage: UsageStats | None = None
        if response.usage is not None:
            usage = UsageStats(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        logger.debug(
            "Model response: finish_reason=%s, tool_calls=%d, tokens=%s",
            finish_reason,
            len(tool_calls),
            usage.total_tokens if usage else "n/a",
        )

        return AIResponse(
            finish_reason=finish_reason,
            content=message.content,
            tool_calls=tool_calls,
            usage=usage,
        )


class OpenRouterProvider(OpenAICompatibleProvider):
    """Multi-model access through OpenRouter's OpenAI-compatible API."""

    default_base_url = "https://openrouter.ai/api/v1"

    def __init__(
        self,
        config: AIModelConfig,
        name: str | None = None,
        referer: str = "https://localhost:3000",
        title: str = "AI Receptionist",
    ) -> None:
        super().__init__(config, name=name)
        self.referer = referer
        self.title = title

    def _default_headers(self) -> dict[str, str]:
        return {"HTTP-Referer": self.referer, "X-Title": self.title}


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class AIBackend(str, Enum):
    OPENAI = "openai"
    OPENROUTER = "openrouter"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


_BACKENDS: dict[AIBackend, type[OpenAICompatibleProvider]] = {
    AIBackend.OPENAI: OpenAICompatibleProvider,
    AIBackend.OPENROUTER: OpenRouterProvider,
}


def create_ai_provider(config: AIModelConfig) -> AIModelProvider:
    """Build the (uninitialized) model provider selected by ``config.provider``.

    Raises:
        ConfigurationError: If the backend is unknown or not implemented.
    """
    try:
        backend = AIBackend(config.provider)
    except ValueError:
        raise ConfigurationError(
            f"Unknown AI provider: {config.provider!r}", "model.provider"
        ) from None
    provider_cls = _BACKENDS.get(backend)
    if provider_cls is None:
        raise ConfigurationError(
            f"AI provider {backend.value!r} is not yet implemented", "model.provider"
        )
    return provider_cls(config)
