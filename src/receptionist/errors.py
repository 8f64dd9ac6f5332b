"""
Exception hierarchy for the receptionist package.

Configuration problems are fatal and surface at construction or
``initialize()`` time. Tool-handler failures never appear here: the
``ToolExecutor`` captures them into a failed ``ToolResult``. Model failures
live in :mod:`receptionist.providers.ai` and reach channel clients wrapped in
``TurnError``.
"""

from __future__ import annotations


class ReceptionistError(Exception):
    """Base exception for all receptionist errors."""


class ConfigurationError(ReceptionistError):
    """Raised when configuration is missing or invalid.

    Attributes:
        field: Dotted path of the offending setting (e.g. ``"model.api_key"``),
            or ``None`` when the problem is not tied to a single field.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class DuplicateToolError(ConfigurationError, ValueError):
    """Raised when a tool name is registered twice in one registry."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Tool {name!r} is already registered. "
            "Unregister it first before re-registering.",
            field="tools",
        )
        self.tool_name = name


class ProviderNotInitializedError(ReceptionistError):
    """Raised when a provider capability is used before ``initialize()``."""

    def __init__(self, provider_name: str) -> None:
        super().__init__(
            f"Provider {provider_name!r} is not initialized. Call initialize() first."
        )
        self.provider_name = provider_name


class ProviderError(ReceptionistError):
    """Raised when an infrastructure vendor call fails.

    Attributes:
        status_code: HTTP status returned by the vendor, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UnsupportedOperationError(ReceptionistError):
    """Raised when a provider is asked for a capability it does not offer."""


class ToolNotFoundError(ReceptionistError, KeyError):
    """Raised when a tool name is not present in the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Tool {name!r} is not registered.")
        self.tool_name = name

    def __str__(self) -> str:
        return self.args[0]


class NoHandlerForChannelError(ReceptionistError):
    """Raised when a tool has neither a handler for the channel nor a default."""

    def __init__(self, tool_name: str, channel: str) -> None:
        super().__init__(
            f"Tool {tool_name!r} has no handler for channel {channel!r} "
            "and no default handler."
        )
        self.tool_name = tool_name
        self.channel = channel


class ConversationNotFoundError(ReceptionistError, KeyError):
    """Raised when updating a conversation id that was never saved."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation {conversation_id!r} not found.")
        self.conversation_id = conversation_id

    def __str__(self) -> str:
        return self.args[0]


class TurnError(ReceptionistError):
    """Raised when a conversation turn fails because the model call failed.

    Nothing from the failed turn is persisted.
    """

    def __init__(self, message: str, conversation_id: str) -> None:
        super().__init__(message)
        self.conversation_id = conversation_id


class MaxIterationsExceededError(TurnError):
    """Raised when the model keeps requesting tools past ``max_iterations``."""
