"""
Tool abstraction: a named, schema-described action the model can invoke.

A ``Tool`` carries one optional handler per channel plus an optional default.
Channel handlers live in the fixed-key ``ChannelHandlers`` record rather than
an open dict, so every channel is an explicit attribute.

Tools are immutable once built. Build them with ``ToolBuilder``::

    tool = (
        ToolBuilder()
        .with_name("check_inventory")
        .with_description("Check stock for a product")
        .with_parameters({"type": "object", "properties": {"sku": {"type": "string"}}})
        .default(check_inventory)
        .build()
    )

or directly as ``Tool(name=..., description=..., default_handler=...)``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from receptionist.errors import ConfigurationError
from receptionist.models import Channel, ToolHandler
from receptionist.providers.ai import ToolDefinition


@dataclass(frozen=True)
class ChannelHandlers:
    phone: ToolHandler | None = None
    sms: ToolHandler | None = None
    email: ToolHandler | None = None
    video: ToolHandler | None = None

    def get(self, channel: Channel) -> ToolHandler | None:
        return getattr(self, channel.value)

    def channels(self) -> list[Channel]:
        return [c for c in Channel if self.get(c) is not None]


@dataclass(frozen=True)
class Tool:
    """A model-invocable action.

    Attributes:
        name: Unique name within a registry.
        description: Shown to the model.
        parameters: JSON Schema for the call arguments.
        default_handler: Used on any channel without a specific handler.
        channel_handlers: Channel-specific handlers.
    """

    name: str
    description: str
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    default_handler: ToolHandler | None = None
    channel_handlers: ChannelHandlers = field(default_factory=ChannelHandlers)

    def handler_for(self, channel: Channel) -> ToolHandler | None:
        """Channel-specific handler if present, else the default (may be None)."""
        return self.channel_handlers.get(channel) or self.default_handler

    def available_on(self, channel: Channel) -> bool:
        return self.handler_for(channel) is not None

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name, description=self.description, parameters=dict(self.parameters)
        )


class ToolBuilder:
    """Fluent builder for ``Tool``."""

    def __init__(self) -> None:
        self._name: str | None = None
        self._description: str | None = None
        self._parameters: dict[str, Any] = {"type": "object", "properties": {}}
        self._default: ToolHandler | None = None
        self._handlers = ChannelHandlers()

    def with_name(self, name: str) -> ToolBuilder:
        self._name = name
        return self

    def with_description(self, description: str) -> ToolBuilder:
        self._description = description
        return self

    def with_parameters(self, schema: dict[str, Any]) -> ToolBuilder:
        self._parameters = dict(schema)
        return self

    def on_channel(self, channel: Channel, handler: ToolHandler) -> ToolBuilder:
        self._handlers = replace(self._handlers, **{channel.value: handler})
        return self

    def on_call(self, handler: ToolHandler) -> ToolBuilder:
        return self.on_channel(Channel.PHONE, handler)

    def on_sms(self, handler: ToolHandler) -> ToolBuilder:
        return self.on_channel(Channel.SMS, handler)

    def on_email(self, handler: ToolHandler) -> ToolBuilder:
        return self.on_channel(Channel.EMAIL, handler)

    def on_video(self, handler: ToolHandler) -> ToolBuilder:
        return self.on_channel(Channel.VIDEO, handler)

    def default(self, handler: ToolHandler) -> ToolBuilder:
        self._default = handler
        return self

    def build(self) -> Tool:
        """Build the tool.

        Raises:
            ConfigurationError: If name or description is missing, or the
                tool has no handler at all.
        """
        if not self._name:
            raise ConfigurationError("Tool name is required", "tool.name")
        if not self._description:
            raise ConfigurationError(
                f"Tool {self._name!r} needs a description", "tool.description"
            )
        if self._default is None and not self._handlers.channels():
            raise ConfigurationError(
                f"Tool {self._name!r} has no handlers", "tool.handlers"
            )
        return Tool(
            name=self._name,
            description=self._description,
            parameters=self._parameters,
            default_handler=self._default,
            channel_handlers=self._handlers,
        )
