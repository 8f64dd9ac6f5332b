"""
Tool registry for an agent.

Provides ``ToolRegistry``, the set of tools an agent can offer the model.
Names are unique: registering a name twice raises ``DuplicateToolError``
rather than silently replacing the earlier tool.

Typical usage::

    registry = ToolRegistry()
    registry.register(check_inventory_tool)
    registry.register(send_quote_tool)

    tools = registry.list_available(Channel.SMS)
    handler = registry.resolve_handler("send_quote", Channel.SMS)
"""

from __future__ import annotations

import logging
from typing import Iterator

from receptionist.errors import DuplicateToolError, NoHandlerForChannelError, ToolNotFoundError
from receptionist.models import Channel, ToolHandler
from receptionist.providers.ai import ToolDefinition
from receptionist.tools.base import Tool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry mapping tool names to ``Tool`` objects.

    Attributes:
        _tools: Internal dict of registered tools, in insertion order.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, tool: Tool) -> None:
        """Register *tool*.

        Raises:
            DuplicateToolError: If a tool with the same name is already
                registered. The registry is left unchanged.
        """
        if tool.name in self._tools:
            raise DuplicateToolError(tool.name)
        self._tools[tool.name] = tool
        logger.debug("Registered tool: %r", tool.name)

    def unregister(self, name: str) -> None:
        """Remove a registered tool by name.

        Raises:
            ToolNotFoundError: If the tool is not registered.
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        del self._tools[name]
        logger.debug("Unregistered tool: %r", name)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> Tool | None:
        """Return the tool called *name*, or ``None``."""
        return self._tools.get(name)

    def list_available(self, channel: Channel) -> list[Tool]:
        """Tools usable on *channel*: a handler for it, or a default handler."""
        return [tool for tool in self._tools.values() if tool.available_on(channel)]

    def get_definitions(self, channel: Channel) -> list[ToolDefinition]:
        """Model-facing definitions of the tools available on *channel*."""
        return [tool.definition() for tool in self.list_available(channel)]

    def resolve_handler(self, name: str, channel: Channel) -> ToolHandler:
        """Return the handler to run *name* on *channel*.

        Raises:
            ToolNotFoundError: If no tool is called *name*.
            NoHandlerForChannelError: If the tool has neither a handler for
                *channel* nor a default.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        handler = tool.handler_for(channel)
        if handler is None:
            raise NoHandlerForChannelError(name, channel.value)
        return handler

    def count(self) -> int:
        return len(self._tools)

    def names(self) -> list[str]:
        return list(self._tools)

    def __len__(self) -> int:
        """Return the number of registered tools."""
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        """Return True if *name* is a registered tool."""
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(list(self._tools.values()))
