"""
Tools the model can invoke.

- ``Tool`` / ``ToolBuilder``: a named action with per-channel handlers.
- ``ToolRegistry``: the tools an agent offers, filtered per channel.
- ``ToolExecutor``: runs a ``ToolCall`` and always yields a ``ToolResult``.
- ``setup_standard_tools``: installs the ``calendar``/``booking``/``crm``
  defaults.

Quick-start example::

    from receptionist.tools import ToolBuilder, ToolRegistry

    registry = ToolRegistry()
    registry.register(
        ToolBuilder()
        .with_name("check_inventory")
        .with_description("Check stock for a product")
        .default(check_inventory)
        .build()
    )
"""

from receptionist.tools.base import ChannelHandlers, Tool, ToolBuilder
from receptionist.tools.executor import ToolExecutor
from receptionist.tools.registry import ToolRegistry
from receptionist.tools.standard import (
    create_booking_tool,
    create_calendar_tool,
    create_crm_tool,
    setup_standard_tools,
)

__all__ = [
    "ChannelHandlers",
    "Tool",
    "ToolBuilder",
    "ToolExecutor",
    "ToolRegistry",
    "create_booking_tool",
    "create_calendar_tool",
    "create_crm_tool",
    "setup_standard_tools",
]
