"""
AI Receptionist SDK.

One agent persona, reachable over phone, SMS, email and video, driving a
tool-calling model loop with per-channel response shaping::

    from receptionist import AgentConfig, AIModelConfig, Receptionist, ReceptionistConfig, ToolsConfig

    config = ReceptionistConfig(
        agent=AgentConfig(name="Sarah", role="Receptionist"),
        model=AIModelConfig(provider="openai", api_key="sk-...", model="gpt-4o-mini"),
        tools=ToolsConfig(defaults=("calendar",)),
    )
    async with Receptionist(config) as receptionist:
        ...
"""

from receptionist.config import (
    AgentConfig,
    AIModelConfig,
    ProvidersConfig,
    ReceptionistConfig,
    Settings,
    ToolsConfig,
)
from receptionist.errors import (
    ConfigurationError,
    ConversationNotFoundError,
    DuplicateToolError,
    NoHandlerForChannelError,
    ReceptionistError,
    ToolNotFoundError,
    TurnError,
)
from receptionist.models import (
    Channel,
    ChannelResponse,
    Conversation,
    ConversationStatus,
    ExecutionContext,
    Message,
    MessageRole,
    ToolCall,
    ToolResult,
)
from receptionist.orchestrator import AIOrchestrator, TurnResult
from receptionist.receptionist import Receptionist
from receptionist.tools import Tool, ToolBuilder, ToolRegistry

__version__ = "0.1.0"

__all__ = [
    "AIModelConfig",
    "AIOrchestrator",
    "AgentConfig",
    "Channel",
    "ChannelResponse",
    "ConfigurationError",
    "Conversation",
    "ConversationNotFoundError",
    "ConversationStatus",
    "DuplicateToolError",
    "ExecutionContext",
    "Message",
    "MessageRole",
    "NoHandlerForChannelError",
    "ProvidersConfig",
    "Receptionist",
    "ReceptionistConfig",
    "ReceptionistError",
    "Settings",
    "Tool",
    "ToolBuilder",
    "ToolCall",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolResult",
    "ToolsConfig",
    "TurnError",
    "TurnResult",
]
