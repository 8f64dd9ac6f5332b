"""
Infrastructure providers behind a uniform lifecycle contract.

See :mod:`receptionist.providers.base` for the lifecycle and sharing rules.
"""

from receptionist.providers.ai import (
    AIBackend,
    AIModelProvider,
    AIResponse,
    LLMAPIError,
    LLMConnectionError,
    LLMError,
    LLMRateLimitError,
    LLMTimeoutError,
    OpenAICompatibleProvider,
    OpenRouterProvider,
    ToolDefinition,
    create_ai_provider,
)
from receptionist.providers.base import BaseProvider, ProviderKind, ProviderRegistry
from receptionist.providers.calendar import (
    CalendarEvent,
    CalendarProvider,
    GoogleCalendarProvider,
)
from receptionist.providers.communication import (
    CommunicationProvider,
    SendGridProvider,
    TwilioProvider,
)
from receptionist.providers.crm import CRMProvider, HttpCRMProvider

__all__ = [
    "AIBackend",
    "AIModelProvider",
    "AIResponse",
    "BaseProvider",
    "CRMProvider",
    "CalendarEvent",
    "CalendarProvider",
    "CommunicationProvider",
    "GoogleCalendarProvider",
    "HttpCRMProvider",
    "LLMAPIError",
    "LLMConnectionError",
    "LLMError",
    "LLMRateLimitError",
    "LLMTimeoutError",
    "OpenAICompatibleProvider",
    "OpenRouterProvider",
    "ProviderKind",
    "ProviderRegistry",
    "SendGridProvider",
    "ToolDefinition",
    "TwilioProvider",
    "create_ai_provider",
]
