"""
Configuration for the AI receptionist.

Two layers:

- Typed, frozen dataclasses (``AgentConfig``, ``AIModelConfig``,
  ``ToolsConfig``, ``ProvidersConfig``, ``ReceptionistConfig``) consumed by
  ``Receptionist``. ``validate_config`` checks them progressively and raises
  ``ConfigurationError`` naming the offending field.
- ``Settings``, loaded from ``RECEPTIONIST_*`` environment variables (and an
  optional ``.env`` file) for the webhook server entry point.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Callable, Mapping

from pydantic_settings import BaseSettings, SettingsConfigDict

from receptionist.errors import ConfigurationError
from receptionist.models import ConversationEvent, ToolErrorEvent, ToolExecutionEvent

if TYPE_CHECKING:
    from receptionist.conversation.store import ConversationStore
    from receptionist.providers.base import BaseProvider
    from receptionist.tools.base import Tool

# Accepted by validation; the AI factory decides which are implemented.
KNOWN_MODEL_PROVIDERS = ("openai", "openrouter", "anthropic", "google")
KNOWN_DEFAULT_TOOLS = ("calendar", "booking", "crm")
TONES = ("formal", "casual", "friendly", "professional")

_E164 = re.compile(r"^\+[1-9]\d{1,14}$")


# ---------------------------------------------------------------------------
# Agent / model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AgentConfig:
    """Identity and persona of an agent.

    Attributes:
        name: Agent display name, e.g. ``"Sarah"``.
        role: Job description, e.g. ``"Sales Representative"``.
        personality: Free-text personality descriptor.
        instructions: Free-text operating instructions.
        tone: One of ``formal``, ``casual``, ``friendly``, ``professional``.
        system_prompt: Fully rendered system prompt; when set it replaces the
            prompt synthesised from the other fields.
    """

    name: str
    role: str
    personality: str | None = None
    instructions: str | None = None
    tone: str | None = None
    system_prompt: str | None = None

    def merged(self, overrides: AgentConfig | Mapping[str, Any] | None) -> AgentConfig:
        """Return a copy with *overrides* applied over this config."""
        if overrides is None:
            return self
        if isinstance(overrides, AgentConfig):
            return overrides
        return replace(self, **dict(overrides))


@dataclass(frozen=True)
class AIModelConfig:
    """Model backend selection, credentials and sampling parameters."""

    provider: str
    api_key: str
    model: str
    temperature: float = 0.7
    max_tokens: int | None = None
    base_url: str | None = None
    timeout: float = 60.0


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BookingToolConfig:
    api_url: str
    api_key: str


@dataclass(frozen=True)
class ToolsConfig:
    """Tool selection.

    Attributes:
        defaults: Names of standard tools to install (``calendar``,
            ``booking``, ``crm``). Installed before ``custom``.
        custom: Caller-built ``Tool`` objects.
        booking: Backend for the ``booking`` standard tool.
        appointment_minutes: Default slot length used by the calendar tool.
    """

    defaults: tuple[str, ...] = ()
    custom: tuple[Tool, ...] = ()
    booking: BookingToolConfig | None = None
    appointment_minutes: int = 60


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TwilioConfig:
    account_sid: str
    auth_token: str
    phone_number: str
    api_base_url: str = "https://api.twilio.com/2010-04-01"
    video_base_url: str = "https://video.twilio.com/v1"


@dataclass(frozen=True)
class SendGridConfig:
    api_key: str
    from_email: str
    from_name: str | None = None
    api_base_url: str = "https://api.sendgrid.com/v3"


@dataclass(frozen=True)
class GoogleCalendarConfig:
    """OAuth refresh-token credentials plus the business day used for slots."""

    client_id: str
    client_secret: str
    refresh_token: str
    calendar_id: str = "primary"
    timezone: str = "UTC"
    work_day_start_hour: int = 9
    work_day_end_hour: int = 17


@dataclass(frozen=True)
class CRMConfig:
    api_url: str
    api_key: str
    name: str = "crm"


@dataclass(frozen=True)
class ProvidersConfig:
    """Provider credentials grouped by capability, plus caller-built providers."""

    twilio: TwilioConfig | None = None
    sendgrid: SendGridConfig | None = None
    google_calendar: GoogleCalendarConfig | None = None
    crm: CRMConfig | None = None
    custom: tuple[BaseProvider, ...] = ()


# ---------------------------------------------------------------------------
# Top level
# ---------------------------------------------------------------------------

ToolExecuteCallback = Callable[[ToolExecutionEvent], None]
ToolErrorCallback = Callable[[ToolErrorEvent], None]
ConversationCallback = Callable[[ConversationEvent], None]

DEFAULT_FALLBACK_UTTERANCE = (
    "I'm sorry, I'm having trouble right now. Please hold on or try again in a moment."
)


@dataclass(frozen=True)
class ReceptionistConfig:
    """Everything a ``Receptionist`` is built from."""

    agent: AgentConfig
    model: AIModelConfig
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    providers: ProvidersConfig = field(default_factory=ProvidersConfig)
    conversation_store: ConversationStore | None = None
    webhook_base_url: str = "http://localhost:8000"
    turn_timeout: float | None = 30.0
    tool_timeout: float | None = 15.0
    max_iterations: int = 10
    fallback_utterance: str = DEFAULT_FALLBACK_UTTERANCE
    debug: bool = False
    on_tool_execute: ToolExecuteCallback | None = None
    on_tool_error: ToolErrorCallback | None = None
    on_conversation_start: ConversationCallback | None = None
    on_conversation_end: ConversationCallback | None = None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_agent_config(agent: AgentConfig | None) -> None:
    if agent is None:
        raise ConfigurationError("Agent configuration is required", "agent")
    if not agent.name or not isinstance(agent.name, str):
        raise ConfigurationError("Agent name is required and must be a string", "agent.name")
    if not agent.role or not isinstance(agent.role, str):
        raise ConfigurationError("Agent role is required and must be a string", "agent.role")
    if agent.tone is not None and agent.tone not in TONES:
        raise ConfigurationError(
            f"Agent tone must be one of: {', '.join(TONES)}", "agent.tone"
        )


def validate_model_config(model: AIModelConfig | None) -> None:
    if model is None:
        raise ConfigurationError("Model configuration is required", "model")
    if model.provider not in KNOWN_MODEL_PROVIDERS:
        raise ConfigurationError(
            f"AI provider must be one of: {', '.join(KNOWN_MODEL_PROVIDERS)}",
            "model.provider",
        )
    if not model.api_key or not isinstance(model.api_key, str):
        raise ConfigurationError(
            "AI model api_key is required and must be a string", "model.api_key"
        )
    if not model.model or not isinstance(model.model, str):
        raise ConfigurationError(
            "AI model name is required and must be a string", "model.model"
        )
    if not 0 <= model.temperature <= 2:
        raise ConfigurationError(
            "AI model temperature must be a number between 0 and 2",
            "model.temperature",
        )
    if model.max_tokens is not None and model.max_tokens <= 0:
        raise ConfigurationError(
            "AI model max_tokens must be a positive number", "model.max_tokens"
        )


def validate_tools_config(tools: ToolsConfig) -> None:
    if not tools.defaults and not tools.custom:
        raise ConfigurationError(
            "At least one tool source (defaults or custom) must be configured",
            "tools",
        )
    for name in tools.defaults:
        if name not in KNOWN_DEFAULT_TOOLS:
            raise ConfigurationError(
                f"Unknown standard tool {name!r}; expected one of: "
                f"{', '.join(KNOWN_DEFAULT_TOOLS)}",
                "tools.defaults",
            )
    if tools.appointment_minutes <= 0:
        raise ConfigurationError(
            "appointment_minutes must be positive", "tools.appointment_minutes"
        )


def validate_providers_config(providers: ProvidersConfig) -> None:
    twilio = providers.twilio
    if twilio is not None:
        if not twilio.account_sid:
            raise ConfigurationError("Twilio account_sid is required", "providers.twilio.account_sid")
        if not twilio.auth_token:
            raise ConfigurationError("Twilio auth_token is required", "providers.twilio.auth_token")
        if not _E164.match(twilio.phone_number or ""):
            raise ConfigurationError(
                "Twilio phone_number must be in E.164 format (e.g., +1234567890)",
                "providers.twilio.phone_number",
            )
    sendgrid = providers.sendgrid
    if sendgrid is not None:
        if not sendgrid.api_key:
            raise ConfigurationError("SendGrid api_key is required", "providers.sendgrid.api_key")
        if "@" not in (sendgrid.from_email or ""):
            raise ConfigurationError(
                "SendGrid from_email must be an email address",
                "providers.sendgrid.from_email",
            )
    google = providers.google_calendar
    if google is not None:
        for attr in ("client_id", "client_secret", "refresh_token"):
            if not getattr(google, attr):
                raise ConfigurationError(
                    f"Google Calendar {attr} is required",
                    f"providers.google_calendar.{attr}",
                )
        if not 0 <= google.work_day_start_hour < google.work_day_end_hour <= 24:
            raise ConfigurationError(
                "Google Calendar work day hours must satisfy 0 <= start < end <= 24",
                "providers.google_calendar.work_day_start_hour",
            )


def validate_config(config: ReceptionistConfig) -> None:
    """Validate a full ``ReceptionistConfig``.

    Raises:
        ConfigurationError: On the first invalid field found.
    """
    validate_agent_config(config.agent)
    validate_model_config(config.model)
    validate_tools_config(config.tools)
    validate_providers_config(config.providers)
    if config.max_iterations <= 0:
        raise ConfigurationError("max_iterations must be positive", "max_iterations")
    if config.turn_timeout is not None and config.turn_timeout <= 0:
        raise ConfigurationError("turn_timeout must be positive", "turn_timeout")


# ---------------------------------------------------------------------------
# Environment settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Server settings loaded from ``RECEPTIONIST_*`` environment variables."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    webhook_base_url: str = "http://localhost:8000"
    log_level: str = "INFO"

    # Agent
    agent_name: str = "Sarah"
    agent_role: str = "Receptionist"
    agent_personality: str | None = None
    agent_instructions: str | None = None
    agent_tone: str | None = None

    # Model
    model_provider: str = "openai"
    model_api_key: str = ""
    model_name: str = "gpt-4o-mini"
    model_temperature: float = 0.7
    model_max_tokens: int | None = None
    model_base_url: str | None = None

    # Tools
    tool_defaults: list[str] = ["calendar"]
    turn_timeout: float = 30.0

    # Twilio
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_phone_number: str | None = None

    # SendGrid
    sendgrid_api_key: str | None = None
    sendgrid_from_email: str | None = None

    # Google Calendar
    google_client_id: str | None = None
    google_client_secret: str | None = None
    google_refresh_token: str | None = None
    google_calendar_id: str = "primary"
    google_timezone: str = "UTC"

    # CRM
    crm_api_url: str | None = None
    crm_api_key: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="RECEPTIONIST_",
        env_file=".env",
        env_file_encoding="utf-8",
        protected_namespaces=(),
    )

    def to_config(self) -> ReceptionistConfig:
        """Build a ``ReceptionistConfig`` from these settings."""
        twilio = None
        if self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number:
            twilio = TwilioConfig(
                account_sid=self.twilio_account_sid,
                auth_token=self.twilio_auth_token,
                phone_number=self.twilio_phone_number,
            )
        sendgrid = None
        if self.sendgrid_api_key and self.sendgrid_from_email:
            sendgrid = SendGridConfig(
                api_key=self.sendgrid_api_key, from_email=self.sendgrid_from_email
            )
        google = None
        if self.google_client_id and self.google_client_secret and self.google_refresh_token:
            google = GoogleCalendarConfig(
                client_id=self.google_client_id,
                client_secret=self.google_client_secret,
                refresh_token=self.google_refresh_token,
                calendar_id=self.google_calendar_id,
                timezone=self.google_timezone,
            )
        crm = None
        if self.crm_api_url and self.crm_api_key:
            crm = CRMConfig(api_url=self.crm_api_url, api_key=self.crm_api_key)

        return ReceptionistConfig(
            agent=AgentConfig(
                name=self.agent_name,
                role=self.agent_role,
                personality=self.agent_personality,
                instructions=self.agent_instructions,
                tone=self.agent_tone,
            ),
            model=AIModelConfig(
                provider=self.model_provider,
                api_key=self.model_api_key,
                model=self.model_name,
                temperature=self.model_temperature,
                max_tokens=self.model_max_tokens,
                base_url=self.model_base_url,
            ),
            tools=ToolsConfig(defaults=tuple(self.tool_defaults)),
            providers=ProvidersConfig(
                twilio=twilio, sendgrid=sendgrid, google_calendar=google, crm=crm
            ),
            webhook_base_url=self.webhook_base_url,
            turn_timeout=self.turn_timeout,
        )


def get_settings() -> Settings:
    """Get the application settings instance."""
    return Settings()
