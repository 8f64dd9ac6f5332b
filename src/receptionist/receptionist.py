"""
Receptionist — the composition root.

Builds providers, tools, the orchestrator and the channel clients from one
``ReceptionistConfig``::

    receptionist = Receptionist(config)
    await receptionist.initialize()
    session = await receptionist.phone.make("+15551234567")
    ...
    await receptionist.dispose()

``clone()`` derives a sibling agent with its own persona and tool registry
that reuses the parent's initialized providers and conversation store.
Providers are reference counted across the family: each is disposed once,
when the last agent holding it is disposed.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Mapping

from receptionist.channels import EmailClient, PhoneClient, SMSClient, VideoClient
from receptionist.config import AgentConfig, AIModelConfig, ReceptionistConfig, ToolsConfig, validate_config
from receptionist.conversation.locks import KeyedLock
from receptionist.conversation.store import ConversationStore, InMemoryConversationStore
from receptionist.errors import ReceptionistError
from receptionist.orchestrator import AIOrchestrator
from receptionist.providers.ai import AIModelProvider, create_ai_provider
from receptionist.providers.base import ProviderKind, ProviderRegistry
from receptionist.providers.calendar import GoogleCalendarProvider
from receptionist.providers.communication import (
    CommunicationProvider,
    SendGridProvider,
    TwilioProvider,
)
from receptionist.providers.crm import HttpCRMProvider
from receptionist.tools.executor import ToolExecutor
from receptionist.tools.registry import ToolRegistry
from receptionist.tools.standard import setup_standard_tools

logger = logging.getLogger(__name__)


def _merge(base: Any, override: Any) -> Any:
    if override is None:
        return base
    if isinstance(override, Mapping):
        return dataclasses.replace(base, **dict(override))
    return override


class Receptionist:
    """One agent reachable over phone, SMS, email and video.

    Attributes:
        config: The validated configuration.
        phone / sms / email / video: Channel clients, available after
            ``initialize()``; ``None`` when no provider supports the channel.
    """

    def __init__(
        self,
        config: ReceptionistConfig,
        *,
        _providers: ProviderRegistry | None = None,
        _store: ConversationStore | None = None,
    ) -> None:
        validate_config(config)
        self.config = config
        self._providers = _providers
        self._store = _store or config.conversation_store
        self._tool_registry: ToolRegistry | None = None
        self._orchestrator: AIOrchestrator | None = None
        self._initialized = False
        self._disposed = False

        self.phone: PhoneClient | None = None
        self.sms: SMSClient | None = None
        self.email: EmailClient | None = None
        self.video: VideoClient | None = None

        if config.debug:
            logging.getLogger("receptionist").setLevel(logging.DEBUG)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def agent(self) -> AgentConfig:
        return self.config.agent

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def tool_registry(self) -> ToolRegistry:
        """The agent's tools; register or unregister at runtime."""
        self._ensure_initialized()
        assert self._tool_registry is not None
        return self._tool_registry

    @property
    def orchestrator(self) -> AIOrchestrator:
        self._ensure_initialized()
        assert self._orchestrator is not None
        return self._orchestrator

    @property
    def providers(self) -> ProviderRegistry:
        self._ensure_initialized()
        assert self._providers is not None
        return self._providers

    @property
    def store(self) -> ConversationStore:
        self._ensure_initialized()
        assert self._store is not None
        return self._store

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Initialize providers, install tools and build the channel clients.

        Safe to call more than once.

        Raises:
            ConfigurationError: On a duplicate tool name or a missing provider.
            ReceptionistError: If the receptionist has been disposed.
        """
        if self._initialized:
            return
        if self._disposed:
            raise ReceptionistError("Receptionist has been disposed")

        config = self.config
        if self._store is None:
            self._store = InMemoryConversationStore()
        if self._providers is None:
            self._providers = self._build_providers()
        try:
            await self._providers.initialize_all()
        except Exception:
            await self._providers.release_all()
            self._disposed = True
            raise

        registry = ToolRegistry()
        try:
            installed = setup_standard_tools(registry, config.tools, self._providers)
            # Custom tools after the defaults; a clash raises DuplicateToolError.
            for tool in config.tools.custom:
                registry.register(tool)
        except Exception:
            await self._providers.release_all()
            self._disposed = True
            raise
        self._tool_registry = registry

        executor = ToolExecutor(
            registry,
            timeout=config.tool_timeout,
            on_tool_execute=config.on_tool_execute,
            on_tool_error=config.on_tool_error,
        )
        self._orchestrator = AIOrchestrator(
            provider=self._providers.require(ProviderKind.AI, AIModelProvider),
            registry=registry,
            executor=executor,
            store=self._store,
            agent=config.agent,
            max_iterations=config.max_iterations,
            turn_timeout=config.turn_timeout,
        )
        self._build_channels()
        self._initialized = True
        logger.info(
            "Receptionist %r initialized: providers=%d tools=%d (defaults=%s)",
            config.agent.name,
            len(self._providers),
            registry.count(),
            installed,
        )

    async def dispose(self) -> None:
        """Release this agent's providers; shared providers survive until their last holder goes."""
        if self._disposed:
            return
        self._disposed = True
        self._initialized = False
        if self._providers is not None:
            await self._providers.release_all()
        logger.info("Receptionist %r disposed", self.config.agent.name)

    async def health(self) -> dict[str, bool]:
        return await self.providers.health()

    async def __aenter__(self) -> Receptionist:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()

    # ------------------------------------------------------------------
    # Clone
    # ------------------------------------------------------------------

    def clone(
        self,
        agent: AgentConfig | Mapping[str, Any] | None = None,
        model: AIModelConfig | Mapping[str, Any] | None = None,
        tools: ToolsConfig | Mapping[str, Any] | None = None,
        **changes: Any,
    ) -> Receptionist:
        """Derive a sibling agent sharing this one's providers and store.

        Overrides are merged over this agent's configuration: a mapping
        replaces only the fields it names, a config object replaces the
        section. The clone gets its own tool registry; with a ``model``
        override it also gets its own AI provider. Call ``initialize()`` on
        the clone before use.

        Raises:
            ReceptionistError: If this agent is not initialized.
        """
        self._ensure_initialized()
        assert self._providers is not None
        if "providers" in changes:
            raise ReceptionistError("A clone shares its parent's providers; they cannot be overridden")

        config = dataclasses.replace(
            self.config,
            agent=self.config.agent.merged(agent),
            model=_merge(self.config.model, model),
            tools=_merge(self.config.tools, tools),
            **changes,
        )
        validate_config(config)

        if model is None:
            shared = self._providers.share()
        else:
            shared = self._providers.share(
                kinds={kind for kind in ProviderKind if kind is not ProviderKind.AI}
            )
            shared.add(create_ai_provider(config.model))

        store = changes.get("conversation_store") or self._store
        logger.info("Cloned receptionist %r as %r", self.config.agent.name, config.agent.name)
        return Receptionist(config, _providers=shared, _store=store)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise ReceptionistError("Receptionist is not initialized. Call initialize() first.")

    def _build_providers(self) -> ProviderRegistry:
        config = self.config.providers
        registry = ProviderRegistry()
        registry.add(create_ai_provider(self.config.model))
        if config.twilio is not None:
            registry.add(TwilioProvider(config.twilio))
        if config.sendgrid is not None:
            registry.add(SendGridProvider(config.sendgrid))
        if config.google_calendar is not None:
            registry.add(GoogleCalendarProvider(config.google_calendar))
        if config.crm is not None:
            registry.add(HttpCRMProvider(config.crm))
        for provider in config.custom:
            registry.add(provider)
        return registry

    def _communication(
        self, preferred: str, unsuitable: type[CommunicationProvider]
    ) -> CommunicationProvider | None:
        """Return the provider named *preferred*, else the first other suitable one."""
        assert self._providers is not None
        provider = self._providers.get(ProviderKind.COMMUNICATION, preferred)
        if isinstance(provider, CommunicationProvider):
            return provider
        for candidate in self._providers.of_kind(ProviderKind.COMMUNICATION):
            if isinstance(candidate, CommunicationProvider) and not isinstance(candidate, unsuitable):
                return candidate
        return None

    def _build_channels(self) -> None:
        assert self._orchestrator is not None and self._store is not None
        config = self.config
        locks = KeyedLock()
        common: dict[str, Any] = {
            "locks": locks,
            "webhook_base_url": config.webhook_base_url,
            "on_conversation_start": config.on_conversation_start,
            "on_conversation_end": config.on_conversation_end,
        }

        voice = self._communication("twilio", SendGridProvider)
        if voice is not None:
            self.phone = PhoneClient(
                self._orchestrator,
                self._store,
                voice,
                greeting=f"Hello, this is {config.agent.name}. How can I help you today?",
                fallback_utterance=config.fallback_utterance,
                **common,
            )
            self.sms = SMSClient(self._orchestrator, self._store, voice, **common)
            self.video = VideoClient(
                self._orchestrator,
                self._store,
                voice,
                fallback_utterance=config.fallback_utterance,
                **common,
            )
        mail = self._communication("sendgrid", TwilioProvider)
        if mail is not None:
            self.email = EmailClient(self._orchestrator, self._store, mail, **common)
