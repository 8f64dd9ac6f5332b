"""
Provider lifecycle contract and registration.

Every infrastructure adapter (telephony, model backend, calendar, CRM, ...)
derives from ``BaseProvider`` and follows the same lifecycle:

- construction has no side effects;
- ``initialize()`` prepares client state; repeated calls are no-ops;
- ``health_check()`` returns ``False`` (never raises) when uninitialized or
  unhealthy;
- ``dispose()`` releases client state and marks the provider uninitialized.

``ProviderRegistry`` groups initialized providers by ``ProviderKind``. A
cloned ``Receptionist`` receives a registry produced by ``share()`` so that
each provider is disposed exactly once, when its last holder releases it.
"""

from __future__ import annotations

import logging
from abc import ABC
from enum import Enum
from typing import ClassVar, Iterator, TypeVar

from receptionist.errors import ConfigurationError, ProviderNotInitializedError

logger = logging.getLogger(__name__)


class ProviderKind(str, Enum):
    """Capability a provider offers."""

    COMMUNICATION = "communication"
    AI = "ai"
    CALENDAR = "calendar"
    CRM = "crm"
    STORAGE = "storage"
    CUSTOM = "custom"


class BaseProvider(ABC):
    """Base class for all providers.

    Subclasses set ``kind`` and override the ``_setup``/``_teardown``/``_check``
    hooks. Capability methods must call ``ensure_initialized()`` first.
    """

    kind: ClassVar[ProviderKind] = ProviderKind.CUSTOM

    def __init__(self, name: str) -> None:
        self.name = name
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        if self._initialized:
            logger.debug("Provider %r already initialized; skipping", self.name)
            return
        await self._setup()
        self._initialized = True
        logger.info("Provider %r (%s) initialized", self.name, self.kind.value)

    async def dispose(self) -> None:
        if not self._initialized:
            return
        try:
            await self._teardown()
        finally:
            self._initialized = False
            logger.info("Provider %r disposed", self.name)

    async def health_check(self) -> bool:
        if not self._initialized:
            return False
        try:
            return await self._check()
        except Exception as exc:
            logger.warning("Health check failed for provider %r: %s", self.name, exc)
            return False

    def ensure_initialized(self) -> None:
        if not self._initialized:
            raise ProviderNotInitializedError(self.name)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def _setup(self) -> None:
        """Create client state. Called once by ``initialize()``."""

    async def _teardown(self) -> None:
        """Release client state. Called once by ``dispose()``."""

    async def _check(self) -> bool:
        return True

    def __repr__(self) -> str:
        state = "initialized" if self._initialized else "uninitialized"
        return f"<{type(self).__name__} name={self.name!r} {state}>"


P = TypeVar("P", bound=BaseProvider)


class _Ownership:
    """Reference counts for providers shared across a registry family."""

    def __init__(self) -> None:
        self.counts: dict[int, int] = {}

    def acquire(self, provider: BaseProvider) -> None:
        self.counts[id(provider)] = self.counts.get(id(provider), 0) + 1

    def release(self, provider: BaseProvider) -> bool:
        """Drop one reference; return True if it was the last one."""
        remaining = self.counts.get(id(provider), 0) - 1
        if remaining <= 0:
            self.counts.pop(id(provider), None)
            return True
        self.counts[id(provider)] = remaining
        return False


class ProviderRegistry:
    """Named providers grouped by kind, with shared ownership.

    Attributes:
        _providers: ``kind -> {name -> provider}`` in registration order.
    """

    def __init__(self, _ownership: _Ownership | None = None) -> None:
        self._providers: dict[ProviderKind, dict[str, BaseProvider]] = {}
        self._ownership = _ownership or _Ownership()
        self._released = False

    def add(self, provider: BaseProvider) -> None:
        """Register *provider* under its kind.

        Raises:
            ConfigurationError: If a provider of the same kind and name exists.
        """
        by_name = self._providers.setdefault(provider.kind, {})
        if provider.name in by_name:
            raise ConfigurationError(
                f"A {provider.kind.value} provider named {provider.name!r} is already registered",
                f"providers.{provider.kind.value}",
            )
        by_name[provider.name] = provider
        self._ownership.acquire(provider)

    def get(self, kind: ProviderKind, name: str | None = None) -> BaseProvider | None:
        """Return the named provider of *kind*, or the first one if *name* is None."""
        by_name = self._providers.get(kind, {})
        if name is not None:
            return by_name.get(name)
        return next(iter(by_name.values()), None)

    def require(self, kind: ProviderKind, expected: type[P], name: str | None = None) -> P:
        """Like ``get`` but raises if missing or of the wrong type."""
        provider = self.get(kind, name)
        if not isinstance(provider, expected):
            label = f"{kind.value} provider" + (f" {name!r}" if name else "")
            raise ConfigurationError(
                f"No {label} of type {expected.__name__} is configured",
                f"providers.{kind.value}",
            )
        return provider

    def of_kind(self, kind: ProviderKind) -> list[BaseProvider]:
        return list(self._providers.get(kind, {}).values())

    def __iter__(self) -> Iterator[BaseProvider]:
        for by_name in self._providers.values():
            yield from by_name.values()

    def __len__(self) -> int:
        return sum(len(by_name) for by_name in self._providers.values())

    async def initialize_all(self) -> None:
        for provider in self:
            await provider.initialize()

    async def health(self) -> dict[str, bool]:
        return {provider.name: await provider.health_check() for provider in self}

    def share(self, kinds: set[ProviderKind] | None = None) -> ProviderRegistry:
        """Return a registry holding the same provider instances.

        Each shared provider gains one reference; it is disposed only when
        every registry holding it has called ``release_all()``.

        Args:
            kinds: Restrict sharing to these kinds. ``None`` shares all.
        """
        shared = ProviderRegistry(_ownership=self._ownership)
        for provider in self:
            if kinds is None or provider.kind in kinds:
                shared.add(provider)
        return shared

    async def release_all(self) -> None:
        """Release this registry's references, disposing unreferenced providers."""
        if self._released:
            return
        self._released = True
        for provider in list(self):
            if self._ownership.release(provider):
                await provider.dispose()
            else:
                logger.debug("Provider %r still shared; not disposing", provider.name)
        self._providers.clear()
