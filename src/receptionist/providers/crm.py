"""CRM provider: lead capture and notes against a REST backend."""

from __future__ import annotations

import logging
from abc import abstractmethod
from typing import Any

import httpx

from receptionist.config import CRMConfig
from receptionist.errors import ProviderError
from receptionist.providers.base import BaseProvider, ProviderKind

logger = logging.getLogger(__name__)


class CRMProvider(BaseProvider):
    kind = ProviderKind.CRM

    @abstractmethod
    async def create_lead(self, lead: dict[str, Any]) -> str:
        """Create a lead record; return its id."""

    @abstractmethod
    async def add_note(self, record_id: str, note: str) -> None:
        """Attach a free-text note to a record."""


class HttpCRMProvider(CRMProvider):
    """CRM backend exposing ``POST /leads`` and ``POST /leads/{id}/notes``."""

    def __init__(self, config: CRMConfig, timeout: float = 10.0) -> None:
        super().__init__(config.name)
        self.config = config
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _setup(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.config.api_url.rstrip("/"),
            headers={"Authorization": f"Bearer {self.config.api_key}"},
            timeout=self.timeout,
        )

    async def _teardown(self) -> None:
        if self._client is not None:
            await self._client.aclose()
        self._client = None

    async def create_lead(self, lead: dict[str, Any]) -> str:
        data = await self._post("/leads", lead)
        record_id = str(data["id"])
        logger.info("CRM lead %s created", record_id)
        return record_id

    async def add_note(self, record_id: str, note: str) -> None:
        await self._post(f"/leads/{record_id}/notes", {"note": note})

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.ensure_initialized()
        assert self._client is not None
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise ProviderError(
                f"CRM request {path} failed with status {status}", status_code=status
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"CRM request {path} failed: {exc}") from exc
        return response.json() if response.content else {}
