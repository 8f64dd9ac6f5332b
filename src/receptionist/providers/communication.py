"""
Communication providers: telephony, SMS, email and video transport.

``CommunicationProvider`` declares every transport operation a channel client
may delegate to; a concrete provider implements the subset its vendor offers
and the rest raise ``UnsupportedOperationError``.

- ``TwilioProvider``: voice calls, SMS and video rooms over the Twilio REST
  API (form-encoded requests, HTTP basic auth), plus TwiML rendering for
  voice webhook responses.
- ``SendGridProvider``: transactional email over the SendGrid v3 API.

Both use ``httpx.AsyncClient``; the client is created in ``initialize()`` and
closed in ``dispose()``.
"""

from __future__ import annotations

import logging
from typing import Any
from xml.sax.saxutils import escape, quoteattr

import httpx

from receptionist.config import SendGridConfig, TwilioConfig
from receptionist.errors import ProviderError, UnsupportedOperationError
from receptionist.providers.base import BaseProvider, ProviderKind

logger = logging.getLogger(__name__)


class CommunicationProvider(BaseProvider):
    """Transport operations used by the channel clients."""

    kind = ProviderKind.COMMUNICATION

    def __init__(self, name: str, timeout: float = 10.0) -> None:
        super().__init__(name)
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Transport operations
    # ------------------------------------------------------------------

    async def make_call(
        self, to: str, webhook_url: str, status_callback: str | None = None
    ) -> str:
        """Originate a call; return the provider's call id."""
        raise UnsupportedOperationError(f"{self.name} does not support voice calls")

    async def end_call(self, call_sid: str) -> None:
        raise UnsupportedOperationError(f"{self.name} does not support voice calls")

    def render_voice_response(
        self, text: str, gather_action: str | None = None, hangup: bool = False
    ) -> str:
        """Render *text* as the provider's voice webhook response document."""
        raise UnsupportedOperationError(f"{self.name} does not support voice calls")

    async def send_sms(
        self, to: str, body: str, status_callback: str | None = None
    ) -> str:
        """Send an SMS; return the provider's message id."""
        raise UnsupportedOperationError(f"{self.name} does not support SMS")

    async def send_email(
        self, to: str, subject: str, text: str, html: str | None = None
    ) -> str:
        """Send an email; return the provider's message id."""
        raise UnsupportedOperationError(f"{self.name} does not support email")

    async def create_video_room(
        self, unique_name: str, status_callback: str | None = None
    ) -> str:
        """Open a video session; return the provider's room id."""
        raise UnsupportedOperationError(f"{self.name} does not support video")

    async def complete_video_room(self, room_sid: str) -> None:
        raise UnsupportedOperationError(f"{self.name} does not support video")

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _teardown(self) -> None:
        if self._client is not None:
            await self._client.aclose()
        self._client = None

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        self.ensure_initialized()
        assert self._client is not None
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.error("%s %s %s failed with status %d", self.name, method, url, status)
            raise ProviderError(
                f"{self.name} request failed with status {status}", status_code=status
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("%s %s %s failed: %s", self.name, method, url, exc)
            raise ProviderError(f"{self.name} request failed: {exc}") from exc
        return response


class TwilioProvider(CommunicationProvider):
    """Twilio voice, SMS and video over the REST API."""

    def __init__(
        self, config: TwilioConfig, name: str = "twilio", timeout: float = 10.0
    ) -> None:
        super().__init__(name, timeout=timeout)
        self.config = config

    @property
    def phone_number(self) -> str:
        return self.config.phone_number

    @property
    def _account_url(self) -> str:
        return f"{self.config.api_base_url}/Accounts/{self.config.account_sid}"

    async def _setup(self) -> None:
        self._client = httpx.AsyncClient(
            auth=(self.config.account_sid, self.config.auth_token),
            timeout=self.timeout,
        )

    async def _check(self) -> bool:
        await self._request("GET", f"{self._account_url}.json")
        return True

    async def make_call(
        self, to: str, webhook_url: str, status_callback: str | None = None
    ) -> str:
        data = {"To": to, "From": self.config.phone_number, "Url": webhook_url, "Method": "POST"}
        if status_callback:
            data["StatusCallback"] = status_callback
            data["StatusCallbackMethod"] = "POST"
        response = await self._request("POST", f"{self._account_url}/Calls.json", data=data)
        call_sid = response.json()["sid"]
        logger.info("Twilio call %s created to %s", call_sid, to)
        return call_sid

    async def end_call(self, call_sid: str) -> None:
        await self._request(
            "POST",
            f"{self._account_url}/Calls/{call_sid}.json",
            data={"Status": "completed"},
        )
        logger.info("Twilio call %s completed", call_sid)

    def render_voice_response(
        self, text: str, gather_action: str | None = None, hangup: bool = False
    ) -> str:
        """Render TwiML: ``<Say>`` the text, then gather speech or hang up."""
        parts = ['<?xml version="1.0" encoding="UTF-8"?>', "<Response>"]
        if gather_action and not hangup:
            parts.append(
                f'<Gather input="speech" action={quoteattr(gather_action)} method="POST">'
                f"<Say>{escape(text)}</Say></Gather>"
            )
        else:
            parts.append(f"<Say>{escape(text)}</Say>")
        if hangup:
            parts.append("<Hangup/>")
        parts.append("</Response>")
        return "".join(parts)

    async def send_sms(
        self, to: str, body: str, status_callback: str | None = None
    ) -> str:
        data = {"To": to, "From": self.config.phone_number, "Body": body}
        if status_callback:
            data["StatusCallback"] = status_callback
        response = await self._request("POST", f"{self._account_url}/Messages.json", data=data)
        message_sid = response.json()["sid"]
        logger.info("Twilio SMS %s queued to %s", message_sid, to)
        return message_sid

    async def create_video_room(
        self, unique_name: str, status_callback: str | None = None
    ) -> str:
        data = {"UniqueName": unique_name, "Type": "group"}
        if status_callback:
            data["StatusCallback"] = status_callback
        response = await self._request("POST", f"{self.config.video_base_url}/Rooms", data=data)
        room_sid = response.json()["sid"]
        logger.info("Twilio video room %s created (%s)", room_sid, unique_name)
        return room_sid

    async def complete_video_room(self, room_sid: str) -> None:
        await self._request(
            "POST",
            f"{self.config.video_base_url}/Rooms/{room_sid}",
            data={"Status": "completed"},
        )


class SendGridProvider(CommunicationProvider):
    """Transactional email through SendGrid."""

    def __init__(
        self, config: SendGridConfig, name: str = "sendgrid", timeout: float = 10.0
    ) -> None:
        super().__init__(name, timeout=timeout)
        self.config = config

    async def _setup(self) -> None:
        self._client = httpx.AsyncClient(
            headers={"Authorization": f"Bearer {self.config.api_key}"},
            timeout=self.timeout,
        )

    async def _check(self) -> bool:
        await self._request("GET", f"{self.config.api_base_url}/scopes")
        return True

    async def send_email(
        self, to: str, subject: str, text: str, html: str | None = None
    ) -> str:
        sender: dict[str, str] = {"email": self.config.from_email}
        if self.config.from_name:
            sender["name"] = self.config.from_name
        content = [{"type": "text/plain", "value": text}]
        if html:
            content.append({"type": "text/html", "value": html})
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": sender,
            "subject": subject,
            "content": content,
        }
        response = await self._request(
            "POST", f"{self.config.api_base_url}/mail/send", json=payload
        )
        message_id = response.headers.get("X-Message-Id", "")
        logger.info("SendGrid email %s accepted for %s", message_id or "?", to)
        return message_id
