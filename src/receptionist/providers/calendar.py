"""
Calendar providers.

``GoogleCalendarProvider`` talks to the Google Calendar v3 REST API with
``httpx``. Credentials are an OAuth client id/secret plus a refresh token; the
access token is obtained lazily on the first capability call and refreshed
when it expires.

Free slots are computed from the ``freeBusy`` endpoint: candidate start times
step through the configured business day in ``duration_minutes`` increments
and any candidate overlapping a busy interval is dropped.
"""

from __future__ import annotations

import logging
import time
from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from receptionist.config import GoogleCalendarConfig
from receptionist.errors import ProviderError
from receptionist.providers.base import BaseProvider, ProviderKind

logger = logging.getLogger(__name__)

_TOKEN_URL = "https://oauth2.googleapis.com/token"
_API_URL = "https://www.googleapis.com/calendar/v3"


@dataclass
class CalendarEvent:
    title: str
    start: datetime
    end: datetime
    description: str = ""
    attendees: list[str] = field(default_factory=list)
    id: str | None = None


class CalendarProvider(BaseProvider):
    kind = ProviderKind.CALENDAR

    @abstractmethod
    async def get_available_slots(self, day: date, duration_minutes: int) -> list[datetime]:
        """Return free start times on *day* for a meeting of the given length."""

    @abstractmethod
    async def create_event(self, event: CalendarEvent) -> str:
        """Create *event*; return the provider's event id."""


def _overlaps(start: datetime, end: datetime, busy: list[tuple[datetime, datetime]]) -> bool:
    return any(start < b_end and b_start < end for b_start, b_end in busy)


def free_slots(
    day_start: datetime,
    day_end: datetime,
    duration_minutes: int,
    busy: list[tuple[datetime, datetime]],
) -> list[datetime]:
    """Step through ``[day_start, day_end)`` and keep starts that fit between busy blocks."""
    if duration_minutes <= 0:
        raise ValueError(f"duration_minutes must be positive, got {duration_minutes}")
    step = timedelta(minutes=duration_minutes)
    slots: list[datetime] = []
    cursor = day_start
    while cursor + step <= day_end:
        if not _overlaps(cursor, cursor + step, busy):
            slots.append(cursor)
        cursor += step
    return slots


class GoogleCalendarProvider(CalendarProvider):
    """Google Calendar over REST with refresh-token auth."""

    def __init__(
        self,
        config: GoogleCalendarConfig,
        name: str = "google_calendar",
        timeout: float = 10.0,
    ) -> None:
        super().__init__(name)
        self.config = config
        self.timeout = timeout
        self._tz = ZoneInfo(config.timezone)
        self._client: httpx.AsyncClient | None = None
        self._access_token: str | None = None
        self._token_expires_at = 0.0

    async def _setup(self) -> None:
        self._client = httpx.AsyncClient(timeout=self.timeout)

    async def _teardown(self) -> None:
        if self._client is not None:
            await self._client.aclose()
        self._client = None
        self._access_token = None
        self._token_expires_at = 0.0

    async def _check(self) -> bool:
        await self._api("GET", f"/calendars/{self.config.calendar_id}")
        return True

    # ------------------------------------------------------------------
    # Capability methods
    # ------------------------------------------------------------------

    async def get_available_slots(self, day: date, duration_minutes: int) -> list[datetime]:
        day_start = datetime(
            day.year, day.month, day.day, self.config.work_day_start_hour, tzinfo=self._tz
        )
        day_end = day_start + timedelta(
            hours=self.config.work_day_end_hour - self.config.work_day_start_hour
        )
        body = {
            "timeMin": day_start.isoformat(),
            "timeMax": day_end.isoformat(),
            "timeZone": self.config.timezone,
            "items": [{"id": self.config.calendar_id}],
        }
        data = await self._api("POST", "/freeBusy", json=body)
        calendar = data.get("calendars", {}).get(self.config.calendar_id, {})
        busy = [
            (
                datetime.fromisoformat(b["start"].replace("Z", "+00:00")),
                datetime.fromisoformat(b["end"].replace("Z", "+00:00")),
            )
            for b in calendar.get("busy", [])
        ]
        slots = free_slots(day_start, day_end, duration_minutes, busy)
        logger.debug(
            "Calendar %s: %d busy block(s), %d free slot(s) on %s",
            self.config.calendar_id,
            len(busy),
            len(slots),
            day.isoformat(),
        )
        return slots

    async def create_event(self, event: CalendarEvent) -> str:
        body: dict[str, Any] = {
            "summary": event.title,
            "description": event.description,
            "start": {"dateTime": event.start.isoformat(), "timeZone": self.config.timezone},
            "end": {"dateTime": event.end.isoformat(), "timeZone": self.config.timezone},
        }
        if event.attendees:
            body["attendees"] = [{"email": email} for email in event.attendees]
        data = await self._api(
            "POST", f"/calendars/{self.config.calendar_id}/events", json=body
        )
        event_id = data["id"]
        logger.info("Calendar event %s created: %s", event_id, event.title)
        return event_id

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _token(self) -> str:
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token
        assert self._client is not None
        try:
            response = await self._client.post(
                _TOKEN_URL,
                data={
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "refresh_token": self.config.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                "Google OAuth token refresh failed",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Google OAuth token refresh failed: {exc}") from exc
        payload = response.json()
        self._access_token = payload["access_token"]
        # Refresh a minute early.
        self._token_expires_at = time.monotonic() + float(payload.get("expires_in", 3600)) - 60
        return self._access_token

    async def _api(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        self.ensure_initialized()
        assert self._client is not None
        token = await self._token()
        try:
            response = await self._client.request(
                method,
                f"{_API_URL}{path}",
                headers={"Authorization": f"Bearer {token}"},
                **kwargs,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.error("Google Calendar %s %s failed with status %d", method, path, status)
            raise ProviderError(
                f"Google Calendar request failed with status {status}", status_code=status
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Google Calendar request failed: {exc}") from exc
        return response.json()
