"""
Standard tool library: ``calendar``, ``booking`` and ``crm``.

``setup_standard_tools`` installs the defaults named in ``ToolsConfig`` whose
backing provider or configuration is present; a default without one is
skipped with a warning.

The calendar tool renders per channel: a spoken sentence for phone and video,
a numbered list for SMS, and HTML plus plain text for email. Booking and CRM
use a single default handler.
"""

from __future__ import annotations

import html
import logging
from datetime import date, datetime, time, timedelta
from typing import Any

import httpx

from receptionist.config import BookingToolConfig, ToolsConfig
from receptionist.models import ChannelResponse, ExecutionContext, ToolResult
from receptionist.providers.base import ProviderKind, ProviderRegistry
from receptionist.providers.calendar import CalendarEvent, CalendarProvider
from receptionist.providers.crm import CRMProvider
from receptionist.tools.base import Tool, ToolBuilder
from receptionist.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def _fmt_time(value: datetime) -> str:
    return value.strftime("%I:%M %p").lstrip("0")


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------

CALENDAR_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "action": {
            "type": "string",
            "enum": ["check_availability", "book"],
            "description": "The action to perform",
        },
        "date": {
            "type": "string",
            "format": "date",
            "description": "Date for the appointment (YYYY-MM-DD)",
        },
        "time": {
            "type": "string",
            "format": "time",
            "description": "Time for the appointment (HH:MM), required to book",
        },
        "duration": {"type": "number", "description": "Duration in minutes"},
        "title": {"type": "string", "description": "Appointment title"},
        "attendee_email": {"type": "string", "description": "Attendee email address"},
    },
    "required": ["action", "date"],
}


class _CalendarActions:
    """Provider-backed calendar logic shared by the channel renderers."""

    def __init__(self, provider: CalendarProvider, default_minutes: int) -> None:
        self.provider = provider
        self.default_minutes = default_minutes

    async def run(self, params: dict[str, Any], context: ExecutionContext) -> dict[str, Any]:
        action = params.get("action")
        day = date.fromisoformat(params["date"])
        duration = params.get("duration")
        minutes = self.default_minutes if duration is None else int(duration)
        if minutes <= 0:
            raise ValueError(
                f"Appointment duration must be a positive number of minutes, got {duration!r}"
            )
        if action == "check_availability":
            slots = await self.provider.get_available_slots(day, minutes)
            return {"action": action, "date": day.isoformat(), "slots": slots}
        if action == "book":
            if not params.get("time"):
                raise ValueError("A time is required to book an appointment")
            slot_time = time.fromisoformat(params["time"])
            slots = await self.provider.get_available_slots(day, minutes)
            start = next(
                (s for s in slots if s.time().replace(tzinfo=None) == slot_time), None
            )
            if start is None:
                return {"action": action, "date": day.isoformat(), "booked": False, "slots": slots}
            event = CalendarEvent(
                title=params.get("title") or f"Appointment with {context.agent_name}",
                start=start,
                end=start + timedelta(minutes=minutes),
                description=f"Booked via {context.channel.value} (conversation {context.conversation_id})",
                attendees=[params["attendee_email"]] if params.get("attendee_email") else [],
            )
            event_id = await self.provider.create_event(event)
            return {
                "action": action,
                "date": day.isoformat(),
                "booked": True,
                "event_id": event_id,
                "start": start,
            }
        raise ValueError(f"Unknown calendar action: {action!r}")


def _slots_data(outcome: dict[str, Any]) -> dict[str, Any]:
    data = dict(outcome)
    if "slots" in data:
        data["slots"] = [s.isoformat() for s in data["slots"]]
    if "start" in data:
        data["start"] = data["start"].isoformat()
    return data


def create_calendar_tool(provider: CalendarProvider, default_minutes: int = 60) -> Tool:
    actions = _CalendarActions(provider, default_minutes)

    async def on_call(params: dict[str, Any], context: ExecutionContext) -> ToolResult:
        outcome = await actions.run(params, context)
        times = ", ".join(_fmt_time(s) for s in outcome.get("slots", []))
        if outcome["action"] == "check_availability":
            speak = (
                f"I have availability on {outcome['date']} at {times}. "
                "Which time works best for you?"
                if times
                else f"I'm sorry, there's no availability on {outcome['date']}."
            )
        elif outcome["booked"]:
            speak = (
                f"Perfect! I've booked your appointment for {outcome['date']} at "
                f"{_fmt_time(outcome['start'])}. You'll receive a confirmation shortly."
            )
        else:
            speak = f"That time isn't available. I do have {times or 'nothing else'} that day."
        return ToolResult(
            success=outcome.get("booked", True),
            data=_slots_data(outcome),
            response=ChannelResponse(speak=speak),
        )

    async def on_sms(params: dict[str, Any], context: ExecutionContext) -> ToolResult:
        outcome = await actions.run(params, context)
        slots = outcome.get("slots", [])
        if outcome["action"] == "check_availability":
            lines = [f"{i}. {_fmt_time(s)}" for i, s in enumerate(slots, start=1)]
            message = (
                f"Available times for {outcome['date']}:\n" + "\n".join(lines)
                + "\n\nReply with a number to book."
                if lines
                else f"No availability on {outcome['date']}."
            )
        elif outcome["booked"]:
            message = (
                f"Booked!\n{outcome['date']} at {_fmt_time(outcome['start'])}\n"
                f"Confirmation: {outcome['event_id']}"
            )
        else:
            message = f"That time is taken on {outcome['date']}."
        return ToolResult(
            success=outcome.get("booked", True),
            data=_slots_data(outcome),
            response=ChannelResponse(message=message),
        )

    async def on_email(params: dict[str, Any], context: ExecutionContext) -> ToolResult:
        outcome = await actions.run(params, context)
        day = html.escape(outcome["date"])
        if outcome["action"] == "check_availability":
            times = [_fmt_time(s) for s in outcome.get("slots", [])]
            items = "".join(f"<li>{t}</li>" for t in times)
            body_html = (
                f"<h3>Available Appointment Times</h3>"
                f"<p>We have the following times available on {day}:</p>"
                f"<ul>{items}</ul><p>Please reply with your preferred time.</p>"
            )
            text = f"Available times for {outcome['date']}: {', '.join(times) or 'none'}"
        elif outcome["booked"]:
            at = _fmt_time(outcome["start"])
            body_html = (
                f"<h2>Appointment Confirmed</h2>"
                f"<p><strong>Date:</strong> {day}</p>"
                f"<p><strong>Time:</strong> {at}</p>"
                f"<p><strong>Confirmation Number:</strong> {html.escape(outcome['event_id'])}</p>"
            )
            text = (
                f"Appointment confirmed for {outcome['date']} at {at}. "
                f"Confirmation: {outcome['event_id']}"
            )
        else:
            body_html = f"<p>The requested time on {day} is no longer available.</p>"
            text = f"The requested time on {outcome['date']} is no longer available."
        return ToolResult(
            success=outcome.get("booked", True),
            data=_slots_data(outcome),
            response=ChannelResponse(html=body_html, text=text),
        )

    async def default(params: dict[str, Any], context: ExecutionContext) -> ToolResult:
        outcome = await actions.run(params, context)
        return ToolResult(
            success=outcome.get("booked", True),
            data=_slots_data(outcome),
            response=ChannelResponse(
                text=f"Calendar action {outcome['action']} processed for {outcome['date']}"
            ),
        )

    return (
        ToolBuilder()
        .with_name("check_calendar")
        .with_description("Check calendar availability and book appointments")
        .with_parameters(CALENDAR_PARAMETERS)
        .on_call(on_call)
        .on_video(on_call)
        .on_sms(on_sms)
        .on_email(on_email)
        .default(default)
        .build()
    )


# ---------------------------------------------------------------------------
# Booking
# ---------------------------------------------------------------------------


def create_booking_tool(config: BookingToolConfig, timeout: float = 10.0) -> Tool:
    async def default(params: dict[str, Any], context: ExecutionContext) -> ToolResult:
        payload = dict(params, conversation_id=context.conversation_id)
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(
                f"{config.api_url.rstrip('/')}/bookings",
                json=payload,
                headers={"Authorization": f"Bearer {config.api_key}"},
            )
            response.raise_for_status()
            data = response.json()
        return ToolResult(
            success=True,
            data=data,
            response=ChannelResponse(text=f"Booking {params['action']} completed successfully."),
        )

    return Tool(
        name="booking",
        description="Manage booking reservations",
        parameters={
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": ["create", "cancel", "modify"]},
                "serviceType": {"type": "string"},
                "date": {"type": "string"},
                "time": {"type": "string"},
            },
            "required": ["action"],
        },
        default_handler=default,
    )


# ---------------------------------------------------------------------------
# CRM
# ---------------------------------------------------------------------------


def create_crm_tool(provider: CRMProvider) -> Tool:
    async def default(params: dict[str, Any], context: ExecutionContext) -> ToolResult:
        action = params["action"]
        data = params.get("data") or {}
        if action == "create_lead":
            lead = dict(data, source=context.channel.value, conversation_id=context.conversation_id)
            record_id = await provider.create_lead(lead)
        elif action == "add_note":
            record_id = str(data["record_id"])
            await provider.add_note(record_id, str(data.get("note", "")))
        else:
            raise ValueError(f"Unknown CRM action: {action!r}")
        return ToolResult(
            success=True,
            data={"record_id": record_id},
            response=ChannelResponse(text=f"CRM {action} completed successfully."),
        )

    return Tool(
        name="crm",
        description="Manage customer records in CRM",
        parameters={
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": ["create_lead", "add_note"]},
                "data": {"type": "object"},
            },
            "required": ["action"],
        },
        default_handler=default,
    )


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def setup_standard_tools(
    registry: ToolRegistry,
    tools_config: ToolsConfig,
    providers: ProviderRegistry,
) -> list[str]:
    """Register the configured standard tools; return the names installed."""
    installed: list[str] = []
    for default_name in tools_config.defaults:
        tool: Tool | None = None
        if default_name == "calendar":
            calendar = providers.get(ProviderKind.CALENDAR)
            if isinstance(calendar, CalendarProvider):
                tool = create_calendar_tool(calendar, tools_config.appointment_minutes)
            else:
                logger.warning("Calendar tool requested but no calendar provider configured")
        elif default_name == "booking":
            if tools_config.booking is not None:
                tool = create_booking_tool(tools_config.booking)
            else:
                logger.warning("Booking tool requested but no booking config provided")
        elif default_name == "crm":
            crm = providers.get(ProviderKind.CRM)
            if isinstance(crm, CRMProvider):
                tool = create_crm_tool(crm)
            else:
                logger.warning("CRM tool requested but no CRM provider configured")
        else:
            logger.warning("Unknown standard tool: %r", default_name)

        if tool is not None:
            registry.register(tool)
            installed.append(tool.name)
    return installed

