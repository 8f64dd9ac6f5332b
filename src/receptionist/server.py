"""
Webhook server for provider callbacks.

Twilio posts form-encoded voice, status and SMS webhooks; voice webhooks are
answered with TwiML. Inbound email is accepted as JSON (e.g. from a SendGrid
Inbound Parse relay).

Endpoints
---------
POST   /webhooks/voice                     Inbound call: greet and gather speech.
POST   /webhooks/voice/{conversation_id}   Speech turn for a known call.
POST   /webhooks/call-status               Call status callback.
POST   /webhooks/sms                       Inbound SMS.
POST   /webhooks/email                     Inbound email.
GET    /health                             Provider health checks.

Usage::

    from receptionist.server import create_webhook_app
    import uvicorn

    app = create_webhook_app(Receptionist(config))
    uvicorn.run(app, host="0.0.0.0", port=8000)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Annotated, AsyncIterator, TypeVar

from fastapi import FastAPI, Form, HTTPException, Response
from pydantic import BaseModel, Field

from receptionist.channels import ChannelClient
from receptionist.errors import ConversationNotFoundError
from receptionist.receptionist import Receptionist

logger = logging.getLogger(__name__)

TWIML_MEDIA_TYPE = "application/xml"
EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'

C = TypeVar("C", bound=ChannelClient)


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class InboundEmail(BaseModel):
    """Body for POST /webhooks/email."""

    from_address: str = Field(..., alias="from", description="Sender address.")
    text: str = Field(..., description="Plain-text body.")
    subject: str | None = None
    message_id: str | None = Field(default=None, description="Provider message id for dedup.")

    model_config = {"populate_by_name": True}


class WebhookAck(BaseModel):
    status: str
    conversation_id: str | None = None
    message_id: str | None = None


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str
    agent_name: str
    providers: dict[str, bool]


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def _twiml(body: str) -> Response:
    return Response(content=body, media_type=TWIML_MEDIA_TYPE)


def create_webhook_app(receptionist: Receptionist, manage_lifecycle: bool = True) -> FastAPI:
    """Create a FastAPI application serving *receptionist*'s webhooks.

    Args:
        receptionist: The agent to route events to.
        manage_lifecycle: Initialize the receptionist on startup and dispose
            it on shutdown. Pass ``False`` when the caller owns its lifecycle.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if manage_lifecycle:
            await receptionist.initialize()
        try:
            yield
        finally:
            if manage_lifecycle:
                await receptionist.dispose()

    app = FastAPI(
        title="AI Receptionist Webhooks",
        description="Provider callbacks for voice, SMS and email conversations.",
        version="0.1.0",
        lifespan=lifespan,
    )

    def channel(client: C | None, name: str) -> C:
        if client is None:
            raise HTTPException(status_code=503, detail=f"{name} channel is not configured")
        return client

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        providers = await receptionist.health()
        return HealthResponse(
            status="ok" if all(providers.values()) else "degraded",
            agent_name=receptionist.agent.name,
            providers=providers,
        )

    @app.post("/webhooks/voice")
    async def inbound_call(
        call_sid: Annotated[str, Form(alias="CallSid")],
        from_number: Annotated[str | None, Form(alias="From")] = None,
        speech: Annotated[str | None, Form(alias="SpeechResult")] = None,
    ) -> Response:
        logger.info("POST /webhooks/voice: call=%s", call_sid)
        phone = channel(receptionist.phone, "Phone")
        if speech is not None:
            return _twiml(
                await phone.handle_speech(speech, call_sid=call_sid, from_number=from_number)
            )
        return _twiml(await phone.handle_inbound_call(call_sid, from_number))

    @app.post("/webhooks/voice/{conversation_id}")
    async def call_turn(
        conversation_id: str,
        speech: Annotated[str | None, Form(alias="SpeechResult")] = None,
    ) -> Response:
        logger.info("POST /webhooks/voice/%s", conversation_id)
        phone = channel(receptionist.phone, "Phone")
        try:
            if speech is None:
                await phone.get_conversation(conversation_id)
                return _twiml(phone.greet(conversation_id))
            return _twiml(await phone.handle_speech(speech, conversation_id=conversation_id))
        except ConversationNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.post("/webhooks/call-status", response_model=WebhookAck)
    async def call_status(
        call_sid: Annotated[str, Form(alias="CallSid")],
        call_status: Annotated[str, Form(alias="CallStatus")],
    ) -> WebhookAck:
        logger.info("POST /webhooks/call-status: call=%s status=%s", call_sid, call_status)
        phone = channel(receptionist.phone, "Phone")
        conversation = await phone.handle_status(call_sid, call_status)
        return WebhookAck(
            status="ignored" if conversation is None else conversation.status.value,
            conversation_id=conversation.id if conversation else None,
        )

    @app.post("/webhooks/sms")
    async def inbound_sms(
        message_sid: Annotated[str, Form(alias="MessageSid")],
        from_number: Annotated[str, Form(alias="From")],
        body: Annotated[str, Form(alias="Body")] = "",
    ) -> Response:
        logger.info("POST /webhooks/sms: message=%s", message_sid)
        sms = channel(receptionist.sms, "SMS")
        await sms.handle_inbound(message_sid, from_number, body)
        # The reply goes out over the REST API; the webhook answer stays empty.
        return _twiml(EMPTY_TWIML)

    @app.post("/webhooks/email", response_model=WebhookAck)
    async def inbound_email(email: InboundEmail) -> WebhookAck:
        logger.info("POST /webhooks/email: message=%s", email.message_id)
        client = channel(receptionist.email, "Email")
        delivery = await client.handle_inbound(
            email.from_address, email.text, subject=email.subject, message_id=email.message_id
        )
        if delivery is None:
            return WebhookAck(status="no_reply")
        return WebhookAck(
            status="replied",
            conversation_id=delivery.conversation_id,
            message_id=delivery.message_id,
        )

    return app
