"""Unit tests for receptionist.providers."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from receptionist.config import (
    AIModelConfig,
    CRMConfig,
    GoogleCalendarConfig,
    SendGridConfig,
    TwilioConfig,
)
from receptionist.errors import (
    ConfigurationError,
    ProviderError,
    ProviderNotInitializedError,
    UnsupportedOperationError,
)
from receptionist.providers.ai import (
    LLMAPIError,
    LLMConnectionError,
    LLMRateLimitError,
    LLMTimeoutError,
    OpenAICompatibleProvider,
    OpenRouterProvider,
    ToolDefinition,
    create_ai_provider,
)
from receptionist.providers.base import BaseProvider, ProviderKind, ProviderRegistry
from receptionist.providers.calendar import GoogleCalendarProvider, free_slots
from receptionist.providers.communication import SendGridProvider, TwilioProvider
from receptionist.providers.crm import HttpCRMProvider


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _Probe(BaseProvider):
    kind = ProviderKind.CUSTOM

    def __init__(self, name: str = "probe", healthy: bool | Exception = True) -> None:
        super().__init__(name)
        self.healthy = healthy
        self.setups = 0
        self.teardowns = 0

    async def _setup(self) -> None:
        self.setups += 1

    async def _teardown(self) -> None:
        self.teardowns += 1

    async def _check(self) -> bool:
        if isinstance(self.healthy, Exception):
            raise self.healthy
        return self.healthy


class _ProbeAI(_Probe):
    kind = ProviderKind.AI


def _http_response(payload: Any = None, headers: dict[str, str] | None = None) -> MagicMock:
    response = MagicMock(spec=httpx.Response)
    response.json.return_value = payload if payload is not None else {}
    response.headers = headers or {}
    response.content = b"{}"
    response.raise_for_status = MagicMock()
    return response


def _http_client(response: MagicMock) -> AsyncMock:
    client = AsyncMock()
    client.request = AsyncMock(return_value=response)
    client.post = AsyncMock(return_value=response)
    client.aclose = AsyncMock()
    return client


def _status_error(status: int) -> httpx.HTTPStatusError:
    return httpx.HTTPStatusError(
        "boom", request=MagicMock(), response=MagicMock(status_code=status)
    )


def _twilio_config() -> TwilioConfig:
    return TwilioConfig(account_sid="AC123", auth_token="secret", phone_number="+15550001111")


def _model_config(provider: str = "openai") -> AIModelConfig:
    return AIModelConfig(provider=provider, api_key="sk-test", model="gpt-4o-mini", max_tokens=256)


def _completion(content: str | None = "Hi there", tool_calls: list[Any] | None = None) -> MagicMock:
    choice = MagicMock()
    choice.finish_reason = "tool_calls" if tool_calls else "stop"
    choice.message.content = content
    choice.message.tool_calls = tool_calls
    response = MagicMock()
    response.choices = [choice]
    response.usage = None
    return response


def _openai_tool_call(call_id: str, name: str, arguments: str) -> MagicMock:
    tc = MagicMock()
    tc.id = call_id
    tc.function.name = name
    tc.function.arguments = arguments
    return tc


async def _openai_provider(create: AsyncMock) -> tuple[OpenAICompatibleProvider, MagicMock]:
    with patch("receptionist.providers.ai.AsyncOpenAI") as mock_cls:
        mock_client = MagicMock()
        mock_client.chat.completions.create = create
        mock_client.close = AsyncMock()
        mock_cls.return_value = mock_client
        provider = OpenAICompatibleProvider(_model_config())
        await provider.initialize()
    return provider, mock_cls


# ---------------------------------------------------------------------------
# BaseProvider lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    @pytest.mark.anyio
    async def test_initialize_is_idempotent(self) -> None:
        provider = _Probe()
        await provider.initialize()
        await provider.initialize()

        assert provider.initialized is True
        assert provider.setups == 1

    @pytest.mark.anyio
    async def test_dispose_is_idempotent_and_resets(self) -> None:
        provider = _Probe()
        await provider.initialize()
        await provider.dispose()
        await provider.dispose()

        assert provider.initialized is False
        assert provider.teardowns == 1

    @pytest.mark.anyio
    async def test_health_check_false_when_uninitialized(self) -> None:
        assert await _Probe().health_check() is False

    @pytest.mark.anyio
    async def test_health_check_swallows_errors(self) -> None:
        provider = _Probe(healthy=RuntimeError("down"))
        await provider.initialize()
        assert await provider.health_check() is False

    def test_ensure_initialized_raises(self) -> None:
        with pytest.raises(ProviderNotInitializedError) as excinfo:
            _Probe("calendar").ensure_initialized()
        assert excinfo.value.provider_name == "calendar"


# ---------------------------------------------------------------------------
# ProviderRegistry
# ---------------------------------------------------------------------------


class TestProviderRegistry:
    def test_duplicate_kind_and_name_rejected(self) -> None:
        registry = ProviderRegistry()
        registry.add(_Probe("a"))
        with pytest.raises(ConfigurationError):
            registry.add(_Probe("a"))

    def test_same_name_different_kind_allowed(self) -> None:
        registry = ProviderRegistry()
        registry.add(_Probe("a"))
        registry.add(_ProbeAI("a"))
        assert len(registry) == 2

    def test_get_and_require(self) -> None:
        registry = ProviderRegistry()
        first, second = _Probe("first"), _Probe("second")
        registry.add(first)
        registry.add(second)

        assert registry.get(ProviderKind.CUSTOM) is first
        assert registry.get(ProviderKind.CUSTOM, "second") is second
        assert registry.require(ProviderKind.CUSTOM, _Probe, "second") is second
        with pytest.raises(ConfigurationError):
            registry.require(ProviderKind.AI, OpenAICompatibleProvider)

    @pytest.mark.anyio
    async def test_shared_provider_disposed_once_by_last_holder(self) -> None:
        parent = ProviderRegistry()
        provider = _Probe()
        parent.add(provider)
        await parent.initialize_all()
        child = parent.share()

        await child.release_all()
        assert provider.initialized is True
        assert provider.teardowns == 0

        await parent.release_all()
        await parent.release_all()
        assert provider.initialized is False
        assert provider.teardowns == 1

    @pytest.mark.anyio
    async def test_share_restricted_to_kinds(self) -> None:
        parent = ProviderRegistry()
        ai, other = _ProbeAI("ai"), _Probe("other")
        parent.add(ai)
        parent.add(other)
        await parent.initialize_all()

        child = parent.share({ProviderKind.CUSTOM})
        await parent.release_all()

        assert list(child) == [other]
        assert ai.teardowns == 1
        assert other.teardowns == 0
        assert other.initialized is True

    @pytest.mark.anyio
    async def test_health_reports_by_name(self) -> None:
        registry = ProviderRegistry()
        registry.add(_Probe("up"))
        registry.add(_ProbeAI("down", healthy=False))
        await registry.initialize_all()

        assert await registry.health() == {"up": True, "down": False}


# ---------------------------------------------------------------------------
# AI providers
# ---------------------------------------------------------------------------


class TestCreateAIProvider:
    def test_openai(self) -> None:
        provider = create_ai_provider(_model_config("openai"))
        assert type(provider) is OpenAICompatibleProvider
        assert provider.name == "openai"
        assert provider.initialized is False

    def test_openrouter(self) -> None:
        provider = create_ai_provider(_model_config("openrouter"))
        assert isinstance(provider, OpenRouterProvider)
        assert provider.default_base_url == "https://openrouter.ai/api/v1"

    @pytest.mark.parametrize("backend", ["anthropic", "google", "mystery"])
    def test_unavailable_backends(self, backend: str) -> None:
        with pytest.raises(ConfigurationError) as excinfo:
            create_ai_provider(_model_config(backend))
        assert excinfo.value.field == "model.provider"


class TestOpenAICompatibleProvider:
    @pytest.mark.anyio
    async def test_complete_before_initialize_raises(self) -> None:
        provider = OpenAICompatibleProvider(_model_config())
        with pytest.raises(ProviderNotInitializedError):
            await provider.complete([{"role": "user", "content": "Hi"}], [])

    @pytest.mark.anyio
    async def test_client_built_from_config(self) -> None:
        _, mock_cls = await _openai_provider(AsyncMock())

        kwargs = mock_cls.call_args.kwargs
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["timeout"] == 60.0

    @pytest.mark.anyio
    async def test_openrouter_headers(self) -> None:
        with patch("receptionist.providers.ai.AsyncOpenAI") as mock_cls:
            provider = OpenRouterProvider(_model_config("openrouter"), title="Front Desk")
            await provider.initialize()

        kwargs = mock_cls.call_args.kwargs
        assert kwargs["base_url"] == "https://openrouter.ai/api/v1"
        assert kwargs["default_headers"]["X-Title"] == "Front Desk"

    @pytest.mark.anyio
    async def test_text_response(self) -> None:
        create = AsyncMock(return_value=_completion("Hello!"))
        provider, _ = await _openai_provider(create)

        result = await provider.complete([{"role": "user", "content": "Hi"}], [])

        assert result.finish_reason == "stop"
        assert result.content == "Hello!"
        assert result.wants_tools is False
        sent = create.call_args.kwargs
        assert sent["model"] == "gpt-4o-mini"
        assert sent["max_tokens"] == 256
        assert "tools" not in sent

    @pytest.mark.anyio
    async def test_tool_calls_parsed_in_order(self) -> None:
        create = AsyncMock(
            return_value=_completion(
                None,
                [
                    _openai_tool_call("1", "check_inventory", '{"sku": "A"}'),
                    _openai_tool_call("2", "send_quote", "not json"),
                ],
            )
        )
        provider, _ = await _openai_provider(create)
        tools = [ToolDefinition("check_inventory", "Check stock")]

        result = await provider.complete([{"role": "user", "content": "Hi"}], tools)

        assert result.finish_reason == "tool_calls"
        assert [(c.id, c.name, c.parameters) for c in result.tool_calls] == [
            ("1", "check_inventory", {"sku": "A"}),
            ("2", "send_quote", {}),
        ]
        assert create.call_args.kwargs["tools"][0]["function"]["name"] == "check_inventory"

    @pytest.mark.anyio
    async def test_usage_recorded(self) -> None:
        completion = _completion("Hi")
        completion.usage = MagicMock(prompt_tokens=80, completion_tokens=20, total_tokens=100)
        provider, _ = await _openai_provider(AsyncMock(return_value=completion))

        result = await provider.complete([{"role": "user", "content": "Hi"}], [])

        assert result.usage is not None
        assert result.usage.total_tokens == 100

    @pytest.mark.anyio
    async def test_rate_limit_error(self) -> None:
        from openai import RateLimitError

        provider, _ = await _openai_provider(
            AsyncMock(
                side_effect=RateLimitError(
                    "rate limit", response=MagicMock(status_code=429), body={}
                )
            )
        )
        with pytest.raises(LLMRateLimitError):
            await provider.complete([{"role": "user", "content": "Hi"}], [])

    @pytest.mark.anyio
    async def test_connection_and_timeout_errors(self) -> None:
        from openai import APIConnectionError, APITimeoutError

        provider, _ = await _openai_provider(
            AsyncMock(side_effect=APIConnectionError(request=MagicMock()))
        )
        with pytest.raises(LLMConnectionError):
            await provider.complete([{"role": "user", "content": "Hi"}], [])

        provider, _ = await _openai_provider(
            AsyncMock(side_effect=APITimeoutError(request=MagicMock()))
        )
        with pytest.raises(LLMTimeoutError):
            await provider.complete([{"role": "user", "content": "Hi"}], [])

    @pytest.mark.anyio
    async def test_status_error(self) -> None:
        from openai import APIStatusError

        provider, _ = await _openai_provider(
            AsyncMock(
                side_effect=APIStatusError(
                    "Internal Server Error", response=MagicMock(status_code=500), body={}
                )
            )
        )
        with pytest.raises(LLMAPIError) as excinfo:
            await provider.complete([{"role": "user", "content": "Hi"}], [])
        assert excinfo.value.status_code == 500

    @pytest.mark.anyio
    async def test_dispose_closes_client(self) -> None:
        provider, mock_cls = await _openai_provider(AsyncMock())
        await provider.dispose()

        mock_cls.return_value.close.assert_awaited_once()
        assert provider.initialized is False


# ---------------------------------------------------------------------------
# Twilio / SendGrid
# ---------------------------------------------------------------------------


async def _twilio(response: MagicMock) -> tuple[TwilioProvider, AsyncMock]:
    client = _http_client(response)
    with patch("receptionist.providers.communication.httpx.AsyncClient", return_value=client):
        provider = TwilioProvider(_twilio_config())
        await provider.initialize()
    return provider, client


class TestTwilioProvider:
    @pytest.mark.anyio
    async def test_make_call_posts_form(self) -> None:
        provider, client = await _twilio(_http_response({"sid": "CA42"}))

        sid = await provider.make_call(
            "+15552223333", "https://hooks.example/webhooks/voice/c1", "https://hooks.example/s"
        )

        assert sid == "CA42"
        method, url = client.request.call_args.args
        data = client.request.call_args.kwargs["data"]
        assert method == "POST"
        assert url == "https://api.twilio.com/2010-04-01/Accounts/AC123/Calls.json"
        assert data["From"] == "+15550001111"
        assert data["To"] == "+15552223333"
        assert data["StatusCallback"] == "https://hooks.example/s"

    @pytest.mark.anyio
    async def test_send_sms(self) -> None:
        provider, client = await _twilio(_http_response({"sid": "SM7"}))

        assert await provider.send_sms("+15552223333", "Hi!") == "SM7"
        assert client.request.call_args.kwargs["data"]["Body"] == "Hi!"

    @pytest.mark.anyio
    async def test_video_room(self) -> None:
        provider, client = await _twilio(_http_response({"sid": "RM1"}))

        assert await provider.create_video_room("lobby") == "RM1"
        assert client.request.call_args.args[1] == "https://video.twilio.com/v1/Rooms"

    @pytest.mark.anyio
    async def test_http_error_becomes_provider_error(self) -> None:
        response = _http_response()
        response.raise_for_status.side_effect = _status_error(401)
        provider, _ = await _twilio(response)

        with pytest.raises(ProviderError) as excinfo:
            await provider.end_call("CA1")
        assert excinfo.value.status_code == 401

    @pytest.mark.anyio
    async def test_requires_initialize(self) -> None:
        with pytest.raises(ProviderNotInitializedError):
            await TwilioProvider(_twilio_config()).send_sms("+15552223333", "Hi")

    @pytest.mark.anyio
    async def test_dispose_closes_client(self) -> None:
        provider, client = await _twilio(_http_response())
        await provider.dispose()
        client.aclose.assert_awaited_once()

    def test_twiml_gather_escapes_text(self) -> None:
        twiml = TwilioProvider(_twilio_config()).render_voice_response(
            "Tom & Jerry <3", gather_action="https://hooks.example/voice?a=1&b=2"
        )

        assert "<Say>Tom &amp; Jerry &lt;3</Say>" in twiml
        assert 'action="https://hooks.example/voice?a=1&amp;b=2"' in twiml
        assert "<Gather" in twiml
        assert "<Hangup/>" not in twiml

    def test_twiml_hangup(self) -> None:
        twiml = TwilioProvider(_twilio_config()).render_voice_response(
            "Goodbye", gather_action="https://x", hangup=True
        )

        assert "<Gather" not in twiml
        assert twiml.endswith("<Say>Goodbye</Say><Hangup/></Response>")


class TestSendGridProvider:
    @pytest.mark.anyio
    async def test_send_email_payload(self) -> None:
        client = _http_client(_http_response(headers={"X-Message-Id": "msg-1"}))
        with patch("receptionist.providers.communication.httpx.AsyncClient", return_value=client):
            provider = SendGridProvider(
                SendGridConfig(api_key="SG.key", from_email="desk@example.com", from_name="Desk")
            )
            await provider.initialize()

        message_id = await provider.send_email(
            "ada@example.com", "Re: Hello", "plain body", "<p>html body</p>"
        )

        assert message_id == "msg-1"
        payload = client.request.call_args.kwargs["json"]
        assert payload["personalizations"] == [{"to": [{"email": "ada@example.com"}]}]
        assert payload["from"] == {"email": "desk@example.com", "name": "Desk"}
        assert [c["type"] for c in payload["content"]] == ["text/plain", "text/html"]

    @pytest.mark.anyio
    async def test_voice_is_unsupported(self) -> None:
        provider = SendGridProvider(SendGridConfig(api_key="k", from_email="a@b.co"))
        with pytest.raises(UnsupportedOperationError):
            await provider.make_call("+15552223333", "https://x")


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


def _utc(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 2, hour, minute, tzinfo=timezone.utc)


def test_free_slots_drop_overlaps() -> None:
    slots = free_slots(_utc(9), _utc(13), 60, [(_utc(10), _utc(11, 30))])
    assert slots == [_utc(9), _utc(12)]


@pytest.mark.parametrize("minutes", [0, -30])
def test_free_slots_rejects_non_positive_duration(minutes: int) -> None:
    with pytest.raises(ValueError):
        free_slots(_utc(9), _utc(13), minutes, [])


class TestGoogleCalendarProvider:
    @pytest.mark.anyio
    async def test_available_slots_from_free_busy(self) -> None:
        token = _http_response({"access_token": "ya29", "expires_in": 3600})
        busy = _http_response(
            {
                "calendars": {
                    "primary": {
                        "busy": [{"start": "2026-03-02T10:00:00Z", "end": "2026-03-02T11:30:00Z"}]
                    }
                }
            }
        )
        client = _http_client(busy)
        client.post = AsyncMock(return_value=token)
        config = GoogleCalendarConfig(client_id="id", client_secret="secret", refresh_token="rt")

        with patch("receptionist.providers.calendar.httpx.AsyncClient", return_value=client):
            provider = GoogleCalendarProvider(config)
            await provider.initialize()

        slots = await provider.get_available_slots(date(2026, 3, 2), 60)
        await provider.get_available_slots(date(2026, 3, 2), 60)

        assert [s.hour for s in slots] == [9, 12, 13, 14, 15, 16]
        assert client.post.await_count == 1
        headers = client.request.call_args.kwargs["headers"]
        assert headers == {"Authorization": "Bearer ya29"}

    @pytest.mark.anyio
    async def test_token_refresh_failure(self) -> None:
        token = _http_response()
        token.raise_for_status.side_effect = _status_error(400)
        client = _http_client(_http_response())
        client.post = AsyncMock(return_value=token)
        config = GoogleCalendarConfig(client_id="id", client_secret="secret", refresh_token="rt")

        with patch("receptionist.providers.calendar.httpx.AsyncClient", return_value=client):
            provider = GoogleCalendarProvider(config)
            await provider.initialize()

        with pytest.raises(ProviderError) as excinfo:
            await provider.get_available_slots(date(2026, 3, 2), 30)
        assert excinfo.value.status_code == 400

    @pytest.mark.anyio
    async def test_token_refresh_connection_error(self) -> None:
        client = _http_client(_http_response())
        client.post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        config = GoogleCalendarConfig(client_id="id", client_secret="secret", refresh_token="rt")

        with patch("receptionist.providers.calendar.httpx.AsyncClient", return_value=client):
            provider = GoogleCalendarProvider(config)
            await provider.initialize()

        with pytest.raises(ProviderError, match="token refresh failed"):
            await provider.get_available_slots(date(2026, 3, 2), 30)
        client.request.assert_not_called()


# ---------------------------------------------------------------------------
# CRM
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_crm_create_lead_and_note() -> None:
    client = _http_client(_http_response({"id": 17}))
    with patch("receptionist.providers.crm.httpx.AsyncClient", return_value=client):
        provider = HttpCRMProvider(CRMConfig(api_url="https://crm.example/api/", api_key="k"))
        await provider.initialize()

    assert await provider.create_lead({"name": "Ada"}) == "17"
    await provider.add_note("17", "Called back")

    assert client.post.call_args_list[0].args == ("/leads",)
    assert client.post.call_args_list[1].args == ("/leads/17/notes",)
    assert client.post.call_args_list[1].kwargs == {"json": {"note": "Called back"}}
