"""Unit tests for receptionist.config."""

from __future__ import annotations

from dataclasses import replace

import pytest
from helpers import echo_tool

from receptionist.config import (
    AgentConfig,
    AIModelConfig,
    GoogleCalendarConfig,
    ProvidersConfig,
    ReceptionistConfig,
    SendGridConfig,
    Settings,
    ToolsConfig,
    TwilioConfig,
    validate_config,
)
from receptionist.errors import ConfigurationError


def _config(**changes) -> ReceptionistConfig:
    base = ReceptionistConfig(
        agent=AgentConfig(name="Sarah", role="Receptionist"),
        model=AIModelConfig(provider="openai", api_key="sk-test", model="gpt-4o-mini"),
        tools=ToolsConfig(custom=(echo_tool(),)),
    )
    return replace(base, **changes)


def _field_of(config: ReceptionistConfig) -> str | None:
    with pytest.raises(ConfigurationError) as excinfo:
        validate_config(config)
    return excinfo.value.field


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_valid_config_passes() -> None:
    validate_config(_config())


@pytest.mark.parametrize(
    "agent, field",
    [
        (AgentConfig(name="", role="Receptionist"), "agent.name"),
        (AgentConfig(name="Sarah", role=""), "agent.role"),
        (AgentConfig(name="Sarah", role="Receptionist", tone="grumpy"), "agent.tone"),
    ],
)
def test_agent_validation(agent: AgentConfig, field: str) -> None:
    assert _field_of(_config(agent=agent)) == field


def test_missing_agent() -> None:
    assert _field_of(_config(agent=None)) == "agent"


@pytest.mark.parametrize(
    "changes, field",
    [
        ({"provider": "cohere"}, "model.provider"),
        ({"api_key": ""}, "model.api_key"),
        ({"model": ""}, "model.model"),
        ({"temperature": 2.5}, "model.temperature"),
        ({"max_tokens": 0}, "model.max_tokens"),
    ],
)
def test_model_validation(changes: dict, field: str) -> None:
    model = AIModelConfig(provider="openai", api_key="sk-test", model="gpt-4o-mini")
    assert _field_of(_config(model=replace(model, **changes))) == field


def test_anthropic_is_accepted_by_validation() -> None:
    model = AIModelConfig(provider="anthropic", api_key="sk-test", model="claude")
    validate_config(_config(model=model))


@pytest.mark.parametrize(
    "tools, field",
    [
        (ToolsConfig(), "tools"),
        (ToolsConfig(defaults=("weather",)), "tools.defaults"),
        (ToolsConfig(defaults=("calendar",), appointment_minutes=0), "tools.appointment_minutes"),
    ],
)
def test_tools_validation(tools: ToolsConfig, field: str) -> None:
    assert _field_of(_config(tools=tools)) == field


@pytest.mark.parametrize(
    "providers, field",
    [
        (
            ProvidersConfig(twilio=TwilioConfig("AC1", "token", "555-0100")),
            "providers.twilio.phone_number",
        ),
        (ProvidersConfig(twilio=TwilioConfig("", "token", "+15550100")), "providers.twilio.account_sid"),
        (
            ProvidersConfig(sendgrid=SendGridConfig(api_key="k", from_email="not-an-address")),
            "providers.sendgrid.from_email",
        ),
        (
            ProvidersConfig(
                google_calendar=GoogleCalendarConfig(client_id="id", client_secret="", refresh_token="rt")
            ),
            "providers.google_calendar.client_secret",
        ),
        (
            ProvidersConfig(
                google_calendar=GoogleCalendarConfig(
                    "id", "secret", "rt", work_day_start_hour=18, work_day_end_hour=9
                )
            ),
            "providers.google_calendar.work_day_start_hour",
        ),
    ],
)
def test_provider_validation(providers: ProvidersConfig, field: str) -> None:
    assert _field_of(_config(providers=providers)) == field


@pytest.mark.parametrize(
    "changes, field",
    [({"max_iterations": 0}, "max_iterations"), ({"turn_timeout": -1.0}, "turn_timeout")],
)
def test_top_level_validation(changes: dict, field: str) -> None:
    assert _field_of(_config(**changes)) == field


# ---------------------------------------------------------------------------
# AgentConfig.merged
# ---------------------------------------------------------------------------


class TestAgentMerged:
    def test_mapping_overrides_fields(self) -> None:
        base = AgentConfig(name="Sarah", role="Sales", tone="friendly")
        merged = base.merged({"name": "Bob", "role": "Support"})

        assert merged == AgentConfig(name="Bob", role="Support", tone="friendly")
        assert base.name == "Sarah"

    def test_agent_config_replaces(self) -> None:
        other = AgentConfig(name="Bob", role="Support")
        assert AgentConfig(name="Sarah", role="Sales").merged(other) is other

    def test_none_keeps_original(self) -> None:
        base = AgentConfig(name="Sarah", role="Sales")
        assert base.merged(None) is base


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("RECEPTIONIST_PORT", raising=False)
        settings = Settings(_env_file=None)

        assert settings.port == 8000
        assert settings.tool_defaults == ["calendar"]

    def test_env_builds_full_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RECEPTIONIST_AGENT_NAME", "Ada")
        monkeypatch.setenv("RECEPTIONIST_AGENT_TONE", "formal")
        monkeypatch.setenv("RECEPTIONIST_MODEL_API_KEY", "sk-env")
        monkeypatch.setenv("RECEPTIONIST_TOOL_DEFAULTS", '["calendar", "crm"]')
        monkeypatch.setenv("RECEPTIONIST_TWILIO_ACCOUNT_SID", "AC1")
        monkeypatch.setenv("RECEPTIONIST_TWILIO_AUTH_TOKEN", "token")
        monkeypatch.setenv("RECEPTIONIST_TWILIO_PHONE_NUMBER", "+15550001111")
        monkeypatch.setenv("RECEPTIONIST_CRM_API_URL", "https://crm.example")
        monkeypatch.setenv("RECEPTIONIST_CRM_API_KEY", "crm-key")

        config = Settings(_env_file=None).to_config()

        assert config.agent.name == "Ada"
        assert config.agent.tone == "formal"
        assert config.model.api_key == "sk-env"
        assert config.tools.defaults == ("calendar", "crm")
        assert config.providers.twilio is not None
        assert config.providers.twilio.phone_number == "+15550001111"
        assert config.providers.crm is not None
        assert config.providers.sendgrid is None
        assert config.providers.google_calendar is None
        validate_config(config)

    def test_partial_credentials_skip_provider(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RECEPTIONIST_TWILIO_ACCOUNT_SID", "AC1")
        monkeypatch.delenv("RECEPTIONIST_TWILIO_AUTH_TOKEN", raising=False)

        assert Settings(_env_file=None).to_config().providers.twilio is None
