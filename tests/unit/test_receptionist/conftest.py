"""Fixtures shared by the receptionist unit tests."""

from __future__ import annotations

import pytest
from helpers import RecordingCommunicationProvider, ScriptedAIProvider, echo_tool

from receptionist.config import AgentConfig, AIModelConfig, ReceptionistConfig, ToolsConfig
from receptionist.conversation.store import InMemoryConversationStore


@pytest.fixture
def ai_provider() -> ScriptedAIProvider:
    return ScriptedAIProvider()


@pytest.fixture
def comm_provider() -> RecordingCommunicationProvider:
    return RecordingCommunicationProvider()


@pytest.fixture
def store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def agent() -> AgentConfig:
    return AgentConfig(name="Sarah", role="Receptionist", tone="friendly")


@pytest.fixture
def model_config() -> AIModelConfig:
    return AIModelConfig(provider="openai", api_key="sk-test", model="gpt-4o-mini")


@pytest.fixture
def base_config(agent: AgentConfig, model_config: AIModelConfig) -> ReceptionistConfig:
    return ReceptionistConfig(
        agent=agent,
        model=model_config,
        tools=ToolsConfig(custom=(echo_tool(),)),
    )
