"""Pytest configuration and shared fixtures."""

import pytest

from raphael.config import RaphaelSettings
from raphael.llm.provider import ChatResponse, LLMProvider
from raphael.session import SessionStore


class FakeProvider(LLMProvider):
    """Scripted provider: returns queued replies and records every call."""

    def __init__(self, replies=None, error=None):
        self.replies = list(replies or [])
        self.error = error
        self.calls = []

    @property
    def name(self) -> str:
        return "fake"

    async def chat(self, messages, model, temperature=None):
        self.calls.append({"messages": list(messages), "model": model})
        if self.error is not None:
            raise self.error
        content = self.replies.pop(0) if self.replies else ""
        return ChatResponse(content=content, model=model)

    async def list_models(self):
        return ["llama3.1"]


@pytest.fixture
def store():
    return SessionStore(default_model="llama3.1")


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def settings():
    """Settings isolated from any .env file in the working directory."""
    return RaphaelSettings(_env_file=None, discord_token="test-token", log_dir="logs")


@pytest.fixture
def provider_factory():
    """FakeProvider class, for tests that script replies or errors."""
    return FakeProvider
