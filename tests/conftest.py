"""Shared test fixtures."""

import pytest

from src.chat import session as chat_session
from src.llm import client as llm_client


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("src.config.settings.turso_database_url", "")


@pytest.fixture
def api_key(monkeypatch: pytest.MonkeyPatch) -> str:
    """Configure a fake OpenAI key and drop any cached client."""
    key = "sk-test-1234567890"
    monkeypatch.setattr("src.config.settings.openai_api_key", key)
    llm_client._reset_client()
    yield key
    llm_client._reset_client()


@pytest.fixture(autouse=True)
def _fresh_sessions():
    chat_session._sessions.clear()
    yield
    chat_session._sessions.clear()
