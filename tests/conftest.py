"""Shared fixtures: in-memory storage, a deterministic clock and a scripted model."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from api.features.conversation.repository import ConversationStore
from api.shared.exceptions import StorageUnavailableError
from infra.storage import InMemoryStorage


class FakeChatModel:
    """Returns scripted replies in order and records every call."""

    def __init__(self, replies: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.replies = list(replies or [])
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, messages, *, max_tokens, temperature):
        self.calls.append(
            {"messages": messages, "max_tokens": max_tokens, "temperature": temperature}
        )
        if self.error is not None:
            raise self.error
        return self.replies.pop(0) if self.replies else "ok"


def lose_first_write(storage, suffix: str) -> None:
    """Make the first put to a key ending in suffix fail, as if the worker died."""
    put = storage.put
    state = {"lost": False}

    async def flaky_put(key, value):
        if not state["lost"] and key.endswith(suffix):
            state["lost"] = True
            raise StorageUnavailableError(f"write to {key} lost")
        await put(key, value)

    storage.put = flaky_put


class StepClock:
    """Millisecond clock that advances by one on every read."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        self.now += 1
        return self.now


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def store(storage, clock):
    return ConversationStore(storage, clock=clock)


@pytest.fixture
def llm():
    return FakeChatModel(replies=["Hi there!"])


@pytest.fixture
def app(storage, llm):
    from api.main import create_fastapi_app

    _app = create_fastapi_app()
    _app.container.infrastructure.storage.override(providers.Object(storage))
    _app.container.infrastructure.llm.override(providers.Object(llm))
    yield _app
    _app.container.infrastructure.storage.reset_override()
    _app.container.infrastructure.llm.reset_override()


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as _client:
        yield _client
