"""
Pytest fixtures for MindMate tests. Storage is the in-memory repository and the
chat model is a scripted stub, so nothing here touches the network.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List

import pytest

from mindmate.domain.crisis import CrisisPolicy
from mindmate.domain.fallback import FallbackResponder
from mindmate.domain.models import TranscriptWindow, UserIdentity
from mindmate.exceptions import PersistenceError, TransportError
from mindmate.infra.local_repo import InMemoryRepository
from mindmate.services.chat_service import ChatService, SessionContext
from mindmate.usecases.analyze_message import ConversationAnalyzer

START = datetime(2024, 5, 15, 10, 0, tzinfo=timezone.utc)


class TickingClock:
    """Returns START, START+1s, START+2s, ... so stored rows keep a strict order."""

    def __init__(self, start: datetime = START, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value


class StubChatClient:
    """Scripted chat client: each complete() pops the next reply (or raises it)."""

    def __init__(self, replies: Iterable[object] = ()):
        self.replies: List[object] = list(replies)
        self.calls: List[List[Dict[str, str]]] = []

    def complete(self, messages: List[Dict[str, str]]) -> str:
        self.calls.append(messages)
        if not self.replies:
            raise TransportError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FailingRepository(InMemoryRepository):
    """InMemoryRepository whose named methods raise PersistenceError."""

    def __init__(self, failing: Iterable[str] = (), **kwargs):
        super().__init__(**kwargs)
        for name in failing:
            setattr(self, name, self._raiser(name))

    @staticmethod
    def _raiser(name: str):
        def _fail(*args, **kwargs):
            raise PersistenceError(f"{name} unavailable")

        return _fail


def first_choice(pool):
    return pool[0]


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def repo(clock):
    return InMemoryRepository(clock=clock)


@pytest.fixture
def failing_repo(clock):
    """Factory: failing_repo("insert_message", ...) -> repository with those calls broken."""

    def _make(*failing: str) -> FailingRepository:
        return FailingRepository(failing, clock=clock)

    return _make


@pytest.fixture
def user():
    return UserIdentity(id="user-1", email="alex@example.com", name="Alex")


@pytest.fixture
def fallback():
    return FallbackResponder(choose=first_choice)


@pytest.fixture
def chat_client():
    return StubChatClient()


@pytest.fixture
def make_analyzer(fallback):
    def _make(client=None) -> ConversationAnalyzer:
        return ConversationAnalyzer(client, fallback=fallback, system_prompt="You are MindMate.")

    return _make


@pytest.fixture
def analyzer(make_analyzer, chat_client):
    return make_analyzer(chat_client)


@pytest.fixture
def make_service(user, clock):
    """Factory: make_service(repository, analyzer) -> ChatService for `user`."""

    def _make(repository, analyzer) -> ChatService:
        return ChatService(
            repository,
            analyzer,
            CrisisPolicy(threshold=0.7),
            SessionContext(user=user, window=TranscriptWindow(limit=10)),
            clock=clock,
        )

    return _make


@pytest.fixture
def chat_service(make_service, repo, analyzer):
    return make_service(repo, analyzer)
