"""HTTP API over in-memory storage, a scripted model and a fake auth backend."""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from mindmate.app.deps import build_services
from mindmate.app.main import create_app
from mindmate.core.config import Settings
from mindmate.domain.crisis import SAFETY_MESSAGE
from mindmate.domain.models import UserIdentity
from mindmate.exceptions import AuthError
from mindmate.infra.auth import AuthSession
from mindmate.infra.local_repo import InMemoryRepository

AUTH = {"Authorization": "Bearer good-token"}


class FakeAuth:
    def __init__(self, user: UserIdentity):
        self.user = user
        self.signed_out = []

    def get_user(self, token):
        return self.user if token == "good-token" else None

    def sign_in(self, email, password):
        if password != "secret":
            raise AuthError("Invalid login credentials")
        return AuthSession(access_token="good-token", user=self.user)

    def sign_up(self, email, password, name):
        return UserIdentity(id="new-user", email=email, name=name)

    def sign_out(self, token):
        self.signed_out.append(token)


@pytest.fixture
def api_repo():
    # real clock: history buckets are relative to today
    return InMemoryRepository()


@pytest.fixture
def fake_auth(user):
    return FakeAuth(user)


@pytest.fixture
def services(api_repo, analyzer, fake_auth):
    return build_services(settings=Settings(), repository=api_repo, analyzer=analyzer, auth=fake_auth)


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


def _model_reply(reply="That sounds hard.", emotion="sadness", intensity=0.6, risk=0.1):
    return json.dumps({"reply": reply, "primary_emotion": emotion, "intensity": intensity, "risk_score": risk})


def test_health(client):
    body = client.get("/health").json()

    assert body["status"] == "ok"
    assert body["service"] == "mindmate"
    assert body["llm_enabled"] is True
    assert body["auth_enabled"] is True


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer expired"}, {"Authorization": "Token good-token"}])
def test_chat_requires_a_valid_token(client, headers):
    assert client.get("/chat/session", headers=headers).status_code == 401


def test_auth_backend_not_configured(api_repo, analyzer):
    services = build_services(settings=Settings(), repository=api_repo, analyzer=analyzer)
    client = TestClient(create_app(services))

    assert client.get("/chat/session", headers=AUTH).status_code == 503
    assert client.get("/health").json()["auth_enabled"] is False


def test_session_then_message(client, chat_client, api_repo, user):
    session = client.get("/chat/session", headers=AUTH).json()
    assert session["status"] == "ok"
    assert session["session"]["title"] == "New Conversation"
    assert session["messages"] == []

    chat_client.replies.append(_model_reply())
    body = client.post("/chat/messages", json={"message": "Work was awful"}, headers=AUTH).json()

    assert body["status"] == "ok"
    assert body["reply"] == "That sounds hard."
    assert body["analysis"]["primary_emotion"] == "sadness"
    assert body["analysis"]["badge"] == "Detected: Sadness (Medium)"
    assert body["analysis"]["source"] == "model"
    assert body["follow_ups"] == []
    assert body["session"] == {"session_id": session["session"]["session_id"], "title": "Work was awful"}
    assert not body["degraded"]

    resumed = client.get("/chat/session", headers=AUTH).json()
    assert [m["sender"] for m in resumed["messages"]] == ["user", "bot"]
    assert len(api_repo.list_emotion_logs(user.id)) == 1


def test_crisis_message_returns_delayed_safety_follow_up(client, chat_client, api_repo, user):
    chat_client.replies.append(_model_reply(reply="I'm worried about you.", risk=0.85))

    body = client.post("/chat/messages", json={"message": "I want to die"}, headers=AUTH).json()

    assert body["follow_ups"] == [{"text": SAFETY_MESSAGE, "delay_ms": 500}]
    assert api_repo.list_crisis_logs(user.id)[0]["trigger_keywords"] == ["die"]


def test_blank_message_is_an_input_error(client):
    body = client.post("/chat/messages", json={"message": "   "}, headers=AUTH).json()

    assert body["status"] == "error"
    assert body["error_type"] == "input_error"


def test_history_and_switching(client):
    client.post("/chat/messages", json={"message": "first chat"}, headers=AUTH)
    new = client.post("/chat/sessions", headers=AUTH).json()
    assert new["session"]["title"] == "New Conversation"
    client.post("/chat/messages", json={"message": "second chat"}, headers=AUTH)

    history = client.get("/chat/sessions", headers=AUTH).json()
    assert history["counts"]["today"] == 2
    titles = {item["title"]: item for item in history["groups"]["today"]}
    assert titles["second chat"]["active"] is True
    assert titles["first chat"]["active"] is False

    opened = client.post(f"/chat/sessions/{titles['first chat']['id']}/open", headers=AUTH).json()
    assert opened["session"]["title"] == "first chat"
    assert [m["content"] for m in opened["messages"]][0] == "first chat"


def test_open_unknown_session(client):
    body = client.post("/chat/sessions/does-not-exist/open", headers=AUTH).json()

    assert body["status"] == "error"
    assert body["error_type"] == "not_found"


def test_dashboard_and_mood(client, user):
    assert client.post("/mood", json={"emoji": "😊", "mood_name": "Happy"}, headers=AUTH).json() == {
        "status": "ok",
        "message": "Mood logged: 😊 Happy",
    }

    body = client.get("/dashboard", params={"tz_offset_minutes": 0}, headers=AUTH).json()
    dashboard = body["dashboard"]

    assert body["status"] == "ok"
    assert dashboard["greeting"].endswith(f"{user.name} 👋")
    assert dashboard["streak"]["streak"] == 1
    assert dashboard["progress"]["days_since_crisis"] is None


def test_mood_requires_selection(client):
    body = client.post("/mood", json={"emoji": "", "mood_name": "Happy"}, headers=AUTH).json()
    assert body == {"status": "error", "error_type": "input_error", "message": "Pick a mood first."}


def test_login(client):
    ok = client.post("/auth/login", json={"email": "alex@example.com", "password": "secret"}).json()
    assert ok["status"] == "ok"
    assert ok["access_token"] == "good-token"
    assert ok["user"]["name"] == "Alex"

    bad = client.post("/auth/login", json={"email": "alex@example.com", "password": "nope"}).json()
    assert bad == {"status": "error", "error_type": "auth_error", "message": "Invalid login credentials"}


def test_signup_saves_profile_name(client, api_repo):
    body = client.post(
        "/auth/signup", json={"name": "Sam", "email": "sam@example.com", "password": "secret"}
    ).json()

    assert body["status"] == "ok"
    assert body["user"] == {"id": "new-user", "email": "sam@example.com", "name": "Sam"}
    assert api_repo._read_tables()["profiles"] == [{"id": "new-user", "name": "Sam"}]


def test_logout_forgets_conversation_state(client, services, fake_auth, user):
    client.get("/chat/session", headers=AUTH)
    before = services.registry.get(user)

    assert client.post("/auth/logout", headers=AUTH).json() == {"status": "ok"}
    assert fake_auth.signed_out == ["good-token"]
    assert services.registry.get(user) is not before
