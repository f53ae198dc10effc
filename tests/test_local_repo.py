"""Local storage backends and the Supabase query mapping."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import yaml

from mindmate.domain.models import AnalysisResult, CrisisEvent
from mindmate.exceptions import PersistenceError
from mindmate.infra.local_repo import YamlRepository
from mindmate.infra.repository import MESSAGES_TABLE, NEW_CONVERSATION_TITLE, SESSIONS_TABLE
from mindmate.infra.supabase_repo import SupabaseRepository


def test_create_and_list_sessions_newest_first(repo):
    first = repo.create_session("u1")
    second = repo.create_session("u1", "Second")
    repo.create_session("u2", "Other user")

    assert first["title"] == NEW_CONVERSATION_TITLE
    assert [s["id"] for s in repo.list_sessions("u1")] == [second["id"], first["id"]]
    assert repo.latest_session("u1")["id"] == second["id"]
    assert repo.latest_session("nobody") is None


def test_insert_message_touches_session(repo):
    session = repo.create_session("u1")
    repo.insert_message("u1", session["id"], "hello", "user")

    stored = repo.get_session(session["id"])
    message = repo.list_messages(session["id"])[0]
    assert stored["updated_at"] == message["created_at"]
    assert stored["updated_at"] > session["updated_at"]


def test_returned_rows_are_copies(repo):
    session = repo.create_session("u1")
    session["title"] = "mutated"
    assert repo.get_session(session["id"])["title"] == NEW_CONVERSATION_TITLE


def test_emotion_logs_since_filter(repo):
    analysis = AnalysisResult(reply="Thanks for sharing.", primary_emotion="joy", intensity=0.6)
    repo.insert_emotion_log("u1", analysis)
    repo.insert_emotion_log("u1", analysis)

    logs = repo.list_emotion_logs("u1")
    assert len(logs) == 2
    assert logs[0]["created_at"] > logs[1]["created_at"]
    assert logs[0]["emotion_type"] == "joy"

    cutoff = datetime.fromisoformat(logs[0]["created_at"])
    assert len(repo.list_emotion_logs("u1", since=cutoff)) == 1


def test_crisis_logs_limit(repo):
    for score in (0.7, 0.8, 0.9):
        repo.insert_crisis_log("u1", CrisisEvent(risk_score=score, matched_keywords=("hurt",)))

    latest = repo.list_crisis_logs("u1", limit=1)
    assert len(latest) == 1
    assert latest[0]["risk_score"] == 0.9
    assert latest[0]["trigger_keywords"] == ["hurt"]
    assert len(repo.list_crisis_logs("u1")) == 3


def test_moods_and_profile(repo):
    repo.insert_mood("u1", "😊", "Happy")
    assert repo.list_moods("u1")[0]["mood_name"] == "Happy"

    repo.update_profile_name("u1", "Alex")
    repo.update_profile_name("u1", "Alexandra")
    assert repo._read_tables()["profiles"] == [{"id": "u1", "name": "Alexandra"}]


def test_yaml_repository_persists_between_instances(tmp_path, clock):
    path = tmp_path / "store.yaml"
    repo = YamlRepository(path, clock=clock)
    session = repo.create_session("u1", "Saved chat")
    repo.insert_message("u1", session["id"], "remember me", "user")

    reopened = YamlRepository(path)
    assert reopened.get_session(session["id"])["title"] == "Saved chat"
    assert reopened.list_messages(session["id"])[0]["content"] == "remember me"

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert len(data[SESSIONS_TABLE]) == 1
    assert len(data[MESSAGES_TABLE]) == 1


def test_yaml_repository_missing_file_is_empty(tmp_path):
    assert YamlRepository(tmp_path / "nothing-yet.yaml").list_sessions("u1") == []


def test_yaml_repository_rejects_corrupt_store(tmp_path):
    path = tmp_path / "store.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(PersistenceError):
        YamlRepository(path).list_sessions("u1")


def test_yaml_repository_rejects_table_that_is_not_a_list(tmp_path):
    path = tmp_path / "store.yaml"
    path.write_text("emotion_logs: 5\n", encoding="utf-8")

    with pytest.raises(PersistenceError):
        YamlRepository(path).list_emotion_logs("u1")


def _query_mock(data):
    """Supabase query builder stand-in: every builder call returns itself."""
    query = MagicMock()
    for name in ("select", "insert", "update", "eq", "order", "limit", "gte"):
        getattr(query, name).return_value = query
    query.execute.return_value = MagicMock(data=data)
    client = MagicMock()
    client.table.return_value = query
    return client, query


def test_supabase_latest_session_query():
    client, query = _query_mock([{"id": "s1", "title": "Chat"}])
    repo = SupabaseRepository(client)

    assert repo.latest_session("u1") == {"id": "s1", "title": "Chat"}
    client.table.assert_called_with(SESSIONS_TABLE)
    query.eq.assert_called_with("user_id", "u1")
    query.order.assert_called_with("updated_at", desc=True)
    query.limit.assert_called_with(1)


def test_supabase_emotion_logs_since_uses_gte():
    client, query = _query_mock([])
    since = datetime(2024, 5, 8, tzinfo=timezone.utc)

    SupabaseRepository(client).list_emotion_logs("u1", since=since)

    query.gte.assert_called_once_with("created_at", since.isoformat())


def test_supabase_errors_become_persistence_errors():
    client, query = _query_mock([])
    query.execute.side_effect = RuntimeError("network down")

    with pytest.raises(PersistenceError):
        SupabaseRepository(client).list_moods("u1")


def test_supabase_create_session_without_row_fails():
    client, _ = _query_mock([])
    with pytest.raises(PersistenceError):
        SupabaseRepository(client).create_session("u1")
