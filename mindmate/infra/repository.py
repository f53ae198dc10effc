# mindmate/infra/repository.py
"""
Storage interface shared by every backend.

Rows are plain dicts whose keys mirror the hosted tables
(conversation_sessions, messages, emotion_logs, crisis_logs, mood_journal, profiles).
Every backend raises PersistenceError on any failure; callers decide whether
that failure matters (the chat pipeline logs it and carries on).
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from mindmate.core.config import Settings
from mindmate.domain.models import AnalysisResult, CrisisEvent

Row = Dict[str, Any]

SESSIONS_TABLE = "conversation_sessions"
MESSAGES_TABLE = "messages"
EMOTION_LOGS_TABLE = "emotion_logs"
CRISIS_LOGS_TABLE = "crisis_logs"
MOOD_JOURNAL_TABLE = "mood_journal"
PROFILES_TABLE = "profiles"

TABLES = (
    SESSIONS_TABLE,
    MESSAGES_TABLE,
    EMOTION_LOGS_TABLE,
    CRISIS_LOGS_TABLE,
    MOOD_JOURNAL_TABLE,
    PROFILES_TABLE,
)

NEW_CONVERSATION_TITLE = "New Conversation"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def session_row(user_id: str, title: str, now: datetime) -> Row:
    ts = now.isoformat()
    return {"user_id": user_id, "title": title, "created_at": ts, "updated_at": ts}


def message_row(user_id: str, session_id: str, content: str, sender: str, now: datetime) -> Row:
    return {
        "user_id": user_id,
        "session_id": session_id,
        "content": content,
        "sender": sender,
        "created_at": now.isoformat(),
    }


def emotion_log_row(user_id: str, analysis: AnalysisResult, now: datetime) -> Row:
    return {
        "user_id": user_id,
        "emotion_type": analysis.primary_emotion,
        "intensity_score": analysis.intensity,
        "hidden_emotion": analysis.hidden_emotion,
        "cognitive_distortion": analysis.distortion,
        "created_at": now.isoformat(),
    }


def crisis_log_row(user_id: str, event: CrisisEvent, now: datetime) -> Row:
    return {
        "user_id": user_id,
        "risk_score": event.risk_score,
        "trigger_keywords": list(event.matched_keywords),
        "action_taken": event.action_taken,
        "created_at": now.isoformat(),
    }


def mood_row(user_id: str, emoji: str, mood_name: str, now: datetime) -> Row:
    return {
        "user_id": user_id,
        "mood_emoji": emoji,
        "mood_name": mood_name,
        "created_at": now.isoformat(),
    }


class ChatRepository(Protocol):
    # sessions
    def latest_session(self, user_id: str) -> Optional[Row]: ...
    def list_sessions(self, user_id: str) -> List[Row]: ...
    def get_session(self, session_id: str) -> Optional[Row]: ...
    def create_session(self, user_id: str, title: str = NEW_CONVERSATION_TITLE) -> Row: ...
    def update_session(self, session_id: str, **fields: Any) -> None: ...

    # messages (insert also touches the session's updated_at)
    def insert_message(self, user_id: str, session_id: str, content: str, sender: str) -> None: ...
    def list_messages(self, session_id: str) -> List[Row]: ...

    # emotion / crisis / mood history, newest first
    def insert_emotion_log(self, user_id: str, analysis: AnalysisResult) -> None: ...
    def list_emotion_logs(self, user_id: str, since: Optional[datetime] = None) -> List[Row]: ...
    def insert_crisis_log(self, user_id: str, event: CrisisEvent) -> None: ...
    def list_crisis_logs(self, user_id: str, limit: Optional[int] = None) -> List[Row]: ...
    def insert_mood(self, user_id: str, emoji: str, mood_name: str) -> None: ...
    def list_moods(self, user_id: str) -> List[Row]: ...

    def update_profile_name(self, user_id: str, name: str) -> None: ...


def create_repository(settings: Settings) -> ChatRepository:
    """Pick the storage backend named by STORAGE_BACKEND."""
    if settings.storage_backend == "supabase":
        from mindmate.infra.supabase_repo import SupabaseRepository

        return SupabaseRepository.from_settings(settings)

    from mindmate.infra.local_repo import YamlRepository

    return YamlRepository(settings.yaml_store_path)
