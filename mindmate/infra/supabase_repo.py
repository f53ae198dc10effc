# mindmate/infra/supabase_repo.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, List, Optional

from supabase import Client, create_client

from mindmate.core.config import Settings
from mindmate.domain.models import AnalysisResult, CrisisEvent
from mindmate.exceptions import ConfigError, PersistenceError
from mindmate.infra.repository import (
    CRISIS_LOGS_TABLE,
    EMOTION_LOGS_TABLE,
    MESSAGES_TABLE,
    MOOD_JOURNAL_TABLE,
    NEW_CONVERSATION_TITLE,
    PROFILES_TABLE,
    SESSIONS_TABLE,
    Row,
    crisis_log_row,
    emotion_log_row,
    message_row,
    mood_row,
    session_row,
    utc_now,
)

logger = logging.getLogger(__name__)


def create_supabase_client(settings: Settings) -> Client:
    if not settings.supabase_url or not settings.supabase_key:
        raise ConfigError("SUPABASE_URL and SUPABASE_KEY must both be set for the supabase backend.")
    return create_client(settings.supabase_url, settings.supabase_key)


class SupabaseRepository:
    """
    ChatRepository over the hosted Supabase tables.

    The server talks to Supabase with one key (SUPABASE_KEY, normally the
    service-role key) and scopes every query by user_id / session_id itself.
    """

    def __init__(self, client: Client, clock: Callable[[], datetime] = utc_now):
        self.client = client
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseRepository":
        client = create_supabase_client(settings)
        logger.info("Supabase repository initialized (url=%s)", settings.supabase_url)
        return cls(client)

    def _run(self, action: str, build_query: Callable[[], Any]) -> List[Row]:
        try:
            response = build_query().execute()
        except Exception as e:
            raise PersistenceError(f"Supabase {action} failed: {e}") from e
        return list(response.data or [])

    # ---------------------------
    # sessions
    # ---------------------------

    def latest_session(self, user_id: str) -> Optional[Row]:
        rows = self._run(
            "latest_session",
            lambda: self.client.table(SESSIONS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("updated_at", desc=True)
            .limit(1),
        )
        return rows[0] if rows else None

    def list_sessions(self, user_id: str) -> List[Row]:
        return self._run(
            "list_sessions",
            lambda: self.client.table(SESSIONS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("updated_at", desc=True),
        )

    def get_session(self, session_id: str) -> Optional[Row]:
        rows = self._run(
            "get_session",
            lambda: self.client.table(SESSIONS_TABLE).select("*").eq("id", session_id).limit(1),
        )
        return rows[0] if rows else None

    def create_session(self, user_id: str, title: str = NEW_CONVERSATION_TITLE) -> Row:
        rows = self._run(
            "create_session",
            lambda: self.client.table(SESSIONS_TABLE).insert(session_row(user_id, title, self.clock())),
        )
        if not rows:
            raise PersistenceError("Supabase create_session returned no row")
        return rows[0]

    def update_session(self, session_id: str, **fields: Any) -> None:
        self._run(
            "update_session",
            lambda: self.client.table(SESSIONS_TABLE).update(fields).eq("id", session_id),
        )

    # ---------------------------
    # messages
    # ---------------------------

    def insert_message(self, user_id: str, session_id: str, content: str, sender: str) -> None:
        now = self.clock()
        self._run(
            "insert_message",
            lambda: self.client.table(MESSAGES_TABLE).insert(
                message_row(user_id, session_id, content, sender, now)
            ),
        )
        self.update_session(session_id, updated_at=now.isoformat())

    def list_messages(self, session_id: str) -> List[Row]:
        return self._run(
            "list_messages",
            lambda: self.client.table(MESSAGES_TABLE)
            .select("*")
            .eq("session_id", session_id)
            .order("created_at"),
        )

    # ---------------------------
    # emotion / crisis / mood
    # ---------------------------

    def insert_emotion_log(self, user_id: str, analysis: AnalysisResult) -> None:
        self._run(
            "insert_emotion_log",
            lambda: self.client.table(EMOTION_LOGS_TABLE).insert(
                emotion_log_row(user_id, analysis, self.clock())
            ),
        )

    def list_emotion_logs(self, user_id: str, since: Optional[datetime] = None) -> List[Row]:
        def query():
            q = self.client.table(EMOTION_LOGS_TABLE).select("*").eq("user_id", user_id)
            if since is not None:
                q = q.gte("created_at", since.isoformat())
            return q.order("created_at", desc=True)

        return self._run("list_emotion_logs", query)

    def insert_crisis_log(self, user_id: str, event: CrisisEvent) -> None:
        self._run(
            "insert_crisis_log",
            lambda: self.client.table(CRISIS_LOGS_TABLE).insert(crisis_log_row(user_id, event, self.clock())),
        )

    def list_crisis_logs(self, user_id: str, limit: Optional[int] = None) -> List[Row]:
        def query():
            q = (
                self.client.table(CRISIS_LOGS_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
            )
            return q.limit(limit) if limit is not None else q

        return self._run("list_crisis_logs", query)

    def insert_mood(self, user_id: str, emoji: str, mood_name: str) -> None:
        self._run(
            "insert_mood",
            lambda: self.client.table(MOOD_JOURNAL_TABLE).insert(mood_row(user_id, emoji, mood_name, self.clock())),
        )

    def list_moods(self, user_id: str) -> List[Row]:
        return self._run(
            "list_moods",
            lambda: self.client.table(MOOD_JOURNAL_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True),
        )

    def update_profile_name(self, user_id: str, name: str) -> None:
        self._run(
            "update_profile_name",
            lambda: self.client.table(PROFILES_TABLE).update({"name": name}).eq("id", user_id),
        )
