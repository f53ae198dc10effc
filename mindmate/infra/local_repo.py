# mindmate/infra/local_repo.py
"""
Local storage backends.

- InMemoryRepository : tables kept in process memory
- YamlRepository     : same tables persisted to a single YAML file, for the
                       terminal client and offline development

store yaml format:
{
  "conversation_sessions": [{id, user_id, title, created_at, updated_at}, ...],
  "messages": [...],
  ...
}
"""
from __future__ import annotations

import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

import yaml

from mindmate.domain.models import AnalysisResult, CrisisEvent
from mindmate.exceptions import PersistenceError
from mindmate.infra.repository import (
    CRISIS_LOGS_TABLE,
    EMOTION_LOGS_TABLE,
    MESSAGES_TABLE,
    MOOD_JOURNAL_TABLE,
    NEW_CONVERSATION_TITLE,
    PROFILES_TABLE,
    SESSIONS_TABLE,
    TABLES,
    Row,
    crisis_log_row,
    emotion_log_row,
    message_row,
    mood_row,
    session_row,
    utc_now,
)
from mindmate.infra.yaml_io import load_yaml, save_yaml

Tables = Dict[str, List[Row]]


def _empty_tables() -> Tables:
    return {name: [] for name in TABLES}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _created_at(row: Row) -> datetime:
    return _as_utc(datetime.fromisoformat(str(row["created_at"])))


def _newest_first(rows: List[Row], key: str = "created_at") -> List[Row]:
    return sorted(rows, key=lambda r: str(r.get(key) or ""), reverse=True)


class InMemoryRepository:
    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.clock = clock
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)
        self._lock = threading.RLock()
        self._tables: Tables = _empty_tables()

    # storage hooks (YamlRepository swaps these for file IO)
    def _read_tables(self) -> Tables:
        return self._tables

    def _write_tables(self, tables: Tables) -> None:
        self._tables = tables

    @contextmanager
    def _tables_ctx(self, write: bool = False) -> Iterator[Tables]:
        with self._lock:
            tables = self._read_tables()
            yield tables
            if write:
                self._write_tables(tables)

    def _insert(self, table: str, row: Row) -> Row:
        record = {"id": self._new_id(), **row}
        with self._tables_ctx(write=True) as tables:
            tables.setdefault(table, []).append(record)
        return dict(record)

    def _select(self, table: str, predicate: Callable[[Row], bool]) -> List[Row]:
        with self._tables_ctx() as tables:
            return [dict(r) for r in tables.get(table, []) if predicate(r)]

    # ---------------------------
    # sessions
    # ---------------------------

    def latest_session(self, user_id: str) -> Optional[Row]:
        sessions = self.list_sessions(user_id)
        return sessions[0] if sessions else None

    def list_sessions(self, user_id: str) -> List[Row]:
        rows = self._select(SESSIONS_TABLE, lambda r: r.get("user_id") == user_id)
        return _newest_first(rows, key="updated_at")

    def get_session(self, session_id: str) -> Optional[Row]:
        rows = self._select(SESSIONS_TABLE, lambda r: r.get("id") == session_id)
        return rows[0] if rows else None

    def create_session(self, user_id: str, title: str = NEW_CONVERSATION_TITLE) -> Row:
        return self._insert(SESSIONS_TABLE, session_row(user_id, title, self.clock()))

    def update_session(self, session_id: str, **fields: Any) -> None:
        with self._tables_ctx(write=True) as tables:
            for row in tables.get(SESSIONS_TABLE, []):
                if row.get("id") == session_id:
                    row.update(fields)

    # ---------------------------
    # messages
    # ---------------------------

    def insert_message(self, user_id: str, session_id: str, content: str, sender: str) -> None:
        now = self.clock()
        self._insert(MESSAGES_TABLE, message_row(user_id, session_id, content, sender, now))
        self.update_session(session_id, updated_at=now.isoformat())

    def list_messages(self, session_id: str) -> List[Row]:
        rows = self._select(MESSAGES_TABLE, lambda r: r.get("session_id") == session_id)
        return sorted(rows, key=lambda r: str(r.get("created_at") or ""))

    # ---------------------------
    # emotion / crisis / mood
    # ---------------------------

    def insert_emotion_log(self, user_id: str, analysis: AnalysisResult) -> None:
        self._insert(EMOTION_LOGS_TABLE, emotion_log_row(user_id, analysis, self.clock()))

    def list_emotion_logs(self, user_id: str, since: Optional[datetime] = None) -> List[Row]:
        rows = self._select(EMOTION_LOGS_TABLE, lambda r: r.get("user_id") == user_id)
        if since is not None:
            cutoff = _as_utc(since)
            rows = [r for r in rows if _created_at(r) >= cutoff]
        return _newest_first(rows)

    def insert_crisis_log(self, user_id: str, event: CrisisEvent) -> None:
        self._insert(CRISIS_LOGS_TABLE, crisis_log_row(user_id, event, self.clock()))

    def list_crisis_logs(self, user_id: str, limit: Optional[int] = None) -> List[Row]:
        rows = _newest_first(self._select(CRISIS_LOGS_TABLE, lambda r: r.get("user_id") == user_id))
        return rows[:limit] if limit is not None else rows

    def insert_mood(self, user_id: str, emoji: str, mood_name: str) -> None:
        self._insert(MOOD_JOURNAL_TABLE, mood_row(user_id, emoji, mood_name, self.clock()))

    def list_moods(self, user_id: str) -> List[Row]:
        return _newest_first(self._select(MOOD_JOURNAL_TABLE, lambda r: r.get("user_id") == user_id))

    def update_profile_name(self, user_id: str, name: str) -> None:
        with self._tables_ctx(write=True) as tables:
            profiles = tables.setdefault(PROFILES_TABLE, [])
            for row in profiles:
                if row.get("id") == user_id:
                    row["name"] = name
                    return
            profiles.append({"id": user_id, "name": name})


class YamlRepository(InMemoryRepository):
    """InMemoryRepository whose tables live in one YAML file."""

    def __init__(self, path: Path, **kwargs: Any):
        super().__init__(**kwargs)
        self.path = Path(path)

    def _read_tables(self) -> Tables:
        try:
            raw = load_yaml(self.path, default={})
        except (OSError, yaml.YAMLError) as e:
            raise PersistenceError(f"Could not read store {self.path}: {e}") from e

        if not isinstance(raw, dict):
            raise PersistenceError(f"Store {self.path} is not a mapping")

        tables = _empty_tables()
        for name in TABLES:
            rows = raw.get(name) or []
            if not isinstance(rows, list):
                raise PersistenceError(f"Table {name} in store {self.path} is not a list")
            tables[name] = [r for r in rows if isinstance(r, dict)]
        return tables

    def _write_tables(self, tables: Tables) -> None:
        try:
            save_yaml(self.path, tables)
        except (OSError, yaml.YAMLError) as e:
            raise PersistenceError(f"Could not write store {self.path}: {e}") from e
