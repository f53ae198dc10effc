from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from mindmate.domain.crisis import CrisisPolicy
from mindmate.domain.models import (
    SENDER_BOT,
    SENDER_USER,
    AnalysisResult,
    ConversationTurn,
    TranscriptWindow,
    TurnResult,
    UserIdentity,
)
from mindmate.domain.sessions import group_sessions, title_from_message
from mindmate.exceptions import ChatInputError, ExchangeInProgressError, PersistenceError
from mindmate.infra.repository import NEW_CONVERSATION_TITLE, ChatRepository, Row, utc_now
from mindmate.usecases.analyze_message import ConversationAnalyzer

logger = logging.getLogger(__name__)

APOLOGY_REPLY = "I apologize, but I encountered an error. Please try again. 💙"


@dataclass
class SessionContext:
    """Everything the orchestrator owns for one signed-in user."""

    user: UserIdentity
    window: TranscriptWindow = field(default_factory=TranscriptWindow)
    session_id: Optional[str] = None
    session_title: Optional[str] = None


class ChatService:
    """
    Runs one user's conversation over the analyzer and the storage backend.

    send_message() ordering:
    append-user -> persist-user -> analyze -> append-assistant -> persist-assistant
    -> persist-emotion-log -> maybe-rename-session -> maybe-fire-crisis-policy

    Storage steps are best effort: a PersistenceError is logged and the
    exchange carries on. Only one exchange runs at a time.
    """

    def __init__(
        self,
        repository: ChatRepository,
        analyzer: ConversationAnalyzer,
        crisis_policy: CrisisPolicy,
        context: SessionContext,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.analyzer = analyzer
        self.crisis_policy = crisis_policy
        self.context = context
        self.clock = clock
        self._exchange_lock = threading.Lock()

    @property
    def user_id(self) -> str:
        return self.context.user.id

    @property
    def busy(self) -> bool:
        return self._exchange_lock.locked()

    def _best_effort(self, action: str, fn: Callable[..., Any], *args: Any) -> bool:
        try:
            fn(*args)
            return True
        except PersistenceError as e:
            logger.warning("%s failed (user_id=%s): %s", action, self.user_id, e)
            return False

    def _acquire(self) -> None:
        if not self._exchange_lock.acquire(blocking=False):
            raise ExchangeInProgressError("Please wait for the current reply before sending again.")

    def _session_info(self) -> Dict[str, Any]:
        return {"session_id": self.context.session_id, "title": self.context.session_title}

    # ---------------------------
    # sessions
    # ---------------------------

    def _start_new_conversation(self) -> Dict[str, Any]:
        try:
            row = self.repository.create_session(self.user_id, NEW_CONVERSATION_TITLE)
        except PersistenceError as e:
            logger.warning("Could not create a conversation (user_id=%s): %s", self.user_id, e)
            return self._session_info()

        self.context.session_id = row.get("id")
        self.context.session_title = row.get("title") or NEW_CONVERSATION_TITLE
        self.context.window.reset()
        logger.info("New conversation started: session_id=%s", self.context.session_id)
        return self._session_info()

    def new_conversation(self) -> Dict[str, Any]:
        self._acquire()
        try:
            return self._start_new_conversation()
        finally:
            self._exchange_lock.release()

    def load_or_create_session(self) -> Dict[str, Any]:
        """Resume the most recently updated conversation, or start one."""
        self._acquire()
        try:
            try:
                latest = self.repository.latest_session(self.user_id)
            except PersistenceError as e:
                logger.warning("Could not load latest conversation (user_id=%s): %s", self.user_id, e)
                latest = None

            if not latest:
                return self._start_new_conversation()

            self.context.session_id = latest.get("id")
            self.context.session_title = latest.get("title")
            self._refill_window()
            return self._session_info()
        finally:
            self._exchange_lock.release()

    def open_session(self, session_id: str) -> bool:
        """Switch to another stored conversation. False when it is already active."""
        self._acquire()
        try:
            if session_id == self.context.session_id:
                return False

            try:
                session = self.repository.get_session(session_id)
            except PersistenceError as e:
                logger.warning("Could not look up conversation %s: %s", session_id, e)
                session = None

            if not session or session.get("user_id") != self.user_id:
                raise ChatInputError("That conversation could not be found.")

            self.context.session_id = session_id
            self.context.session_title = session.get("title")
            self.context.window.reset()
            self._refill_window()
            return True
        finally:
            self._exchange_lock.release()

    def stored_messages(self) -> List[Row]:
        if not self.context.session_id:
            return []
        try:
            return self.repository.list_messages(self.context.session_id)
        except PersistenceError as e:
            logger.warning("Could not load messages (session_id=%s): %s", self.context.session_id, e)
            return []

    def _refill_window(self) -> None:
        if not self.context.session_id:
            return
        try:
            rows = self.repository.list_messages(self.context.session_id)
        except PersistenceError as e:
            logger.warning("Could not load messages (session_id=%s): %s", self.context.session_id, e)
            return

        self.context.window.reset()
        for row in rows:
            self.context.window.append(
                ConversationTurn.from_sender(row.get("sender") or "", row.get("content") or "")
            )

    def list_history(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        try:
            sessions = self.repository.list_sessions(self.user_id)
        except PersistenceError as e:
            logger.warning("Could not load chat history (user_id=%s): %s", self.user_id, e)
            sessions = []

        groups = group_sessions(sessions, now or self.clock(), self.context.session_id)
        return {
            "groups": groups,
            "counts": {name: len(items) for name, items in groups.items()},
        }

    # ---------------------------
    # exchange
    # ---------------------------

    def _save_message(self, content: str, sender: str) -> None:
        if not self.context.session_id:
            return
        self._best_effort(
            f"Saving {sender} message",
            self.repository.insert_message,
            self.user_id,
            self.context.session_id,
            content,
            sender,
        )

    def _rename_session_if_needed(self, message: str) -> None:
        session_id = self.context.session_id
        if not session_id:
            return
        try:
            session = self.repository.get_session(session_id)
            if session and session.get("title") == NEW_CONVERSATION_TITLE:
                title = title_from_message(message)
                self.repository.update_session(session_id, title=title, updated_at=self.clock().isoformat())
                self.context.session_title = title
        except PersistenceError as e:
            logger.warning("Updating conversation title failed (session_id=%s): %s", session_id, e)

    def _run_exchange(self, message: str) -> TurnResult:
        ctx = self.context
        if not ctx.session_id:
            self._start_new_conversation()

        # 1) user turn
        history = ctx.window.snapshot()
        ctx.window.append_user(message)
        self._save_message(message, SENDER_USER)

        # 2) analysis (never raises)
        analysis: AnalysisResult = self.analyzer.analyze(message, history)

        # 3) assistant turn + logs
        ctx.window.append_assistant(analysis.reply)
        try:
            self._save_message(analysis.reply, SENDER_BOT)
            self._best_effort("Saving emotion log", self.repository.insert_emotion_log, self.user_id, analysis)

            # 4) title on first message
            self._rename_session_if_needed(message)
        except Exception:
            # the reply and the crisis check still go out
            logger.exception("Storing the exchange failed (user_id=%s)", self.user_id)

        # 5) crisis
        follow_ups = ()
        outcome = self.crisis_policy.handle(
            analysis,
            message,
            lambda event: self.repository.insert_crisis_log(self.user_id, event),
        )
        if outcome is not None:
            follow_ups = (outcome.safety_message,)

        return TurnResult(
            reply=analysis.reply,
            analysis=analysis,
            follow_ups=follow_ups,
            session_id=ctx.session_id,
            session_title=ctx.session_title,
        )

    def send_message(self, text: str) -> TurnResult:
        message = (text or "").strip()
        if not message:
            raise ChatInputError("Please type a message first.")

        self._acquire()
        try:
            return self._run_exchange(message)
        except Exception:
            logger.exception("Chat exchange failed (user_id=%s)", self.user_id)
            return TurnResult(
                reply=APOLOGY_REPLY,
                session_id=self.context.session_id,
                session_title=self.context.session_title,
                degraded=True,
            )
        finally:
            self._exchange_lock.release()


class SessionRegistry:
    """One ChatService per signed-in user; entries idle longer than `idle_seconds` are evicted."""

    def __init__(
        self,
        factory: Callable[[UserIdentity], ChatService],
        idle_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = factory
        self._idle_seconds = idle_seconds
        self._clock = clock
        self._services: Dict[str, ChatService] = {}
        self._last_used: Dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._services)

    def _evict_idle(self, now: float) -> None:
        if self._idle_seconds is None:
            return
        for user_id, last_used in list(self._last_used.items()):
            if now - last_used <= self._idle_seconds or self._services[user_id].busy:
                continue
            self._services.pop(user_id)
            self._last_used.pop(user_id)
            logger.info("Evicted idle chat service (user_id=%s)", user_id)

    def get(self, user: UserIdentity) -> ChatService:
        with self._lock:
            now = self._clock()
            self._evict_idle(now)
            service = self._services.get(user.id)
            if service is None:
                service = self._factory(user)
                self._services[user.id] = service
            self._last_used[user.id] = now
            return service

    def drop(self, user_id: str) -> None:
        with self._lock:
            self._services.pop(user_id, None)
            self._last_used.pop(user_id, None)
