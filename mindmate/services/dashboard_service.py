from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from mindmate.domain.aggregation import (
    build_statistics,
    compute_progress,
    compute_streak,
    emotion_chart,
    ensure_aware,
    greeting_for,
    pick_affirmation,
    summarize_crises,
    week_ago,
    weekly_emotion_breakdown,
)
from mindmate.domain.models import UserIdentity
from mindmate.exceptions import ChatInputError, PersistenceError
from mindmate.infra.repository import ChatRepository, Row, utc_now

logger = logging.getLogger(__name__)


class DashboardService:
    """
    Numbers behind the dashboard page.

    The reads are independent of each other, so they run concurrently; a failed
    read only empties its own region of the page.
    """

    def __init__(
        self,
        repository: ChatRepository,
        clock: Callable[[], datetime] = utc_now,
        choose: Optional[Callable[[Sequence[str]], str]] = None,
    ):
        self.repository = repository
        self.clock = clock
        self.choose = choose

    async def _read(self, label: str, fn: Callable[..., List[Row]], *args: Any) -> List[Row]:
        try:
            return await asyncio.to_thread(fn, *args)
        except PersistenceError as e:
            logger.warning("Dashboard read '%s' failed: %s", label, e)
            return []

    async def load(self, user: UserIdentity, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = ensure_aware(now or self.clock())
        user_id = user.id

        emotions, crises, moods, weekly, last_crisis = await asyncio.gather(
            self._read("emotion_logs", self.repository.list_emotion_logs, user_id),
            self._read("crisis_logs", self.repository.list_crisis_logs, user_id),
            self._read("mood_journal", self.repository.list_moods, user_id),
            self._read("weekly_emotions", self.repository.list_emotion_logs, user_id, week_ago(now)),
            self._read("last_crisis", self.repository.list_crisis_logs, user_id, 1),
        )

        affirmation = pick_affirmation(self.choose) if self.choose else pick_affirmation()

        return {
            "greeting": greeting_for(now.hour, user.name),
            "affirmation": affirmation,
            "statistics": build_statistics(emotions, now),
            "emotion_chart": emotion_chart(emotions),
            "weekly_emotions": weekly_emotion_breakdown(weekly),
            "crisis_alerts": summarize_crises(crises),
            "streak": compute_streak(moods, now),
            "progress": compute_progress(last_crisis[0].get("created_at") if last_crisis else None, now),
        }

    def save_mood(self, user: UserIdentity, emoji: str, mood_name: str) -> None:
        """Mood journal entry; unlike chat logs, a failure here is reported to the caller."""
        if not emoji or not mood_name:
            raise ChatInputError("Pick a mood first.")
        self.repository.insert_mood(user.id, emoji, mood_name)
        logger.info("Mood logged: user_id=%s mood=%s", user.id, mood_name)
