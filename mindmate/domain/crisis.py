# mindmate/domain/crisis.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Tuple

from mindmate.domain.models import AnalysisResult, CrisisEvent, ScheduledMessage
from mindmate.exceptions import PersistenceError

logger = logging.getLogger(__name__)

CRISIS_KEYWORDS: Tuple[str, ...] = ("suicide", "kill", "hurt", "die", "end", "harm", "death")
CRISIS_ACTION = "Crisis resources provided"

SAFETY_MESSAGE = (
    "⚠️ I'm concerned about your safety. Please reach out for help:\n\n"
    "📞 National Suicide Prevention Lifeline: 988\n"
    "📱 Crisis Text Line: Text HOME to 741741\n\n"
    "You're not alone. 💙"
)
SAFETY_MESSAGE_DELAY_SECONDS = 0.5


@dataclass(frozen=True)
class CrisisOutcome:
    event: CrisisEvent
    safety_message: ScheduledMessage
    persisted: bool


class CrisisPolicy:
    """Risk threshold rule that logs a crisis event and surfaces safety resources.

    Keywords are looked up in the user's own message, not in the model reply.
    """

    def __init__(
        self,
        threshold: float = 0.7,
        keywords: Sequence[str] = CRISIS_KEYWORDS,
        delay_seconds: float = SAFETY_MESSAGE_DELAY_SECONDS,
    ):
        self.threshold = threshold
        self.keywords = tuple(keywords)
        self.delay_seconds = delay_seconds

    def should_fire(self, analysis: AnalysisResult) -> bool:
        return analysis.risk_score >= self.threshold

    def match_keywords(self, message: str) -> Tuple[str, ...]:
        lower = (message or "").lower()
        return tuple(kw for kw in self.keywords if kw in lower)

    def evaluate(self, analysis: AnalysisResult, message: str) -> Optional[CrisisEvent]:
        if not self.should_fire(analysis):
            return None
        return CrisisEvent(
            risk_score=analysis.risk_score,
            matched_keywords=self.match_keywords(message),
            action_taken=CRISIS_ACTION,
        )

    def safety_message(self) -> ScheduledMessage:
        return ScheduledMessage(text=SAFETY_MESSAGE, delay_seconds=self.delay_seconds)

    def handle(
        self,
        analysis: AnalysisResult,
        message: str,
        record: Callable[[CrisisEvent], Any],
    ) -> Optional[CrisisOutcome]:
        """Persist the event best-effort; the safety message is returned either way."""
        event = self.evaluate(analysis, message)
        if event is None:
            return None

        logger.warning(
            "Crisis policy fired: risk_score=%.2f keywords=%s",
            event.risk_score,
            ",".join(event.matched_keywords) or "-",
        )

        persisted = True
        try:
            record(event)
        except PersistenceError as e:
            persisted = False
            logger.warning("Crisis log was not saved: %s", e)
        except Exception:
            persisted = False
            logger.exception("Crisis log was not saved")

        return CrisisOutcome(event=event, safety_message=self.safety_message(), persisted=persisted)
