# mindmate/domain/models.py
from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Deque, Dict, Iterable, Optional, Tuple

EMOTIONS: Tuple[str, ...] = (
    "joy",
    "sadness",
    "anger",
    "fear",
    "anxiety",
    "neutral",
    "frustration",
    "loneliness",
    "hope",
)

DEFAULT_EMOTION = "neutral"
DEFAULT_INTENSITY = 0.5
DEFAULT_RISK_SCORE = 0.0
MIN_REPLY_LENGTH = 3

# where an AnalysisResult came from
SOURCE_MODEL = "model"
SOURCE_SALVAGED = "salvaged"
SOURCE_FALLBACK = "fallback"

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

SENDER_USER = "user"
SENDER_BOT = "bot"


def normalize_emotion(value: Any) -> str:
    """Map anything outside the closed emotion vocabulary to neutral."""
    if not isinstance(value, str):
        return DEFAULT_EMOTION
    v = value.strip().lower()
    return v if v in EMOTIONS else DEFAULT_EMOTION


def is_usable_reply(value: Any) -> bool:
    return isinstance(value, str) and len(value.strip()) >= MIN_REPLY_LENGTH


@dataclass(frozen=True)
class AnalysisResult:
    """Structured emotion / risk assessment of one user message.

    - reply: text shown to the user (at least 3 non-blank characters)
    - primary_emotion: one of EMOTIONS
    - intensity, risk_score: floats in [0, 1]
    - hidden_emotion, distortion: free text or None
    - source: model | salvaged | fallback
    """

    reply: str
    primary_emotion: str = DEFAULT_EMOTION
    intensity: float = DEFAULT_INTENSITY
    hidden_emotion: Optional[str] = None
    risk_score: float = DEFAULT_RISK_SCORE
    distortion: Optional[str] = None
    source: str = SOURCE_MODEL

    def __post_init__(self) -> None:
        if not is_usable_reply(self.reply):
            raise ValueError(f"reply must have at least {MIN_REPLY_LENGTH} characters")
        if self.primary_emotion not in EMOTIONS:
            raise ValueError(f"unknown emotion: {self.primary_emotion!r}")

    @property
    def intensity_label(self) -> str:
        if self.intensity >= 0.7:
            return "High"
        if self.intensity >= 0.4:
            return "Medium"
        return "Low"

    def badge(self) -> Optional[str]:
        """Emotion badge for the bot bubble; neutral shows none."""
        if self.primary_emotion == DEFAULT_EMOTION:
            return None
        return f"Detected: {self.primary_emotion.capitalize()} ({self.intensity_label})"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ConversationTurn:
    role: str  # "user" | "assistant"
    text: str

    @classmethod
    def from_sender(cls, sender: str, text: str) -> "ConversationTurn":
        """Stored messages use user/bot; anything but user is the assistant."""
        role = ROLE_USER if sender == SENDER_USER else ROLE_ASSISTANT
        return cls(role=role, text=text)


class TranscriptWindow:
    """Most recent turns of the active conversation, bounded to `limit`."""

    def __init__(self, limit: int = 10, turns: Iterable[ConversationTurn] = ()):
        self.limit = limit
        self._turns: Deque[ConversationTurn] = deque(turns, maxlen=limit)

    def append(self, turn: ConversationTurn) -> None:
        self._turns.append(turn)

    def append_user(self, text: str) -> None:
        self.append(ConversationTurn(ROLE_USER, text))

    def append_assistant(self, text: str) -> None:
        self.append(ConversationTurn(ROLE_ASSISTANT, text))

    def snapshot(self) -> Tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def reset(self) -> None:
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)


@dataclass(frozen=True)
class CrisisEvent:
    risk_score: float
    matched_keywords: Tuple[str, ...] = ()
    action_taken: str = "Crisis resources provided"


@dataclass(frozen=True)
class ScheduledMessage:
    """A bot message the presentation layer shows after `delay_seconds`."""

    text: str
    delay_seconds: float = 0.0


@dataclass(frozen=True)
class UserIdentity:
    id: str
    email: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class TurnResult:
    reply: str
    analysis: Optional[AnalysisResult] = None
    follow_ups: Tuple[ScheduledMessage, ...] = field(default_factory=tuple)
    session_id: Optional[str] = None
    session_title: Optional[str] = None
    degraded: bool = False
