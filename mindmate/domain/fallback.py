# mindmate/domain/fallback.py
from __future__ import annotations

import random
import re
from typing import Callable, Dict, Optional, Sequence

from mindmate.domain.models import SOURCE_FALLBACK, AnalysisResult

Chooser = Callable[[Sequence[str]], str]

POSITIVE_RE = re.compile(r"good|great|fine|chill|happy|fun|awesome|well|okay|ok\b")
GREETING_RE = re.compile(r"^(hi|hello|hey|hola|sup|yo)\b")
NEGATIVE_RE = re.compile(r"sad|down|bad|upset|depressed|lonely|hurt|crying")
STRESS_RE = re.compile(r"stress|anxious|worried|nervous|overwhelm|panic")

DEFAULT_POOLS: Dict[str, Sequence[str]] = {
    "positive": (
        "That's wonderful to hear! 😊 What's been making things feel good for you?",
        "I'm glad you're feeling good! 🌟 Anything exciting happening?",
        "That's great! 😊 It's nice to hear you're doing well. What's on your mind?",
    ),
    "greeting": (
        "Hey there! 👋 How are you doing today?",
        "Hello! 😊 It's great to see you. How's your day going?",
        "Hi! 🌟 What's on your mind today?",
    ),
    "negative": (
        "I'm sorry you're feeling this way. 💙 Thank you for sharing with me. "
        "Would you like to talk about what's going on?",
    ),
    "stress": (
        "It sounds like you have a lot on your mind. 💙 Take a deep breath. "
        "I'm here to listen. What's been causing you the most stress?",
    ),
    "default": (
        "Thanks for sharing! 😊 Tell me more about what's going on with you today.",
    ),
}


class FallbackResponder:
    """Keyword rules used when the model is unreachable or its answer is unusable.

    Rules are checked in order on the lower-cased message and the first match
    wins. The result never carries a risk score, so this path alone can never
    trigger the crisis policy.
    """

    def __init__(
        self,
        pools: Optional[Dict[str, Sequence[str]]] = None,
        choose: Chooser = random.choice,
    ):
        self.pools = dict(DEFAULT_POOLS)
        if pools:
            self.pools.update(pools)
        self.choose = choose

    def _result(self, pool: str, emotion: str, intensity: float) -> AnalysisResult:
        return AnalysisResult(
            reply=self.choose(self.pools[pool]),
            primary_emotion=emotion,
            intensity=intensity,
            risk_score=0.0,
            source=SOURCE_FALLBACK,
        )

    def respond(self, message: str) -> AnalysisResult:
        lower = (message or "").lower()

        if POSITIVE_RE.search(lower):
            return self._result("positive", "joy", 0.6)

        if GREETING_RE.search(lower):
            return self._result("greeting", "neutral", 0.5)

        if NEGATIVE_RE.search(lower):
            return self._result("negative", "sadness", 0.7)

        if STRESS_RE.search(lower):
            return self._result("stress", "anxiety", 0.7)

        return self._result("default", "neutral", 0.5)
