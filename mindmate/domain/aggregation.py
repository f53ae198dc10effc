from __future__ import annotations

import math
import random
from collections import Counter
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

Row = Dict[str, Any]

NO_DATA_LABEL = "No data"

EMOTION_COLORS: Dict[str, str] = {
    "joy": "#FFD93D",
    "sadness": "#7FA2D9",
    "anger": "#FF6B6B",
    "anxiety": "#FF9B85",
    "neutral": "#A0AEC0",
    "fear": "#9B87E8",
    NO_DATA_LABEL.lower(): "#E0E0E0",
}
DEFAULT_COLOR = "#A0AEC0"

AFFIRMATIONS: Sequence[str] = (
    "You are doing your best, and that is enough.",
    "You are strong, capable, and resilient.",
    "Your feelings are valid, and you matter.",
    "This too shall pass.",
    "You deserve compassion, especially from yourself.",
    "Every day is a new opportunity.",
    "Progress, not perfection.",
)

PROGRESS_GOAL_DAYS = 30


def parse_timestamp(value: Any, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """ISO string (or datetime) -> aware datetime in `tz` (UTC by default)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz or timezone.utc)


def ensure_aware(now: datetime) -> datetime:
    return now if now.tzinfo is not None else now.replace(tzinfo=timezone.utc)


def week_ago(now: datetime) -> datetime:
    """Midnight seven days before `now`."""
    start = now - timedelta(days=7)
    return start.replace(hour=0, minute=0, second=0, microsecond=0)


def capitalize_first(text: str) -> str:
    return text[:1].upper() + text[1:] if text else ""


def count_emotions(emotions: Iterable[Row]) -> Dict[str, int]:
    """Frequency per emotion type for the bar chart."""
    counts: Dict[str, int] = {}
    for row in emotions:
        emotion = row.get("emotion_type")
        if emotion:
            counts[emotion] = counts.get(emotion, 0) + 1
    return counts


def build_statistics(emotions: List[Row], now: datetime) -> Dict[str, Any]:
    """Total logs, most common emotion and logs since a week ago."""
    now = ensure_aware(now)
    counts = count_emotions(emotions)

    most_common = "-"
    if counts:
        # ties go to the emotion seen last (logs arrive newest first)
        winner = None
        for emotion, count in counts.items():
            if winner is None or count >= counts[winner]:
                winner = emotion
        most_common = capitalize_first(winner)

    cutoff = week_ago(now)
    this_week = 0
    for row in emotions:
        created = parse_timestamp(row.get("created_at"), now.tzinfo)
        if created is not None and created > cutoff:
            this_week += 1

    return {
        "total_conversations": len(emotions),
        "most_common_emotion": most_common,
        "this_week": this_week,
    }


def emotion_chart(emotions: List[Row]) -> Dict[str, Any]:
    counts = count_emotions(emotions) or {NO_DATA_LABEL: 1}
    return {
        "labels": [capitalize_first(label) for label in counts],
        "values": list(counts.values()),
    }


def weekly_emotion_breakdown(weekly_emotions: List[Row]) -> Dict[str, Any]:
    """Pie chart data; a log without a type counts as neutral."""
    counts: Counter = Counter()
    for row in weekly_emotions:
        counts[row.get("emotion_type") or "neutral"] += 1
    if not counts:
        counts[NO_DATA_LABEL] = 1

    labels = list(counts.keys())
    return {
        "labels": [capitalize_first(label) for label in labels],
        "values": [counts[label] for label in labels],
        "colors": [EMOTION_COLORS.get(label.lower(), DEFAULT_COLOR) for label in labels],
    }


def risk_level(risk_score: float) -> str:
    if risk_score >= 0.9:
        return "Critical"
    if risk_score >= 0.7:
        return "High"
    return "Moderate"


def summarize_crises(crises: List[Row], limit: int = 5) -> List[Dict[str, Any]]:
    summary = []
    for row in crises[:limit]:
        score = float(row.get("risk_score") or 0.0)
        summary.append(
            {
                "risk_level": risk_level(score),
                "risk_percent": int(round(score * 100)),
                "created_at": row.get("created_at"),
            }
        )
    return summary


def _streak_message(streak: int) -> str:
    if streak >= 7:
        return "🎉 One week streak!"
    if streak >= 3:
        return "💪 Great start!"
    if streak >= 1:
        return "✨ Keep it up!"
    return "Log your mood to start!"


def compute_streak(mood_entries: List[Row], now: datetime) -> Dict[str, Any]:
    """Consecutive days, ending today, that have at least one mood entry."""
    now = ensure_aware(now)
    logged_days: set[date] = set()
    for row in mood_entries:
        created = parse_timestamp(row.get("created_at"), now.tzinfo)
        if created is not None:
            logged_days.add(created.date())

    streak = 0
    day = now.date()
    while day in logged_days:
        streak += 1
        day -= timedelta(days=1)

    return {"streak": streak, "message": _streak_message(streak)}


def compute_progress(last_crisis_at: Any, now: datetime) -> Dict[str, Any]:
    """Days since the last crisis log, as a bar filling up over 30 days."""
    now = ensure_aware(now)
    last = parse_timestamp(last_crisis_at, now.tzinfo)
    if last is None:
        return {
            "days_since_crisis": None,
            "progress_percent": 100.0,
            "message": "✨ No crisis alerts!",
        }

    elapsed = abs((now - last).total_seconds())
    days = math.ceil(elapsed / 86400)
    return {
        "days_since_crisis": days,
        "progress_percent": min(days / PROGRESS_GOAL_DAYS * 100, 100.0),
        "message": "You're making great progress!",
    }


def greeting_for(hour: int, name: Optional[str]) -> str:
    if hour < 12:
        greeting = "Good morning"
    elif hour < 17:
        greeting = "Good afternoon"
    else:
        greeting = "Good evening"
    return f"{greeting}, {name or 'Friend'} 👋"


def pick_affirmation(choose: Callable[[Sequence[str]], str] = random.choice) -> str:
    return choose(AFFIRMATIONS)
