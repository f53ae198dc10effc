from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from mindmate.domain.aggregation import ensure_aware, parse_timestamp

Row = Dict[str, Any]

SESSION_TITLE_LENGTH = 40
HISTORY_TITLE_LENGTH = 30


def truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def title_from_message(message: str) -> str:
    """Title given to a "New Conversation" after its first message."""
    return truncate(message, SESSION_TITLE_LENGTH)


def group_sessions(
    sessions: List[Row],
    now: datetime,
    active_session_id: Optional[str] = None,
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Sidebar history buckets: today / yesterday / last_week.

    - date comes from updated_at, falling back to created_at
    - sessions older than a week are left out
    - titles are cut to 30 characters
    """
    now = ensure_aware(now)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    yesterday = today - timedelta(days=1)
    last_week = today - timedelta(days=7)

    groups: Dict[str, List[Dict[str, Any]]] = {"today": [], "yesterday": [], "last_week": []}

    for session in sessions:
        stamp = parse_timestamp(session.get("updated_at") or session.get("created_at"), now.tzinfo)
        if stamp is None:
            continue
        day = stamp.replace(hour=0, minute=0, second=0, microsecond=0)

        if day >= today:
            bucket = "today"
        elif day >= yesterday:
            bucket = "yesterday"
        elif day >= last_week:
            bucket = "last_week"
        else:
            continue

        groups[bucket].append(
            {
                "id": session.get("id"),
                "title": truncate(session.get("title") or "Untitled", HISTORY_TITLE_LENGTH),
                "active": session.get("id") == active_session_id,
            }
        )

    return groups
