# scripts/chat_cli.py
"""
Terminal chat against the local YAML store.

python scripts/chat_cli.py --user me --name Alex
python scripts/chat_cli.py --offline           # rule-based replies only

Commands inside the chat: /new, /history, /open <id>, /mood <emoji> <name>, /dashboard, /quit
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import time
from pathlib import Path

from mindmate.app.deps import build_analyzer
from mindmate.core.config import LOG_LEVEL, load_settings
from mindmate.domain.crisis import CrisisPolicy
from mindmate.domain.models import TranscriptWindow, UserIdentity
from mindmate.exceptions import ChatInputError, PersistenceError
from mindmate.infra.local_repo import YamlRepository
from mindmate.services.chat_service import ChatService, SessionContext
from mindmate.services.dashboard_service import DashboardService


def _print_history(service: ChatService) -> None:
    history = service.list_history()
    for bucket, label in (("today", "Today"), ("yesterday", "Yesterday"), ("last_week", "Last 7 days")):
        items = history["groups"][bucket]
        if not items:
            continue
        print(f"-- {label} ({len(items)})")
        for item in items:
            marker = "*" if item["active"] else " "
            print(f" {marker} {item['id']}  {item['title']}")


def _print_transcript(service: ChatService) -> None:
    for row in service.stored_messages():
        who = "you" if row.get("sender") == "user" else "MindMate"
        print(f"{who}> {row.get('content')}")


def _print_dashboard(dashboard: DashboardService, user: UserIdentity) -> None:
    data = asyncio.run(dashboard.load(user))
    stats = data["statistics"]
    print(data["greeting"])
    print(f"  \"{data['affirmation']}\"")
    print(
        f"  conversations={stats['total_conversations']} "
        f"most_common={stats['most_common_emotion']} this_week={stats['this_week']}"
    )
    print(f"  streak={data['streak']['streak']} ({data['streak']['message']})")
    days = data["progress"]["days_since_crisis"]
    print(f"  days since crisis={'∞' if days is None else days} ({data['progress']['message']})")


def main():
    ap = argparse.ArgumentParser(description="MindMate terminal chat")
    ap.add_argument("--user", default="local-user", help="user id in the local store")
    ap.add_argument("--name", default=None, help="display name used in greetings")
    ap.add_argument("--store", default=None, help="YAML store path (default: YAML_STORE_PATH)")
    ap.add_argument("--offline", action="store_true", help="skip the chat API; rule-based replies only")
    args = ap.parse_args()

    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    settings = load_settings()
    repository = YamlRepository(Path(args.store) if args.store else settings.yaml_store_path)
    user = UserIdentity(id=args.user, name=args.name)

    service = ChatService(
        repository,
        build_analyzer(settings, offline=args.offline),
        CrisisPolicy(threshold=settings.crisis_threshold),
        SessionContext(user=user, window=TranscriptWindow(limit=settings.history_limit)),
    )
    dashboard = DashboardService(repository)

    info = service.load_or_create_session()
    print(f"[MindMate] conversation: {info['title']} ({info['session_id']})")
    _print_transcript(service)

    while True:
        try:
            line = input("you> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break

        if not line:
            continue
        if line in ("/quit", "/exit"):
            break
        if line == "/new":
            info = service.new_conversation()
            print(f"[MindMate] new conversation ({info['session_id']})")
            continue
        if line == "/history":
            _print_history(service)
            continue
        if line.startswith("/open "):
            try:
                service.open_session(line.split(maxsplit=1)[1].strip())
                _print_transcript(service)
            except ChatInputError as e:
                print(f"[!] {e}")
            continue
        if line.startswith("/mood "):
            parts = line.split(maxsplit=2)
            try:
                dashboard.save_mood(user, parts[1], parts[2] if len(parts) > 2 else "")
                print("[MindMate] mood logged")
            except (ChatInputError, PersistenceError) as e:
                print(f"[!] {e}")
            continue
        if line == "/dashboard":
            _print_dashboard(dashboard, user)
            continue

        turn = service.send_message(line)
        print(f"MindMate> {turn.reply}")
        if turn.analysis is not None and turn.analysis.badge():
            print(f"          [{turn.analysis.badge()}]")
        for follow_up in turn.follow_ups:
            time.sleep(follow_up.delay_seconds)
            print(f"MindMate> {follow_up.text}")


if __name__ == "__main__":
    main()
