#!/usr/bin/env python3
"""
Ask the AI coach from the command line.

Usage:
    python bin/coach_chat.py --workouts workouts.json "what should I train next?"
    python bin/coach_chat.py --workouts workouts.json --regenerate
    python bin/coach_chat.py --clear

The conversation history and coach profile are kept in the local SQLite store
(COACH_AI_DB_PATH or --db-path). Set AI_CHAT_URL to use the relay; without it
every answer comes from the local engine.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from coach_ai.client import get_reply, regenerate_reply  # noqa: E402
from coach_ai.config import get_database_path  # noqa: E402
from coach_ai.history import (  # noqa: E402
    append_message,
    clear_history,
    load_history,
    new_message,
    prompt_history,
    save_history,
)
from coach_ai.models import CoachContext  # noqa: E402
from coach_ai.profile import load_profile, save_profile  # noqa: E402
from coach_ai.storage import SQLiteStore, StorageError  # noqa: E402


DUPLICATE_HINT = {
    "sv": "Svaret blev nästan likadant som förra. Ställ en mer specifik följdfråga så försöker jag igen.",
    "en": "The answer came out almost the same as before. Ask a more specific follow-up and I will try again.",
}


def load_context(path: Path, weekly_goal: int, today: str) -> CoachContext:
    """Read workouts from a JSON list or a {"workouts": [...]} object."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, list):
        data = {"workouts": data}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a list of workouts or an object with 'workouts'")
    if weekly_goal is not None:
        data["weeklyGoal"] = weekly_goal
    if today:
        data["todayISO"] = today
    return CoachContext.model_validate(data)


def print_reply(reply) -> None:
    print(f"[{reply.source}] {reply.workout_title}")
    print()
    print(reply.text)
    print()
    print(reply.basis)


def main():
    parser = argparse.ArgumentParser(description="Chat with the AI coach")
    parser.add_argument("message", nargs="?", default="", help="Question for the coach")
    parser.add_argument("--workouts", help="JSON file with workout records")
    parser.add_argument("--lang", default="sv", choices=["sv", "en"], help="Reply language (default: sv)")
    parser.add_argument("--weekly-goal", type=int, default=None, help="Sessions per week goal")
    parser.add_argument("--today", default="", help="Override today's date (YYYY-MM-DD)")
    parser.add_argument("--db-path", default=None, help="Path to SQLite store")
    parser.add_argument("--profile", help="JSON file with a coach profile to save before asking")
    parser.add_argument("--regenerate", action="store_true", help="Re-ask the last question more directly")
    parser.add_argument("--clear", action="store_true", help="Clear the stored conversation and exit")
    args = parser.parse_args()

    db_path = Path(args.db_path) if args.db_path else get_database_path()
    try:
        store = SQLiteStore(db_path)
    except StorageError as e:
        print(f"ERROR: could not open store at {db_path}: {e}")
        sys.exit(1)

    if args.clear:
        clear_history(store)
        print("Conversation cleared.")
        return

    if args.profile:
        try:
            profile_data = json.loads(Path(args.profile).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            print(f"ERROR: could not read profile: {e}")
            sys.exit(1)
        if not save_profile(store, profile_data):
            print("WARNING: profile could not be saved")

    if not args.workouts:
        print("ERROR: --workouts is required")
        sys.exit(1)
    try:
        context = load_context(Path(args.workouts), args.weekly_goal, args.today)
    except (OSError, ValueError) as e:
        print(f"ERROR: could not read workouts: {e}")
        sys.exit(1)

    messages = load_history(store)
    profile = load_profile(store)

    if args.regenerate:
        last_user = next((i for i in range(len(messages) - 1, -1, -1) if messages[i].role == "user"), None)
        if last_user is None:
            print("ERROR: nothing to regenerate yet")
            sys.exit(1)
        question = messages[last_user].text
        previous = next((m.text for m in messages[last_user + 1:] if m.role == "assistant"), "")
        reply, is_duplicate = asyncio.run(regenerate_reply(
            args.lang, question, context, previous,
            history=prompt_history(messages[:last_user]),
            profile=profile,
        ))
        if is_duplicate and previous:
            print(DUPLICATE_HINT[args.lang])
            return
        messages = append_message(messages, new_message("assistant", reply.text, reply.source))
        save_history(store, messages)
        print_reply(reply)
        return

    reply = asyncio.run(get_reply(args.lang, args.message, context, prompt_history(messages), profile))
    if args.message.strip():
        messages = append_message(messages, new_message("user", args.message))
        messages = append_message(messages, new_message("assistant", reply.text, reply.source))
        save_history(store, messages)
    print_reply(reply)


if __name__ == "__main__":
    main()
