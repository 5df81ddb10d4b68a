"""Keyword-based intent classification for coach chat messages."""
from typing import Iterable, Optional, Sequence

from .models import ConversationTurn, Intent, coerce_history


# Checked in this order; the first list with a hit wins. Swedish and English
# trigger words share each list so either language classifies the same way.
INTENT_KEYWORDS: list[tuple[Intent, tuple[str, ...]]] = [
    (Intent.NEXT, ("nästa", "next", "plan", "schema", "pass idag", "workout today")),
    (Intent.PB, ("pb", "pr", "rekord", "record", "stark", "stronger")),
    (Intent.VOLUME, ("volym", "volume", "set", "reps", "för mycket", "too much")),
    (Intent.BALANCE, ("balans", "muskel", "muscle", "ojämn", "split")),
    (Intent.SUMMARY, ("sammanfatta", "summary", "status", "översikt", "overview")),
]

FOLLOWUP_KEYWORDS = (
    "och", "mer", "varför", "hur då", "förklara", "utveckla", "också",
    "then", "why", "explain", "more", "also", "what about",
)


def contains_any(text: str, words: Iterable[str]) -> bool:
    return any(word in text for word in words)


def intent_from_text(text: str) -> Intent:
    lower = text.lower()
    for intent, words in INTENT_KEYWORDS:
        if contains_any(lower, words):
            return intent
    return Intent.UNKNOWN


def looks_like_followup(text: str) -> bool:
    return contains_any(text.lower(), FOLLOWUP_KEYWORDS)


def classify(message: str, history: Optional[Sequence[ConversationTurn]] = None) -> Intent:
    """Classify a message, letting short follow-ups inherit the topic of earlier user turns."""
    direct = intent_from_text(message or "")
    if direct is not Intent.UNKNOWN:
        return direct
    if not looks_like_followup(message or ""):
        return Intent.UNKNOWN

    for turn in reversed(coerce_history(history or [])):
        if turn.role != "user":
            continue
        inherited = intent_from_text(turn.text)
        if inherited is not Intent.UNKNOWN:
            return inherited
    return Intent.UNKNOWN
