"""
Coach profile: the free-text goal, focus, limitations, schedule and
preferences the user can give the coach.

The profile is cached locally as sanitized JSON. Only the parts relevant to the
current message are forwarded to the relay so a stored preference does not
leak into answers to unrelated questions.
"""
import json
import re
from typing import Any, Optional

from loguru import logger

from .intent import contains_any
from .models import CoachProfile
from .storage import KeyValueStore, StorageError


AI_COACH_PROFILE_KEY = "ai-coach-profile-v1"

FIELD_LIMITS = {
    "goal": 220,
    "focus_exercises": 240,
    "limitations": 260,
    "schedule": 220,
    "preferences": 260,
}

_WIRE_NAMES = {
    "goal": "goal",
    "focus_exercises": "focusExercises",
    "limitations": "limitations",
    "schedule": "schedule",
    "preferences": "preferences",
}

DIRECT_TONE_WORDS = ("hård", "rak", "tuff", "strict", "direct")
SUPPORTIVE_TONE_WORDS = ("mjuk", "snäll", "lugn", "gentle", "supportive")

RELEVANCE_KEYWORDS = {
    "focus_exercises": (
        "övning", "exercise", "fokus", "focus", "muskel", "muscle",
        "push", "pull", "legs", "split",
    ),
    "limitations": (
        "skada", "ont", "smärta", "injury", "pain", "avoid", "undvika",
        "kan inte", "can't", "rehab",
    ),
    "schedule": (
        "vilka dagar", "which days", "dagar", "days", "vecka", "week",
        "fördela veckan", "weekly split", "week split", "när", "when",
        "calendar", "kalender",
        "måndag", "tisdag", "onsdag", "torsdag", "fredag", "lördag", "söndag",
        "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    ),
}

_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(value: Any, max_length: int = 220) -> str:
    if not isinstance(value, str):
        return ""
    return _WHITESPACE_RE.sub(" ", value.strip())[:max_length]


def sanitize_profile(value: Any) -> CoachProfile:
    """Build a profile from untrusted input, capping every field."""
    if isinstance(value, CoachProfile):
        value = value.model_dump()
    if not isinstance(value, dict):
        return CoachProfile()
    fields = {}
    for field, limit in FIELD_LIMITS.items():
        raw = value.get(field, value.get(_WIRE_NAMES[field]))
        fields[field] = clean_text(raw, limit)
    return CoachProfile(**fields)


def detect_tone(lang: str, profile: Optional[CoachProfile] = None) -> str:
    """'direct', 'supportive' or 'neutral', from the stated preferences or the language default."""
    preferences = (profile.preferences if profile else "").lower()
    if contains_any(preferences, DIRECT_TONE_WORDS):
        return "direct"
    if contains_any(preferences, SUPPORTIVE_TONE_WORDS):
        return "supportive"
    return "direct" if lang == "sv" else "neutral"


def field_is_relevant(field: str, message: str) -> bool:
    return contains_any((message or "").lower(), RELEVANCE_KEYWORDS[field])


def contextualize_profile(profile: Optional[CoachProfile], message: str) -> Optional[CoachProfile]:
    """Reduce the profile to what the message is about.

    The goal always travels. Preferences never do: models tend to restate
    them as facts ("you prefer X") on unrelated questions.
    """
    if profile is None:
        return None
    trimmed = CoachProfile(
        goal=profile.goal.strip(),
        preferences="",
        focus_exercises=profile.focus_exercises.strip() if field_is_relevant("focus_exercises", message) else "",
        limitations=profile.limitations.strip() if field_is_relevant("limitations", message) else "",
        schedule=profile.schedule.strip() if field_is_relevant("schedule", message) else "",
    )
    return trimmed if trimmed.has_data() else None


def load_profile(store: KeyValueStore) -> CoachProfile:
    try:
        raw = store.get_item(AI_COACH_PROFILE_KEY)
        if not raw:
            return CoachProfile()
        return sanitize_profile(json.loads(raw))
    except (StorageError, ValueError) as e:
        logger.warning(f"Could not read coach profile: {e}")
        return CoachProfile()


def save_profile(store: KeyValueStore, profile: Any) -> bool:
    safe = sanitize_profile(profile)
    try:
        store.set_item(AI_COACH_PROFILE_KEY, json.dumps(safe.to_wire(), ensure_ascii=False))
        return True
    except StorageError as e:
        logger.warning(f"Could not save coach profile: {e}")
        return False
