"""
Metrics aggregation over the stored workout history.

`aggregate` reduces completed workout records into the `MetricsSummary` used
both by the local reply engine and as the context block sent to the relay.
Pure and deterministic: the only notion of "now" is the `today_iso` argument.
"""
import math
import re
from datetime import date, timedelta
from typing import Iterable, Optional

from .dates import days_between_iso, in_window, parse_iso_date, recency_timestamp
from .models import ExerciseEntry, ExerciseStat, MetricsSummary, PBEvent, WorkoutRecord


TOP_EXERCISE_COUNT = 3

_NUMBER_RE = re.compile(r"\d+")

# (keywords, bucket) checked in order against the lowercased muscle group.
MUSCLE_BUCKETS = [
    (("bröst", "chest"), "Chest"),
    (("rygg", "back"), "Back"),
    (("ben", "leg"), "Legs"),
    (("axlar", "shoulder"), "Shoulders"),
    (("arm",), "Arms"),
]
OTHER_MUSCLE = "Other"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_reps(value: Optional[str]) -> int:
    """Representative rep count: the rounded mean of the numbers found ("8-10" -> 9)."""
    if not value:
        return 0
    numbers = [int(n) for n in _NUMBER_RE.findall(str(value))]
    numbers = [n for n in numbers if n > 0]
    if not numbers:
        return 0
    return round_half_up(sum(numbers) / len(numbers))


def parse_weight(value: Optional[float]) -> float:
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def muscle_bucket(muscle_group: Optional[str]) -> str:
    key = (muscle_group or "").strip().lower()
    if not key:
        return OTHER_MUSCLE
    for keywords, bucket in MUSCLE_BUCKETS:
        if any(word in key for word in keywords):
            return bucket
    return OTHER_MUSCLE


def exercise_volume(entry: ExerciseEntry) -> float:
    """Sum of reps x load; per-set detail supersedes the exercise-level fields."""
    if entry.performed_sets:
        return sum(parse_reps(s.reps) * parse_weight(s.weight) for s in entry.performed_sets)
    return max(0, entry.sets) * parse_reps(entry.reps) * parse_weight(entry.weight)


def workout_volume(record: WorkoutRecord) -> float:
    return sum(exercise_volume(entry) for entry in record.exercises)


def _tally(stat: ExerciseStat, entry: ExerciseEntry) -> None:
    if entry.performed_sets:
        for performed in entry.performed_sets:
            reps = parse_reps(performed.reps)
            weight = parse_weight(performed.weight)
            stat.sets += 1
            stat.reps += reps
            stat.volume += reps * weight
            stat.best_weight = max(stat.best_weight, weight)
        return

    set_count = max(0, entry.sets)
    reps = parse_reps(entry.reps)
    weight = parse_weight(entry.weight)
    stat.sets += set_count
    stat.reps += reps * set_count
    stat.volume += reps * set_count * weight
    stat.best_weight = max(stat.best_weight, weight)


def _sort_key(record: WorkoutRecord):
    return (recency_timestamp(record), record.date)


def _as_records(records: Iterable) -> list[WorkoutRecord]:
    result = []
    for record in records or []:
        if isinstance(record, WorkoutRecord):
            result.append(record)
        elif isinstance(record, dict):
            result.append(WorkoutRecord.model_validate(record))
    return result


def aggregate(records: Iterable, weekly_goal: int, today_iso: str) -> MetricsSummary:
    """Reduce workout records into a `MetricsSummary`.

    Only completed records count. PB detection walks the full history in
    ascending order so a heavy lift outside the 30-day window still defines
    the best-so-far, but only increases that land inside the window are
    reported. Top exercises are ranked over the 30-day window, falling back
    to the whole history when nothing was logged in it.
    """
    completed = [r for r in _as_records(records) if r.is_completed]
    today = parse_iso_date(today_iso) or date.today()
    cutoff7 = today - timedelta(days=6)
    cutoff30 = today - timedelta(days=29)
    goal = max(0, int(weekly_goal or 0))

    sorted_asc = sorted(completed, key=_sort_key)
    sorted_desc = sorted(completed, key=_sort_key, reverse=True)

    recent7 = [r for r in completed if in_window(r.date, cutoff7, today)]
    recent30 = [r for r in completed if in_window(r.date, cutoff30, today)]
    minutes7 = sum(r.duration_minutes or 0 for r in recent7)
    volume7 = round_half_up(sum(workout_volume(r) for r in recent7))

    stats: dict[str, ExerciseStat] = {}
    recent_stats: dict[str, ExerciseStat] = {}
    best_so_far: dict[str, float] = {}
    pb_events: list[PBEvent] = []
    muscle_sessions: dict[str, int] = {}

    for record in sorted_asc:
        touched = []
        for entry in record.exercises:
            key = entry.name.strip()
            if not key:
                continue

            stat = stats.setdefault(key, ExerciseStat(name=key))
            stat.sessions += 1
            _tally(stat, entry)

            if in_window(record.date, cutoff30, today):
                recent = recent_stats.setdefault(key, ExerciseStat(name=key))
                recent.sessions += 1
                _tally(recent, entry)

            previous = best_so_far.get(key, 0.0)
            if stat.best_weight > previous:
                best_so_far[key] = stat.best_weight
                if in_window(record.date, cutoff30, today):
                    pb_events.append(PBEvent(
                        exercise=key,
                        date=record.date,
                        weight=stat.best_weight,
                        delta=stat.best_weight - previous,
                    ))

            bucket = muscle_bucket(entry.muscle_group)
            if bucket not in touched:
                touched.append(bucket)

        for bucket in touched:
            muscle_sessions[bucket] = muscle_sessions.get(bucket, 0) + 1

    # rank over the 30-day window; all-time history only when the window is empty
    ranking_source = recent_stats or stats
    ranked = sorted(ranking_source.values(), key=lambda s: (-s.sessions, -s.volume))
    top_exercises = [
        stat.model_copy(update={
            "volume": round_half_up(stat.volume),
            "best_weight": round(stat.best_weight * 10) / 10,
        })
        for stat in ranked[:TOP_EXERCISE_COUNT]
    ]

    # newest first; same-day events keep their scan order
    pb_events = sorted(pb_events, key=lambda e: parse_iso_date(e.date) or date.min, reverse=True)

    muscle_focus_tip = None
    if len(muscle_sessions) > 1:
        muscle_focus_tip = min(muscle_sessions.items(), key=lambda item: item[1])[0]

    last_workout_date = (sorted_desc[0].date or None) if sorted_desc else None
    days_since_last = days_between_iso(last_workout_date, today.isoformat()) if last_workout_date else None

    return MetricsSummary(
        total_sessions=len(completed),
        sessions7=len(recent7),
        sessions30=len(recent30),
        minutes7=minutes7,
        volume7=volume7,
        avg_minutes7=round_half_up(minutes7 / len(recent7)) if recent7 else 0,
        last_workout_date=last_workout_date,
        days_since_last=days_since_last,
        top_exercises=top_exercises,
        top_exercise_window_days=30 if recent_stats else 0,
        pb_events30=pb_events,
        latest_pb=pb_events[0] if pb_events else None,
        weekly_goal=goal,
        weekly_left=max(0, goal - len(recent7)),
        muscle_focus_tip=muscle_focus_tip,
    )
