"""
Solace-AI Personalization - Context Helpers.

Time-of-day bucketing, free-text mood normalization and construction of the
context snapshot attached to every interaction.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from .models import InteractionContext, MoodSnapshot, NormalizedMood, TimeOfDay

Clock = Callable[[], datetime]

MOOD_SYNONYMS: dict[NormalizedMood, frozenset[str]] = {
    NormalizedMood.HAPPY: frozenset({"joy", "happiness", "happy", "content", "excited"}),
    NormalizedMood.SAD: frozenset({"sad", "sadness", "depressed", "down", "lonely"}),
    NormalizedMood.ANXIOUS: frozenset({"anxious", "anxiety", "worried", "nervous", "fear"}),
    NormalizedMood.STRESSED: frozenset({"stressed", "stress", "overwhelmed", "frustrated", "angry"}),
}

_MOOD_LOOKUP: dict[str, NormalizedMood] = {
    label: mood for mood, labels in MOOD_SYNONYMS.items() for label in labels
}

DISTRESSED_MOODS = frozenset({NormalizedMood.ANXIOUS, NormalizedMood.STRESSED})


def system_clock() -> datetime:
    return datetime.now(timezone.utc)


def categorize_time_of_day(hour: int) -> TimeOfDay:
    """Map an hour (0-23) onto its time-of-day bucket."""
    if 6 <= hour < 12:
        return TimeOfDay.MORNING
    if 12 <= hour < 17:
        return TimeOfDay.AFTERNOON
    if 17 <= hour < 21:
        return TimeOfDay.EVENING
    return TimeOfDay.NIGHT


def normalize_mood(emotion: str | MoodSnapshot | None) -> NormalizedMood:
    """Normalize a free-text emotion label. Unknown labels become neutral."""
    if isinstance(emotion, MoodSnapshot):
        emotion = emotion.emotion
    if not emotion:
        return NormalizedMood.NEUTRAL
    return _MOOD_LOOKUP.get(emotion.strip().lower(), NormalizedMood.NEUTRAL)


def context_mood(context: InteractionContext | None) -> NormalizedMood:
    if context is None or context.mood is None:
        return NormalizedMood.NEUTRAL
    return normalize_mood(context.mood)


def current_context(
    *,
    now: datetime | None = None,
    mood: MoodSnapshot | str | None = None,
    stress_level: float | None = None,
    anxiety_level: float | None = None,
    clock: Clock = system_clock,
) -> InteractionContext:
    """Build a context snapshot for the given (or current) instant."""
    moment = now or clock()
    if isinstance(mood, str):
        mood = MoodSnapshot(emotion=mood)
    return InteractionContext(
        time_of_day=categorize_time_of_day(moment.hour),
        day_of_week=moment.weekday(),
        hour=moment.hour,
        mood=mood,
        stress_level=stress_level,
        anxiety_level=anxiety_level,
    )


def context_changed(current: InteractionContext, previous: InteractionContext | None) -> bool:
    """Compare normalized mood, time of day and weekday against a prior snapshot."""
    if previous is None:
        return True
    if current.mood is not None and previous.mood is not None:
        if normalize_mood(current.mood) != normalize_mood(previous.mood):
            return True
    return (
        current.time_of_day != previous.time_of_day
        or current.day_of_week != previous.day_of_week
    )
