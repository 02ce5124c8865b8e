"""
Solace-AI Personalization - Pattern Learner.

Aggregates a ledger snapshot into time-of-day, content and mood preference
distributions plus engagement patterns. Every operation is a pure function of
its input, so a profile can be rebuilt from the ledger at any time.

Architecture Layer: Domain
Principles: Pure Functions, Derived State, Explainable Heuristics
"""
from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable, Sequence
from datetime import timedelta
from statistics import fmean

import structlog

from .context import context_mood, normalize_mood
from .models import (
    ActivityEngagement,
    ActivityLevel,
    ActivitySuggestion,
    BasePayload,
    BehaviorProfile,
    ContentPreferences,
    EngagementPatterns,
    InteractionContext,
    InteractionRecord,
    InteractionType,
    MoodSuggestion,
    NormalizedMood,
    OptimalTime,
    TimeOfDay,
)

logger = structlog.get_logger(__name__)

DEFAULT_SESSION_GAP = timedelta(minutes=30)
PEAK_HOUR_COUNT = 3

SYSTEM_INTERACTIONS = frozenset({
    InteractionType.RECOMMENDATION_REFRESH.value,
    InteractionType.AI_INSIGHTS_GENERATED.value,
})

TIME_OF_DAY_PREFERENCES: dict[TimeOfDay, str] = {
    TimeOfDay.MORNING: "Energizing activities",
    TimeOfDay.AFTERNOON: "Productive work",
    TimeOfDay.EVENING: "Relaxing activities",
    TimeOfDay.NIGHT: "Wind-down activities",
}


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _effectiveness(payload: BasePayload) -> float | None:
    if payload.effectiveness_score is not None:
        return payload.effectiveness_score
    if payload.completed is not None:
        return 1.0 if payload.completed else 0.0
    return None


def group_sessions(
    records: Sequence[InteractionRecord], session_gap: timedelta = DEFAULT_SESSION_GAP,
) -> list[list[InteractionRecord]]:
    """Cluster chronologically ordered records; a gap above ``session_gap`` opens a new session."""
    sessions: list[list[InteractionRecord]] = []
    for record in records:
        if not sessions or record.timestamp - sessions[-1][-1].timestamp > session_gap:
            sessions.append([record])
        else:
            sessions[-1].append(record)
    return sessions


class PatternLearner:
    """Builds a BehaviorProfile from interaction records."""

    def __init__(self, session_gap: timedelta = DEFAULT_SESSION_GAP) -> None:
        self._session_gap = session_gap

    def learn_patterns(self, records: Iterable[InteractionRecord]) -> BehaviorProfile:
        ordered = sorted(records, key=lambda r: r.timestamp)
        if not ordered:
            return BehaviorProfile()
        profile = BehaviorProfile(
            time_preferences=self._time_preferences(ordered),
            content_preferences=self._content_preferences(ordered),
            mood_preferences=self._mood_preferences(ordered),
            engagement_patterns=self._engagement_patterns(ordered),
            peak_hours=self._peak_hours(ordered),
            total_interactions=len(ordered),
        )
        logger.debug("patterns_learned", total_interactions=len(ordered),
                     session_count=profile.engagement_patterns.session_count)
        return profile

    def _time_preferences(self, records: Sequence[InteractionRecord]) -> dict[str, dict[str, int]]:
        prefs: dict[str, dict[str, int]] = {t.value: {} for t in TimeOfDay}
        for record in records:
            bucket = prefs[record.context.time_of_day.value]
            bucket[record.type.value] = bucket.get(record.type.value, 0) + 1
        return prefs

    def _content_preferences(self, records: Sequence[InteractionRecord]) -> ContentPreferences:
        counts: Counter[str] = Counter()
        effectiveness: dict[str, list[float]] = defaultdict(list)
        ratings: dict[str, list[float]] = defaultdict(list)
        completed: Counter[str] = Counter()
        for record in records:
            kind = record.type.value
            counts[kind] += 1
            score = _effectiveness(record.payload)
            if score is not None:
                effectiveness[kind].append(score)
            if record.payload.user_rating is not None:
                ratings[kind].append(record.payload.user_rating)
            if record.payload.completed:
                completed[kind] += 1
        return ContentPreferences(
            activity_types=dict(counts),
            effectiveness_scores={k: clamp(fmean(v)) for k, v in effectiveness.items()},
            user_ratings={k: fmean(v) for k, v in ratings.items()},
            completion_rates={k: completed[k] / n for k, n in counts.items()},
        )

    def _mood_preferences(self, records: Sequence[InteractionRecord]) -> dict[str, dict[str, int]]:
        prefs: dict[str, dict[str, int]] = {m.value: {} for m in NormalizedMood}
        for record in records:
            if record.context.mood is None:
                continue
            bucket = prefs[normalize_mood(record.context.mood).value]
            bucket[record.type.value] = bucket.get(record.type.value, 0) + 1
        return prefs

    def _engagement_patterns(self, records: Sequence[InteractionRecord]) -> EngagementPatterns:
        sessions = group_sessions(records, self._session_gap)
        lengths = [
            (s[-1].timestamp - s[0].timestamp).total_seconds() * 1000.0 for s in sessions
        ]
        frequency: Counter[int] = Counter(s[0].timestamp.weekday() for s in sessions)

        totals: Counter[str] = Counter()
        completed: Counter[str] = Counter()
        ratings: dict[str, list[float]] = defaultdict(list)
        for record in records:
            kind = record.type.value
            totals[kind] += 1
            if record.payload.completed:
                completed[kind] += 1
            if record.payload.user_rating is not None:
                ratings[kind].append(record.payload.user_rating)

        preferred: dict[str, ActivityEngagement] = {}
        for kind, total in totals.items():
            completion_rate = completed[kind] / total
            average_rating = fmean(ratings[kind]) if ratings[kind] else 0.0
            preferred[kind] = ActivityEngagement(
                frequency=total,
                completion_rate=completion_rate,
                average_rating=average_rating,
                engagement_score=clamp(0.7 * completion_rate + 0.3 * (average_rating / 5.0)),
            )
        return EngagementPatterns(
            average_session_length_ms=fmean(lengths) if lengths else 0.0,
            session_count=len(sessions),
            session_frequency=dict(sorted(frequency.items())),
            preferred_activities=preferred,
        )

    def _peak_hours(self, records: Sequence[InteractionRecord]) -> dict[int, int]:
        hours: Counter[int] = Counter(
            r.context.hour if r.context.hour is not None else r.timestamp.hour for r in records
        )
        top = sorted(hours.items(), key=lambda item: (-item[1], item[0]))[:PEAK_HOUR_COUNT]
        return dict(top)


def activity_suggestions(profile: BehaviorProfile, limit: int = 3) -> list[ActivitySuggestion]:
    """Rank activities by share of use, completion, effectiveness and rating."""
    prefs = profile.content_preferences
    activity_counts = {
        k: v for k, v in prefs.activity_types.items() if k not in SYSTEM_INTERACTIONS
    }
    total = sum(activity_counts.values())
    suggestions: list[ActivitySuggestion] = []
    for activity, count in activity_counts.items():
        score = clamp(
            0.3 * (count / total)
            + 0.4 * prefs.completion_rates.get(activity, 0.0)
            + 0.2 * prefs.effectiveness_scores.get(activity, 0.0)
            + 0.1 * (prefs.user_ratings.get(activity, 0.0) / 5.0)
        )
        suggestions.append(ActivitySuggestion(
            activity=activity, score=score, reason=suggestion_reason(score),
        ))
    suggestions.sort(key=lambda s: (-s.score, s.activity))
    return suggestions[:limit]


def suggestion_reason(score: float) -> str:
    if score > 0.8:
        return "Highly effective based on your history"
    if score > 0.6:
        return "Well-suited to your preferences"
    if score > 0.4:
        return "Moderately engaging for you"
    return "Worth exploring based on your activity patterns"


def optimal_times(profile: BehaviorProfile) -> list[OptimalTime]:
    """Time-of-day buckets with activity, busiest first."""
    times = [
        OptimalTime(
            time_of_day=TimeOfDay(bucket),
            activity_count=sum(counts.values()),
            preference=TIME_OF_DAY_PREFERENCES[TimeOfDay(bucket)],
        )
        for bucket, counts in profile.time_preferences.items()
        if sum(counts.values()) > 0
    ]
    return sorted(times, key=lambda t: -t.activity_count)


def mood_based_suggestions(
    profile: BehaviorProfile, mood: NormalizedMood | str | None, limit: int = 2,
) -> list[MoodSuggestion]:
    """Activities most used while in the given mood."""
    mood = mood if isinstance(mood, NormalizedMood) else normalize_mood(mood)
    counts = profile.mood_preferences.get(mood.value, {})
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]
    return [
        MoodSuggestion(
            activity=activity, frequency=count, mood_fit=mood,
            reason=f"{activity} has helped during {mood.value} periods",
        )
        for activity, count in ranked
    ]


def adaptation_key(context: InteractionContext) -> str:
    """Key of the form ``morning_1_happy``."""
    return f"{context.time_of_day.value}_{context.day_of_week}_{context_mood(context).value}"


def adaptation_score(payload: BasePayload, context: InteractionContext | None = None) -> float:
    """How well an interaction went, weighted by confidence in the reported mood."""
    signals: list[float] = []
    if payload.user_rating is not None:
        signals.append(payload.user_rating / 5.0)
    if payload.completed is not None:
        signals.append(1.0 if payload.completed else 0.0)
    if payload.effectiveness_score is not None:
        signals.append(payload.effectiveness_score)
    base = fmean(signals) if signals else 0.5
    if context is not None and context.mood is not None:
        base *= 0.5 + 0.5 * context.mood.confidence
    return clamp(base)


def categorize_activity_level(engagement: EngagementPatterns) -> ActivityLevel | None:
    """Bucket overall session volume. Returns None when there is no history."""
    sessions = engagement.session_count
    if sessions == 0:
        return None
    if sessions > 5:
        return ActivityLevel.HIGH
    if sessions > 2:
        return ActivityLevel.MEDIUM
    return ActivityLevel.LOW
