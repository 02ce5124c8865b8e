"""
Solace-AI Personalization - Real-Time Adapter.

Re-ranks candidate recommendations against the current context. Mood and
time-of-day boosts are applied first; the safety override for critical
anxiety or stress is applied last and replaces the list with the fixed
safety allow-list.

Architecture Layer: Domain
Principles: Deterministic Ranking, Safety First, Configurable Policy
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import structlog

from .config import AdapterPolicy
from .context import DISTRESSED_MOODS, context_mood
from .learner import clamp
from .models import (
    AdaptedRecommendation,
    InteractionContext,
    NormalizedMood,
    RecommendationItem,
    StressState,
    TimeOfDay,
)

logger = structlog.get_logger(__name__)

CALMING_TYPES = frozenset({"breathing_exercise", "meditation", "grounding_exercise", "mindfulness"})
UPLIFTING_TYPES = frozenset({"journal_entry", "gratitude_practice", "social_activity"})

TIME_APPROPRIATE_TYPES: dict[TimeOfDay, frozenset[str]] = {
    TimeOfDay.MORNING: frozenset({"physical_exercise", "goal_setting", "mood_log"}),
    TimeOfDay.AFTERNOON: frozenset({"physical_exercise", "social_activity", "learning"}),
    TimeOfDay.EVENING: frozenset({"journal_entry", "reflection", "meditation"}),
    TimeOfDay.NIGHT: frozenset({"sleep_hygiene", "breathing_exercise", "meditation"}),
}

# Allow-list in presentation order, with the minimum score each item keeps.
SAFETY_ITEMS: tuple[tuple[str, float, str, str], ...] = (
    ("crisis_support", 1.0, "Talk to someone now",
     "Immediate support is available around the clock"),
    ("emergency_contact", 0.95, "Reach your emergency contact",
     "Let someone you trust know how you are feeling"),
    ("breathing_exercise", 0.9, "Slow breathing",
     "A guided breathing exercise to steady your body"),
)
SAFETY_TYPES = frozenset(t for t, *_ in SAFETY_ITEMS)

_FALLBACK_ITEMS: tuple[dict[str, Any], ...] = (
    {"id": "fallback_breathing", "type": "breathing_exercise", "score": 0.6,
     "title": "Take a Deep Breath", "reason": "Gentle breathing exercise to reduce stress"},
    {"id": "fallback_journal", "type": "journal_entry", "score": 0.5,
     "title": "Reflect on Your Day", "reason": "Help process experiences and emotions"},
)


def fallback_recommendations() -> list[RecommendationItem]:
    """Curated static list used whenever nothing better is available."""
    return [RecommendationItem.model_validate(item) for item in _FALLBACK_ITEMS]


def _coerce(items: Iterable[RecommendationItem | Mapping[str, Any]]) -> list[RecommendationItem]:
    return [
        item if isinstance(item, RecommendationItem) else RecommendationItem.model_validate(item)
        for item in items
    ]


def _key(item: RecommendationItem) -> str:
    return item.id or item.type


def _base_fields(item: RecommendationItem) -> dict[str, Any]:
    return {
        "id": item.id, "type": item.type, "title": item.title,
        "reason": item.reason, "metadata": dict(item.metadata),
    }


def merge_recommendations(
    first: Sequence[RecommendationItem | Mapping[str, Any]],
    second: Sequence[RecommendationItem | Mapping[str, Any]],
) -> list[RecommendationItem]:
    """Union of two lists keyed by id (or type), keeping the higher-scored duplicate."""
    merged: dict[str, RecommendationItem] = {}
    for item in _coerce(first) + _coerce(second):
        key = _key(item)
        if key not in merged or item.score > merged[key].score:
            merged[key] = item
    return sorted(merged.values(), key=lambda i: -i.score)


def filter_by_mood(
    items: Sequence[RecommendationItem | Mapping[str, Any]], mood: NormalizedMood,
) -> list[RecommendationItem]:
    """Keep items suited to the mood. Moods without a target set keep everything."""
    coerced = _coerce(items)
    if mood in DISTRESSED_MOODS:
        return [i for i in coerced if i.type in CALMING_TYPES]
    if mood == NormalizedMood.SAD:
        return [i for i in coerced if i.type in UPLIFTING_TYPES]
    return coerced


def prioritize_by_time(
    items: Sequence[RecommendationItem | Mapping[str, Any]], time_of_day: TimeOfDay,
) -> list[RecommendationItem]:
    """Stable reorder placing time-appropriate items first."""
    preferred = TIME_APPROPRIATE_TYPES[time_of_day]
    return sorted(_coerce(items), key=lambda i: i.type not in preferred)


class RealTimeAdapter:
    """Context-aware re-ranking with a safety override path."""

    def __init__(self, policy: AdapterPolicy | None = None) -> None:
        self._policy = policy or AdapterPolicy()

    @property
    def policy(self) -> AdapterPolicy:
        return self._policy

    def stress_state(self, context: InteractionContext | None) -> StressState:
        if context is None:
            return StressState.NORMAL
        anxiety = context.anxiety_level
        stress = context.stress_level
        policy = self._policy
        if (anxiety is not None and anxiety >= policy.critical_anxiety_threshold) or (
            stress is not None and stress >= policy.critical_stress_threshold
        ):
            return StressState.CRITICAL
        if (anxiety is not None and anxiety >= policy.elevated_anxiety_threshold) or (
            stress is not None and stress >= policy.elevated_stress_threshold
        ):
            return StressState.ELEVATED
        return StressState.NORMAL

    def adapt(
        self,
        base: Sequence[RecommendationItem | Mapping[str, Any]],
        context: InteractionContext | None,
    ) -> list[AdaptedRecommendation]:
        """Boost, annotate and order ``base`` for ``context``. Never raises."""
        try:
            return self._adapt(_coerce(base), context)
        except Exception as e:
            logger.error("adaptation_failed", error=str(e), error_type=type(e).__name__)
            return self._safe_default(context)

    def _adapt(
        self, items: list[RecommendationItem], context: InteractionContext | None,
    ) -> list[AdaptedRecommendation]:
        state = self.stress_state(context)
        mood = context_mood(context)
        time_preferred = TIME_APPROPRIATE_TYPES[context.time_of_day] if context else frozenset()
        calming_needed = mood in DISTRESSED_MOODS or state != StressState.NORMAL

        adapted: list[AdaptedRecommendation] = []
        for item in items:
            score = clamp(item.score)
            mood_boost = False
            if (calming_needed and item.type in CALMING_TYPES) or (
                mood == NormalizedMood.SAD and item.type in UPLIFTING_TYPES
            ):
                score *= self._policy.mood_boost_factor
                mood_boost = True
            time_optimized = item.type in time_preferred
            if time_optimized:
                score *= self._policy.time_boost_factor
            adapted.append(AdaptedRecommendation(
                **_base_fields(item),
                score=clamp(score),
                original_score=item.score,
                mood_boost=mood_boost,
                time_optimized=time_optimized,
                stress_level=StressState.ELEVATED if state == StressState.ELEVATED else StressState.NORMAL,
            ))

        if state == StressState.CRITICAL:
            return self._safety_override(adapted, context)
        adapted.sort(key=lambda r: -r.score)
        return adapted

    def _safety_override(
        self, adapted: Sequence[AdaptedRecommendation], context: InteractionContext | None,
    ) -> list[AdaptedRecommendation]:
        by_type: dict[str, AdaptedRecommendation] = {}
        for rec in adapted:
            if rec.type in SAFETY_TYPES and (rec.type not in by_type or rec.score > by_type[rec.type].score):
                by_type[rec.type] = rec

        safety: list[AdaptedRecommendation] = []
        for kind, floor, title, reason in SAFETY_ITEMS:
            source = by_type.get(kind)
            safety.append(AdaptedRecommendation(
                id=source.id if source and source.id else f"safety_{kind}",
                type=kind,
                title=source.title if source and source.title else title,
                reason=reason,
                metadata=source.metadata if source else {},
                score=max(floor, source.score if source else 0.0),
                original_score=source.original_score if source else floor,
                mood_boost=source.mood_boost if source else False,
                time_optimized=source.time_optimized if source else False,
                stress_level=StressState.CRITICAL,
                immediate_action=True,
            ))
        safety.sort(key=lambda r: -r.score)
        logger.warning(
            "safety_override_triggered",
            anxiety_level=context.anxiety_level if context else None,
            stress_level=context.stress_level if context else None,
            discarded=sum(1 for r in adapted if r.type not in SAFETY_TYPES),
        )
        return safety

    def _safe_default(self, context: InteractionContext | None) -> list[AdaptedRecommendation]:
        if self.stress_state(context) == StressState.CRITICAL:
            return self._safety_override([], context)
        return [
            AdaptedRecommendation(**_base_fields(item), score=item.score, original_score=item.score)
            for item in fallback_recommendations()
        ]
