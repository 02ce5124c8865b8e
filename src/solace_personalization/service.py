"""
Solace-AI Personalization - Service Facade.

Caller-facing operations of the personalization core. Every entry point
catches internal failures and returns a safe default so that a broken
recommendation never blocks the user action that triggered it.

Architecture Layer: Application
Principles: Facade Pattern, Graceful Degradation, Event-Driven
"""
from __future__ import annotations

import random
from collections.abc import Mapping, Sequence
from datetime import timedelta
from typing import Any

from pydantic import ValidationError
import structlog

from .adapter import (
    RealTimeAdapter,
    fallback_recommendations,
    filter_by_mood,
    merge_recommendations,
    prioritize_by_time,
)
from .analytics import PerformanceAnalytics
from .compatibility import CompatibilityScorer, categorize_matches
from .config import PersonalizationSettings
from .context import Clock, context_mood, current_context, system_clock
from .events import (
    AdjustmentSuggestedEvent,
    InteractionTrackedEvent,
    MilestoneReachedEvent,
    PersonalizationEvent,
    PersonalizationEventPublisher,
    RecommendationsAdaptedEvent,
    SafetyOverrideEvent,
    milestone_for,
)
from .exceptions import InsufficientDataError, PersonalizationError
from .insights import InsightClient, InsightGenerator
from .learner import PatternLearner, activity_suggestions, mood_based_suggestions
from .ledger import InteractionLedger
from .models import (
    AnalyticsExport,
    AnalyticsSummary,
    BasePayload,
    BehaviorProfile,
    Confidence,
    InteractionContext,
    InteractionRecord,
    InteractionType,
    OutcomeEvent,
    PeerMatches,
    PerformanceOverview,
    RecommendationAction,
    RecommendationBundle,
    RecommendationItem,
    RefreshCategory,
    RefreshOutcome,
    RefreshStatistics,
    StressState,
    UserProfile,
)
from .repository import InMemoryPersonalizationRepository, PersonalizationRepository
from .scheduler import RefreshCallback, RefreshScheduler

logger = structlog.get_logger(__name__)

ACTION_INTERACTIONS: dict[RecommendationAction, InteractionType] = {
    RecommendationAction.IMPRESSION: InteractionType.RECOMMENDATION_IMPRESSION,
    RecommendationAction.ACCEPT: InteractionType.RECOMMENDATION_ACCEPT,
    RecommendationAction.DISMISS: InteractionType.RECOMMENDATION_DISMISS,
    RecommendationAction.COMPLETE: InteractionType.RECOMMENDATION_COMPLETE,
    RecommendationAction.FEEDBACK: InteractionType.RECOMMENDATION_FEEDBACK,
}

EXERCISE_CATALOG: tuple[dict[str, Any], ...] = (
    {"id": "exercise_breathing", "type": "breathing_exercise", "score": 0.6, "title": "Box Breathing"},
    {"id": "exercise_grounding", "type": "grounding_exercise", "score": 0.55, "title": "5-4-3-2-1 Grounding"},
    {"id": "exercise_meditation", "type": "meditation", "score": 0.5, "title": "Guided Meditation"},
    {"id": "exercise_mindfulness", "type": "mindfulness", "score": 0.5, "title": "Mindful Minute"},
    {"id": "exercise_gratitude", "type": "gratitude_practice", "score": 0.45, "title": "Three Good Things"},
    {"id": "exercise_journal", "type": "journal_entry", "score": 0.45, "title": "Feelings Journal"},
)

ACTIVITY_CATALOG: tuple[dict[str, Any], ...] = (
    {"id": "activity_walk", "type": "physical_exercise", "score": 0.55, "title": "Short Walk"},
    {"id": "activity_goals", "type": "goal_setting", "score": 0.5, "title": "Set One Small Goal"},
    {"id": "activity_social", "type": "social_activity", "score": 0.5, "title": "Reach Out to a Friend"},
    {"id": "activity_learning", "type": "learning", "score": 0.45, "title": "Learn a Coping Skill"},
    {"id": "activity_mood_log", "type": "mood_log", "score": 0.4, "title": "Check In With Your Mood"},
)

CANDIDATE_LIMIT = 5
LEARNED_CONFIDENCE_SATURATION = 50


class PersonalizationService:
    """Adaptive personalization core exposed to the UI and HTTP layers."""

    def __init__(
        self,
        settings: PersonalizationSettings | None = None,
        *,
        repository: PersonalizationRepository | None = None,
        insight_generator: InsightGenerator | None = None,
        publisher: PersonalizationEventPublisher | None = None,
        clock: Clock = system_clock,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings or PersonalizationSettings()
        self._clock = clock
        self._repository = repository or InMemoryPersonalizationRepository()
        self._publisher = publisher or PersonalizationEventPublisher()
        self._ledger = InteractionLedger(self._repository, self._settings.ledger, clock)
        self._learner = PatternLearner(self._settings.ledger.session_gap)
        self._adapter = RealTimeAdapter(self._settings.adapter)
        self._scorer = CompatibilityScorer(self._settings.compatibility)
        self._analytics = PerformanceAnalytics(self._repository, self._settings.analytics, clock)
        self._insights = InsightClient(insight_generator, self._settings.insights)
        self._scheduler = RefreshScheduler(
            self._ledger,
            self._analytics,
            learner=self._learner,
            config=self._settings.scheduler,
            regenerators={
                RefreshCategory.CONTENT: self._regenerate_content,
                RefreshCategory.PEERS: self._regenerate_peers,
                RefreshCategory.EXERCISES: self._regenerate_exercises,
                RefreshCategory.ACTIVITIES: self._regenerate_activities,
            },
            publisher=self._publisher,
            clock=clock,
            rng=rng,
        )
        logger.info("personalization_service_initialized", service=self._settings.service.name)

    @property
    def settings(self) -> PersonalizationSettings:
        return self._settings

    @property
    def ledger(self) -> InteractionLedger:
        return self._ledger

    @property
    def analytics(self) -> PerformanceAnalytics:
        return self._analytics

    @property
    def scheduler(self) -> RefreshScheduler:
        return self._scheduler

    @property
    def adapter(self) -> RealTimeAdapter:
        return self._adapter

    @property
    def scorer(self) -> CompatibilityScorer:
        return self._scorer

    @property
    def publisher(self) -> PersonalizationEventPublisher:
        return self._publisher

    async def initialize(self) -> None:
        await self._publisher.start()
        logger.info("personalization_service_started")

    async def shutdown(self) -> None:
        self._scheduler.shutdown()
        await self._ledger.close()
        await self._analytics.close()
        await self._publisher.stop()
        logger.info("personalization_service_stopped")

    async def _publish(self, event: PersonalizationEvent) -> None:
        try:
            await self._publisher.publish(event)
        except Exception as e:
            logger.error("event_publish_failed", event_type=event.event_type.value, error=str(e))

    # Tracking

    async def track_interaction(
        self,
        user_id: str,
        interaction_type: InteractionType | str,
        payload: Mapping[str, Any] | BasePayload | None = None,
        context: InteractionContext | None = None,
    ) -> InteractionRecord | None:
        """Record an interaction. Invalid input or internal failure returns None."""
        try:
            record = await self._ledger.record(user_id, interaction_type, payload, context)
        except (ValidationError, ValueError) as e:
            logger.warning("interaction_rejected", user_id=user_id,
                           interaction_type=str(interaction_type), error=str(e))
            return None
        except Exception as e:
            logger.error("interaction_tracking_failed", user_id=user_id, error=str(e))
            return None

        await self._publish(InteractionTrackedEvent(
            user_id=user_id, interaction_id=record.id, interaction_type=record.type.value,
        ))
        total = self._ledger.count(user_id)
        milestone = milestone_for(total)
        if milestone is not None:
            logger.info("milestone_reached", user_id=user_id, milestone=milestone)
            await self._publish(MilestoneReachedEvent(
                user_id=user_id, milestone=milestone, total_interactions=total,
            ))
        return record

    async def track_recommendation_event(
        self,
        user_id: str,
        recommendation_id: str,
        action: RecommendationAction | str,
        data: Mapping[str, Any] | None = None,
        context: InteractionContext | None = None,
    ) -> OutcomeEvent | None:
        """Record a recommendation outcome in both the ledger and analytics."""
        try:
            action = RecommendationAction(action)
        except ValueError:
            logger.warning("recommendation_action_rejected", user_id=user_id, action=str(action))
            return None
        data = dict(data or {})
        event = await self._analytics.track(recommendation_id, action, data, user_id=user_id)
        if event is None:
            return None
        payload: dict[str, Any] = {
            "recommendation_id": recommendation_id,
            "action": action,
            "category": data.get("category"),
            "time_from_impression_ms": data.get("time_from_impression_ms"),
        }
        if event.rating is not None:
            payload["user_rating"] = event.rating
        if action == RecommendationAction.COMPLETE:
            payload["completed"] = True
        await self.track_interaction(user_id, ACTION_INTERACTIONS[action], payload, context)
        return event

    # Learning and recommendations

    def learn_patterns(self, user_id: str) -> BehaviorProfile:
        try:
            return self._learner.learn_patterns(self._ledger.snapshot(user_id))
        except Exception as e:
            logger.error("pattern_learning_failed", user_id=user_id, error=str(e))
            return BehaviorProfile()

    async def _ai_candidates(
        self, user_id: str, profile: BehaviorProfile, context: InteractionContext,
    ) -> tuple[list[RecommendationItem], float | None]:
        if not self._insights.enabled or profile.total_interactions < self._settings.insights.min_interactions:
            return [], None
        result = await self._insights.generate(
            {
                "user_id": user_id,
                "patterns": profile.model_dump(mode="json"),
                "context": context.model_dump(mode="json"),
            },
            purpose="recommendations",
        )
        if not result:
            return [], None
        items: list[RecommendationItem] = []
        for raw in result.get("suggestions", []):
            try:
                items.append(RecommendationItem.model_validate(raw))
            except ValidationError as e:
                logger.warning("ai_suggestion_invalid", user_id=user_id, error=str(e))
        confidence = result.get("confidence")
        return items, float(confidence) if isinstance(confidence, (int, float)) else None

    async def _candidates(
        self, user_id: str, context: InteractionContext,
    ) -> tuple[list[RecommendationItem], str, float]:
        profile = self.learn_patterns(user_id)
        if profile.is_empty:
            raise InsufficientDataError(
                "No interaction history for recommendations",
                operation="get_recommendations", user_id=user_id, required=1, available=0,
            )
        learned = [
            RecommendationItem(type=s.activity, score=s.score, reason=s.reason)
            for s in activity_suggestions(profile, limit=CANDIDATE_LIMIT)
        ]
        learned += [
            RecommendationItem(type=s.activity, score=0.5, reason=s.reason)
            for s in mood_based_suggestions(profile, context_mood(context))
        ]
        ai_items, ai_confidence = await self._ai_candidates(user_id, profile, context)
        candidates = merge_recommendations(learned, ai_items)
        if not candidates:
            raise InsufficientDataError(
                "Interaction history produced no candidates",
                operation="get_recommendations", user_id=user_id,
            )
        confidence = 0.5 + 0.5 * min(1.0, profile.total_interactions / LEARNED_CONFIDENCE_SATURATION)
        if ai_items and ai_confidence is not None:
            return candidates, "ai", max(0.0, min(1.0, ai_confidence))
        return candidates, "learned", confidence

    async def get_recommendations(
        self,
        user_id: str,
        context: InteractionContext | None = None,
        base: Sequence[RecommendationItem | Mapping[str, Any]] | None = None,
    ) -> RecommendationBundle:
        """Adapted recommendations for the user's current context."""
        context = context or current_context(now=self._clock())
        try:
            if base is not None:
                candidates, source, confidence = list(base), "caller", 1.0
            else:
                candidates, source, confidence = await self._candidates(user_id, context)
        except InsufficientDataError:
            candidates, source, confidence = list(fallback_recommendations()), "fallback", 0.3
        except Exception as e:
            logger.error("recommendation_candidates_failed", user_id=user_id, error=str(e))
            candidates, source, confidence = list(fallback_recommendations()), "fallback", 0.3

        items = self._adapter.adapt(candidates, context)
        state = self._adapter.stress_state(context)
        bundle = RecommendationBundle(
            user_id=user_id, items=items, stress_level=state,
            immediate_action=state == StressState.CRITICAL,
            source=source, confidence=confidence, context=context,
        )
        await self._publish(RecommendationsAdaptedEvent(
            user_id=user_id, item_count=len(items), stress_level=state, source_kind=source,
        ))
        if state == StressState.CRITICAL:
            await self._publish(SafetyOverrideEvent(
                user_id=user_id, anxiety_level=context.anxiety_level, stress_level=context.stress_level,
            ))
        return bundle

    async def get_peer_matches(
        self, user_id: str, *, limit: int | None = None, min_score: float | None = None,
    ) -> PeerMatches:
        """Categorized peer suggestions. Failures yield empty lists with low confidence."""
        try:
            profile = await self._repository.fetch_user_profile(user_id)
            if profile is None:
                profile = UserProfile(user_id=user_id)
            peers = await self._repository.fetch_candidate_peers(user_id)
            behavior = self.learn_patterns(user_id)
            candidates = [
                (peer, self._behavior_or_none(peer.user_id)) for peer in peers
            ]
            ranked = self._scorer.rank_candidates(
                profile, candidates, None if behavior.is_empty else behavior,
                min_score=min_score, limit=limit,
            )
            return categorize_matches(user_id, ranked)
        except PersonalizationError:
            return PeerMatches(user_id=user_id, confidence=Confidence.LOW)
        except Exception as e:
            logger.error("peer_matching_failed", user_id=user_id, error=str(e))
            return PeerMatches(user_id=user_id, confidence=Confidence.LOW)

    def _behavior_or_none(self, user_id: str) -> BehaviorProfile | None:
        profile = self.learn_patterns(user_id)
        return None if profile.is_empty else profile

    # Refresh

    def register_refresh_callback(self, user_id: str, callback: RefreshCallback) -> None:
        self._scheduler.register_callback(user_id, callback)

    def unregister_refresh_callback(self, user_id: str, callback: RefreshCallback) -> bool:
        return self._scheduler.unregister_callback(user_id, callback)

    async def start_refresh(
        self, user_id: str, context: InteractionContext | None = None, *, refresh_now: bool = True,
    ) -> timedelta:
        return await self._scheduler.start(user_id, context=context, refresh_now=refresh_now)

    def stop_refresh(self, user_id: str) -> bool:
        return self._scheduler.stop(user_id)

    async def trigger_refresh(
        self, user_id: str, context: InteractionContext | None = None,
    ) -> RefreshOutcome:
        return await self._scheduler.refresh(user_id, context, force=True)

    def refresh_statistics(self, user_id: str) -> RefreshStatistics:
        return self._scheduler.refresh_statistics(user_id)

    async def _regenerate_content(self, user_id: str, context: InteractionContext) -> list[Any]:
        bundle = await self.get_recommendations(user_id, context)
        return list(bundle.items)

    async def _regenerate_peers(self, user_id: str, context: InteractionContext) -> list[Any]:
        matches = await self.get_peer_matches(user_id)
        return matches.support_partners + matches.activity_partners + matches.mentor_connections

    async def _regenerate_exercises(self, user_id: str, context: InteractionContext) -> list[Any]:
        suited = filter_by_mood(EXERCISE_CATALOG, context_mood(context)) or list(EXERCISE_CATALOG)
        return self._adapter.adapt(suited, context)

    async def _regenerate_activities(self, user_id: str, context: InteractionContext) -> list[Any]:
        return self._adapter.adapt(prioritize_by_time(ACTIVITY_CATALOG, context.time_of_day), context)

    # Analytics

    async def get_analytics_summary(
        self, user_id: str, *, window: timedelta | None = None,
    ) -> AnalyticsSummary:
        try:
            summary = self._analytics.summary(user_id, window=window)
        except Exception as e:
            logger.error("analytics_summary_failed", user_id=user_id, error=str(e))
            return AnalyticsSummary(
                user_id=user_id,
                performance_overview=PerformanceOverview(),
            )

        history = summary.performance_overview.total_interactions
        if history > self._settings.analytics.ai_insights_min_history and self._insights.enabled:
            insights = await self._insights.generate(
                {
                    "performance": summary.performance_overview.model_dump(mode="json"),
                    "categories": {k: v.model_dump(mode="json") for k, v in summary.category_analysis.items()},
                },
                purpose="recommendation_performance",
            )
            if insights:
                summary.ai_insights = insights
                await self.track_interaction(
                    user_id, InteractionType.AI_INSIGHTS_GENERATED,
                    {"insight_type": "recommendation_performance", "summary": insights},
                )
        if summary.suggested_adjustments:
            await self._publish(AdjustmentSuggestedEvent(
                user_id=user_id, adjustments=summary.suggested_adjustments,
            ))
        return summary

    def export_analytics(self, user_id: str | None = None) -> AnalyticsExport:
        return self._analytics.export(user_id=user_id)

    def run_maintenance(self) -> int:
        """Retention sweep over analytics metrics."""
        return self._analytics.cleanup()


def create_personalization_service(
    settings: PersonalizationSettings | None = None,
    repository: PersonalizationRepository | None = None,
    insight_generator: InsightGenerator | None = None,
) -> PersonalizationService:
    """Factory function to create a configured PersonalizationService."""
    return PersonalizationService(
        settings or PersonalizationSettings.load(),
        repository=repository,
        insight_generator=insight_generator,
    )
