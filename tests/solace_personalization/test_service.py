"""
Tests for the personalization service facade.
"""
import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio

from solace_personalization.config import InsightsConfig, PersonalizationSettings
from solace_personalization.events import PersonalizationEventType
from solace_personalization.exceptions import StorageError
from solace_personalization.insights import InsightClient, InsightGenerator
from solace_personalization.models import (
    Confidence,
    InteractionType,
    RecommendationAction,
    StressState,
    UserProfile,
)
from solace_personalization.repository import InMemoryPersonalizationRepository
from solace_personalization.service import PersonalizationService

USER = "user-1"


class StaticInsightGenerator(InsightGenerator):
    """Returns a fixed result, optionally after a delay."""

    def __init__(self, result, delay: float = 0.0) -> None:
        self.result = result
        self.delay = delay
        self.calls = []

    async def generate_insights(self, context):
        self.calls.append(context)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result


class BrokenPeerRepository(InMemoryPersonalizationRepository):

    async def fetch_candidate_peers(self, exclude_user_id):
        raise StorageError("peer index unavailable", backend="memory")


@pytest_asyncio.fixture
async def make_service(clock):
    created = []

    def _make(settings=None, **kwargs):
        svc = PersonalizationService(settings or PersonalizationSettings(), clock=clock, **kwargs)
        created.append(svc)
        return svc

    yield _make
    for svc in created:
        await svc.shutdown()


async def _track_breathing(service, count):
    for _ in range(count):
        await service.track_interaction(
            USER, InteractionType.BREATHING_EXERCISE, {"completed": True, "user_rating": 5},
        )


class TestTracking:
    """Tests for interaction and outcome tracking."""

    @pytest.mark.asyncio
    async def test_track_interaction(self, service):
        record = await service.track_interaction(USER, "mood_log", {"emotion": "sad", "intensity": 6})

        assert record.type == InteractionType.MOOD_LOG
        assert service.ledger.count(USER) == 1
        tracked = service.publisher.get_recent_events(event_type=PersonalizationEventType.INTERACTION_TRACKED)
        assert tracked[-1].interaction_id == record.id

    @pytest.mark.asyncio
    async def test_invalid_interaction_returns_none(self, service):
        assert await service.track_interaction(USER, "meditation", {"user_rating": 11}) is None
        assert await service.track_interaction(USER, "levitation") is None
        assert service.ledger.count() == 0

    @pytest.mark.asyncio
    async def test_milestone_event(self, service):
        await _track_breathing(service, 10)

        milestones = service.publisher.get_recent_events(event_type=PersonalizationEventType.MILESTONE_REACHED)
        assert [e.milestone for e in milestones] == [10]

    @pytest.mark.asyncio
    async def test_track_recommendation_event(self, service):
        event = await service.track_recommendation_event(
            USER, "rec-1", RecommendationAction.COMPLETE, {"category": "wellness", "rating": 4},
        )

        assert event.category == "wellness"
        record = service.ledger.get_recent(1, USER)[0]
        assert record.type == InteractionType.RECOMMENDATION_COMPLETE
        assert record.payload.completed
        assert record.payload.user_rating == 4
        assert service.analytics.metric("rec-1").completions == 1

    @pytest.mark.asyncio
    async def test_out_of_range_rating_rejected_everywhere(self, service):
        await service.track_recommendation_event(USER, "rec-1", "impression", {"category": "mood"})

        assert await service.track_recommendation_event(USER, "rec-1", "feedback", {"rating": 9}) is None

        assert service.ledger.count(USER) == 1
        summary = await service.get_analytics_summary(USER)
        assert summary.performance_overview.total_interactions == 1
        assert "mood" in summary.category_analysis

    @pytest.mark.asyncio
    async def test_invalid_recommendation_action(self, service):
        assert await service.track_recommendation_event(USER, "rec-1", "ignore") is None
        assert service.ledger.count() == 0


class TestRecommendations:
    """Tests for get_recommendations."""

    @pytest.mark.asyncio
    async def test_fallback_without_history(self, service, make_context):
        bundle = await service.get_recommendations(USER, make_context())

        assert bundle.source == "fallback"
        assert bundle.confidence == 0.3
        assert {i.type for i in bundle.items} == {"breathing_exercise", "journal_entry"}

    @pytest.mark.asyncio
    async def test_learned_candidates(self, service, make_context):
        await _track_breathing(service, 3)

        bundle = await service.get_recommendations(USER, make_context())

        assert bundle.source == "learned"
        assert bundle.confidence == pytest.approx(0.5 + 0.5 * 3 / 50)
        assert bundle.items[0].type == "breathing_exercise"
        assert all(0.0 <= i.score <= 1.0 for i in bundle.items)

    @pytest.mark.asyncio
    async def test_caller_supplied_base(self, service, make_context):
        bundle = await service.get_recommendations(
            USER, make_context(mood="sad"), [{"id": "j", "type": "journal_entry", "score": 0.5}],
        )

        assert bundle.source == "caller"
        assert bundle.items[0].mood_boost

    @pytest.mark.asyncio
    async def test_crisis_overrides_everything(self, service, make_context):
        await _track_breathing(service, 3)

        bundle = await service.get_recommendations(USER, make_context(mood="happy", anxiety_level=9))

        assert bundle.stress_level == StressState.CRITICAL
        assert bundle.immediate_action
        assert bundle.items[0].type == "crisis_support"
        assert {i.type for i in bundle.items} == {"crisis_support", "emergency_contact", "breathing_exercise"}
        overrides = service.publisher.get_recent_events(
            event_type=PersonalizationEventType.SAFETY_OVERRIDE_TRIGGERED,
        )
        assert overrides[-1].anxiety_level == 9

    @pytest.mark.asyncio
    async def test_ai_candidates(self, make_service, make_context):
        generator = StaticInsightGenerator({
            "suggestions": [{"id": "ai-1", "type": "gratitude_practice", "score": 0.9}, {"score": 2}],
            "confidence": 0.8,
        })
        service = make_service(insight_generator=generator)
        await _track_breathing(service, 10)

        bundle = await service.get_recommendations(USER, make_context())

        assert bundle.source == "ai"
        assert bundle.confidence == 0.8
        assert "gratitude_practice" in {i.type for i in bundle.items}

    @pytest.mark.asyncio
    async def test_ai_not_consulted_for_short_history(self, make_service, make_context):
        generator = StaticInsightGenerator({"suggestions": [], "confidence": 0.9})
        service = make_service(insight_generator=generator)
        await _track_breathing(service, 3)

        bundle = await service.get_recommendations(USER, make_context())

        assert generator.calls == []
        assert bundle.source == "learned"

    @pytest.mark.asyncio
    async def test_ai_timeout_falls_back_to_heuristics(self, make_service, make_context):
        settings = PersonalizationSettings(insights=InsightsConfig(timeout_seconds=0.1))
        generator = StaticInsightGenerator({"suggestions": [{"type": "learning", "score": 1}]}, delay=1.0)
        service = make_service(settings, insight_generator=generator)
        await _track_breathing(service, 10)

        bundle = await service.get_recommendations(USER, make_context())

        assert bundle.source == "learned"
        assert "learning" not in {i.type for i in bundle.items}


class TestInsightClient:

    @pytest.mark.asyncio
    async def test_disabled_without_generator(self):
        client = InsightClient()

        assert not client.enabled
        assert await client.generate({}, purpose="test") is None

    @pytest.mark.asyncio
    async def test_error_counted(self):
        class Broken(InsightGenerator):
            async def generate_insights(self, context):
                raise ConnectionError("no route")

        client = InsightClient(Broken())

        assert await client.generate({}, purpose="test") is None
        assert client.get_statistics() == {"requests": 1, "errors": 1}


class TestPeerMatches:
    """Tests for get_peer_matches."""

    @pytest.mark.asyncio
    async def test_categorized_matches(self, service, repository):
        await repository.save_user_profile(UserProfile(
            user_id=USER, interests=["anxiety", "mindfulness"], experiences=["grief"],
        ))
        await repository.save_user_profile(UserProfile(
            user_id="peer-close", interests=["anxiety", "mindfulness"], experiences=["grief"],
        ))
        await repository.save_user_profile(UserProfile(user_id="peer-some", interests=["anxiety"]))
        await repository.save_user_profile(UserProfile(user_id="peer-none", interests=["cooking"]))

        matches = await service.get_peer_matches(USER)

        assert [m.profile.user_id for m in matches.support_partners] == ["peer-close"]
        assert [m.profile.user_id for m in matches.activity_partners] == ["peer-some"]
        assert matches.total == 2
        assert matches.confidence == Confidence.MEDIUM

    @pytest.mark.asyncio
    async def test_storage_failure_returns_empty(self, make_service):
        service = make_service(repository=BrokenPeerRepository())

        matches = await service.get_peer_matches(USER)

        assert matches.total == 0
        assert matches.confidence == Confidence.LOW


class TestRefresh:
    """Tests for the refresh surface."""

    @pytest.mark.asyncio
    async def test_trigger_refresh(self, service):
        received = []
        service.register_refresh_callback(USER, received.append)

        outcome = await service.trigger_refresh(USER)

        assert outcome.success
        assert outcome.results["content"].count == 2
        assert outcome.results["peers"].success
        assert received == [outcome]
        assert service.refresh_statistics(USER).total_refreshes == 1

    @pytest.mark.asyncio
    async def test_stop_refresh_twice_is_noop(self, service):
        interval = await service.start_refresh(USER)

        assert timedelta(minutes=5) <= interval <= timedelta(hours=1)
        assert service.stop_refresh(USER)
        assert not service.stop_refresh(USER)

    @pytest.mark.asyncio
    async def test_unregister_refresh_callback(self, service):
        callback = lambda outcome: None  # noqa: E731
        service.register_refresh_callback(USER, callback)

        assert service.unregister_refresh_callback(USER, callback)
        assert not service.unregister_refresh_callback(USER, callback)


class TestAnalytics:
    """Tests for the analytics surface."""

    @pytest.mark.asyncio
    async def test_summary_with_adjustments(self, service):
        for i in range(5):
            await service.track_recommendation_event(USER, f"rec-{i}", "impression", {"category": "social"})

        summary = await service.get_analytics_summary(USER)

        assert summary.category_analysis["social"].total_interactions == 5
        assert summary.ai_insights is None
        events = service.publisher.get_recent_events(event_type=PersonalizationEventType.ADJUSTMENT_SUGGESTED)
        assert events and events[-1].adjustments[0].category == "social"

    @pytest.mark.asyncio
    async def test_ai_insights_for_long_history(self, make_service):
        insights = {"summary": "Engagement is strong in the evening"}
        service = make_service(insight_generator=StaticInsightGenerator(insights))
        for i in range(21):
            await service.track_recommendation_event(USER, f"rec-{i}", "accept", {"category": "mood"})

        summary = await service.get_analytics_summary(USER)

        assert summary.ai_insights == insights
        generated = [r for r in service.ledger.snapshot(USER)
                     if r.type == InteractionType.AI_INSIGHTS_GENERATED]
        assert len(generated) == 1
        assert generated[0].payload.insight_type == "recommendation_performance"

    @pytest.mark.asyncio
    async def test_export_and_maintenance(self, service, clock):
        await service.track_recommendation_event(USER, "rec-1", "impression", {"category": "mood"})
        clock.advance(days=31)
        await service.track_recommendation_event(USER, "rec-2", "impression", {"category": "mood"})

        assert set(service.export_analytics(USER).metrics) == {"rec-1", "rec-2"}
        assert service.run_maintenance() == 1
        assert set(service.export_analytics(USER).metrics) == {"rec-2"}


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_initialize_and_shutdown(self, make_service):
        service = make_service()

        await service.initialize()
        assert service.publisher.running
        await service.start_refresh(USER, refresh_now=False)

        await service.shutdown()
        assert not service.publisher.running
        assert service.scheduler.get_session(USER) is None
