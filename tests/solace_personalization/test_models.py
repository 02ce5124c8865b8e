"""
Unit tests for personalization domain models.
"""
import pytest
from pydantic import ValidationError

from solace_personalization.models import (
    BehaviorProfile,
    ContentPayload,
    InsightPayload,
    InteractionRecord,
    InteractionType,
    MoodLogPayload,
    PeerMatches,
    RecommendationAction,
    RecommendationPayload,
    RefreshCategory,
    RefreshOutcome,
    RefreshPayload,
    RefreshResult,
    UserProfile,
    build_payload,
)


class TestInteractionType:

    def test_recommendation_related(self):
        assert InteractionType.RECOMMENDATION_ACCEPT.is_recommendation_related
        assert InteractionType.RECOMMENDATION_REFRESH.is_recommendation_related
        assert not InteractionType.MEDITATION.is_recommendation_related

    def test_social_types(self):
        social = {t for t in InteractionType if t.is_social}

        assert social == {
            InteractionType.PEER_MESSAGE,
            InteractionType.PEER_MATCH_VIEW,
            InteractionType.SOCIAL_ACTIVITY,
        }


class TestBuildPayload:
    """Tests for payload variant selection."""

    @pytest.mark.parametrize("interaction_type,variant", [
        (InteractionType.BREATHING_EXERCISE, ContentPayload),
        (InteractionType.MOOD_LOG, MoodLogPayload),
        (InteractionType.RECOMMENDATION_DISMISS, RecommendationPayload),
        (InteractionType.RECOMMENDATION_REFRESH, RefreshPayload),
        (InteractionType.AI_INSIGHTS_GENERATED, InsightPayload),
    ])
    def test_variant_per_type(self, interaction_type, variant):
        assert isinstance(build_payload(interaction_type, {}), variant)

    def test_kind_key_ignored(self):
        payload = build_payload("mood_log", {"kind": "content", "emotion": "sad"})

        assert isinstance(payload, MoodLogPayload)
        assert payload.emotion == "sad"

    def test_rating_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            build_payload(InteractionType.MEDITATION, {"user_rating": 7})

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            build_payload("teleport", {})

    def test_extra_fields_kept(self):
        payload = build_payload(InteractionType.CONTENT_VIEW, {"source": "home_feed"})

        assert payload.model_dump()["source"] == "home_feed"

    def test_recommendation_action_coerced(self):
        payload = build_payload(InteractionType.RECOMMENDATION_ACCEPT, {"action": "accept"})

        assert payload.action == RecommendationAction.ACCEPT


class TestInteractionRecord:

    def test_record_is_frozen(self, make_record):
        record = make_record()

        with pytest.raises(ValidationError):
            record.user_id = "someone-else"

    def test_json_round_trip_keeps_variant(self, make_record):
        record = make_record(interaction_type=InteractionType.MOOD_LOG, payload={"emotion": "anxious"})

        restored = InteractionRecord.model_validate_json(record.model_dump_json())

        assert isinstance(restored.payload, MoodLogPayload)
        assert restored.payload.emotion == "anxious"
        assert restored.id == record.id


class TestProfiles:

    def test_empty_behavior_profile_has_all_buckets(self):
        profile = BehaviorProfile()

        assert profile.is_empty
        assert set(profile.time_preferences) == {"morning", "afternoon", "evening", "night"}
        assert set(profile.mood_preferences) == {"happy", "sad", "anxious", "stressed", "neutral"}

    def test_user_profile_is_empty(self):
        assert UserProfile(user_id="u").is_empty
        assert not UserProfile(user_id="u", interests=["art"]).is_empty


class TestResults:

    def test_refresh_outcome_total(self):
        outcome = RefreshOutcome(
            user_id="u",
            results={
                "content": RefreshResult(category=RefreshCategory.CONTENT, success=True, count=3),
                "peers": RefreshResult(category=RefreshCategory.PEERS, success=False),
            },
        )

        assert outcome.total_recommendations == 3

    def test_peer_matches_total_empty(self):
        assert PeerMatches(user_id="u").total == 0
