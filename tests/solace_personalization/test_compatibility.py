"""
Unit tests for peer compatibility scoring.
"""
from datetime import timedelta

import pytest

from solace_personalization.compatibility import (
    CompatibilityScorer,
    activity_level_compatibility,
    behavioral_similarity,
    categorize_matches,
    distribution_similarity,
    parse_age_range,
    suggested_interaction_type,
)
from solace_personalization.learner import PatternLearner
from solace_personalization.models import (
    ActivityLevel,
    CompatibilityResult,
    Confidence,
    InteractionType,
    PeerMatch,
    UserProfile,
)


@pytest.fixture
def scorer():
    return CompatibilityScorer()


@pytest.fixture
def make_behavior(make_record, base_time):
    def _make(user_id, kinds, hour=19):
        records = [
            make_record(user_id=user_id, interaction_type=kind,
                        at=base_time.replace(hour=hour) + timedelta(minutes=i))
            for i, kind in enumerate(kinds)
        ]
        return PatternLearner().learn_patterns(records)
    return _make


class TestParsing:

    @pytest.mark.parametrize("value,expected", [
        ("26-35", (26, 35)),
        (" 18 - 25 ", (18, 25)),
        ("56+", (56, 200)),
        ("30", (30, 30)),
        ("40-30", (30, 40)),
        ("adult", None),
        (None, None),
    ])
    def test_parse_age_range(self, value, expected):
        assert parse_age_range(value) == expected

    def test_distribution_similarity(self):
        assert distribution_similarity({"a": 2}, {"a": 5}) == 1.0
        assert distribution_similarity({"a": 1}, {"b": 1}) == 0.0
        assert distribution_similarity({"a": 0}, {"a": 1}) is None

    def test_activity_level_compatibility(self):
        assert activity_level_compatibility(ActivityLevel.LOW, ActivityLevel.MEDIUM) == 1.0
        assert activity_level_compatibility(ActivityLevel.LOW, ActivityLevel.HIGH) == 0.0
        assert activity_level_compatibility(None, ActivityLevel.HIGH) is None

    def test_suggested_interaction_type(self):
        assert suggested_interaction_type(0.85) == "collaborative_support"
        assert suggested_interaction_type(0.7) == "peer_mentoring"
        assert suggested_interaction_type(0.5) == "activity_partnership"
        assert suggested_interaction_type(0.4) == "general_connection"


class TestCompatibility:
    """Tests for CompatibilityScorer.compatibility."""

    def test_shared_interests(self, scorer):
        a = UserProfile(user_id="a", interests=["anxiety", "mindfulness"])
        b = UserProfile(user_id="b", interests=["Anxiety", "mindfulness", "yoga"])

        result = scorer.compatibility(a, b)

        assert result.shared_interests == ["anxiety", "mindfulness"]
        assert result.breakdown["interests"] == pytest.approx(2 / 3)
        assert result.score == pytest.approx(2 / 3)
        assert result.confidence == Confidence.LOW

    def test_symmetric(self, scorer, make_behavior):
        a = UserProfile(user_id="a", interests=["art", "music"], experiences=["grief"],
                        age_range="26-35", communication_style="text")
        b = UserProfile(user_id="b", interests=["music"], experiences=["grief", "loss"],
                        age_range="30-40", communication_style="voice")
        behavior_a = make_behavior("a", [InteractionType.MEDITATION, InteractionType.JOURNAL_ENTRY])
        behavior_b = make_behavior("b", [InteractionType.MEDITATION], hour=8)

        forward = scorer.compatibility(a, b, behavior_a, behavior_b)
        backward = scorer.compatibility(b, a, behavior_b, behavior_a)

        assert forward.score == pytest.approx(backward.score)
        assert forward.breakdown == pytest.approx(backward.breakdown)
        assert 0.0 <= forward.score <= 1.0
        assert forward.confidence == Confidence.HIGH

    def test_weighted_breakdown(self, scorer):
        a = UserProfile(user_id="a", interests=["art"], age_range="26-35", communication_style="text")
        b = UserProfile(user_id="b", interests=["art"], age_range="56+", communication_style="TEXT")

        result = scorer.compatibility(a, b)

        assert result.breakdown == {"interests": 1.0, "age_range": 0.0, "communication_style": 1.0}
        assert result.score == pytest.approx((0.24 + 0.06) / (0.24 + 0.09 + 0.06))

    def test_both_empty_scores_zero(self, scorer):
        result = scorer.compatibility(UserProfile(user_id="a"), UserProfile(user_id="b"))

        assert result.score == 0.0
        assert result.confidence == Confidence.LOW

    def test_one_sided_data_is_neutral(self, scorer):
        result = scorer.compatibility(
            UserProfile(user_id="a", interests=["art"]), UserProfile(user_id="b"),
        )

        assert result.score == 0.5
        assert result.confidence == Confidence.LOW
        assert result.breakdown == {}

    def test_behavioral_similarity_identical_histories(self, make_behavior):
        kinds = [InteractionType.MEDITATION, InteractionType.BREATHING_EXERCISE]

        assert behavioral_similarity(make_behavior("a", kinds), make_behavior("b", kinds)) == 1.0
        assert behavioral_similarity(make_behavior("a", kinds), None) is None

    def test_deterministic(self, scorer):
        a = UserProfile(user_id="a", interests=["art"], experiences=["loss"])
        b = UserProfile(user_id="b", interests=["art", "music"], experiences=["loss"])

        first = scorer.compatibility(a, b)
        second = scorer.compatibility(a, b)

        assert first.score == second.score
        assert first.breakdown == second.breakdown


class TestRanking:

    def test_rank_filters_sorts_and_excludes_self(self, scorer):
        me = UserProfile(user_id="me", interests=["art", "music"])
        candidates = [
            (UserProfile(user_id="zed", interests=["art", "music"]), None),
            (UserProfile(user_id="amy", interests=["art", "music"]), None),
            (UserProfile(user_id="bob", interests=["cooking"]), None),
            (UserProfile(user_id="me", interests=["art", "music"]), None),
        ]

        matches = scorer.rank_candidates(me, candidates)

        assert [m.profile.user_id for m in matches] == ["amy", "zed"]

    def test_rank_limit(self, scorer):
        me = UserProfile(user_id="me", interests=["art"])
        candidates = [(UserProfile(user_id=f"p{i}", interests=["art"]), None) for i in range(5)]

        assert len(scorer.rank_candidates(me, candidates, limit=2)) == 2


class TestCategorizeMatches:

    def _match(self, user_id, score, suggested, shared_experiences=()):
        return PeerMatch(
            profile=UserProfile(user_id=user_id),
            compatibility=CompatibilityResult(
                user_a="me", user_b=user_id, score=score,
                shared_experiences=list(shared_experiences), suggested_interaction=suggested,
            ),
        )

    def test_categories(self):
        matches = [
            self._match("s1", 0.9, "collaborative_support"),
            self._match("m1", 0.7, "peer_mentoring", ["grief"]),
            self._match("s2", 0.5, "activity_partnership", ["grief"]),
            self._match("a1", 0.45, "activity_partnership"),
        ]

        result = categorize_matches("me", matches)

        assert [m.profile.user_id for m in result.support_partners] == ["s1", "s2"]
        assert [m.profile.user_id for m in result.mentor_connections] == ["m1"]
        assert [m.profile.user_id for m in result.activity_partners] == ["a1"]
        assert result.confidence == Confidence.MEDIUM

    def test_no_matches_low_confidence(self):
        result = categorize_matches("me", [])

        assert result.total == 0
        assert result.confidence == Confidence.LOW
