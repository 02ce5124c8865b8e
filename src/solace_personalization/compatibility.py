"""
Solace-AI Personalization - Compatibility Scorer.

Peer-match scoring from profile overlap and behavioural similarity. A single
weighting is used: profile dimensions carry 0.6 (interests 0.24, experiences
0.21, age range 0.09, communication style 0.06), behavioural similarity 0.3
and activity-level compatibility 0.1. Only dimensions with data on both sides
participate; the remaining weights are renormalized so sparse histories are
not penalized.

Architecture Layer: Domain
Principles: Symmetric Scoring, Graceful Degradation, Explainable Breakdown
"""
from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from statistics import fmean

import structlog

from .config import CompatibilityWeights
from .learner import SYSTEM_INTERACTIONS, categorize_activity_level, clamp
from .models import (
    ActivityLevel,
    BehaviorProfile,
    CompatibilityResult,
    Confidence,
    PeerMatch,
    PeerMatches,
    UserProfile,
)

logger = structlog.get_logger(__name__)

NEUTRAL_SCORE = 0.5
OPEN_AGE_UPPER = 200
_AGE_RANGE = re.compile(r"^\s*(\d+)\s*(?:(-)\s*(\d+)|(\+))?\s*$")
_LEVEL_ORDER = {ActivityLevel.LOW: 0, ActivityLevel.MEDIUM: 1, ActivityLevel.HIGH: 2}


def parse_age_range(value: str | None) -> tuple[int, int] | None:
    """Parse ``"26-35"``, ``"56+"`` or ``"30"`` into a closed interval."""
    if not value:
        return None
    match = _AGE_RANGE.match(value)
    if match is None:
        return None
    low = int(match.group(1))
    if match.group(4):
        return low, OPEN_AGE_UPPER
    high = int(match.group(3)) if match.group(3) else low
    return (low, high) if low <= high else (high, low)


def _normalized(values: Iterable[str]) -> set[str]:
    return {v.strip().lower() for v in values if v and v.strip()}


def overlap_ratio(a: set[str], b: set[str]) -> float:
    """``|A ∩ B| / max(|A|, |B|)``; 0 when either side is empty."""
    if not a or not b:
        return 0.0
    return len(a & b) / max(len(a), len(b))


def jaccard(a: set[str], b: set[str]) -> float:
    union = a | b
    return len(a & b) / len(union) if union else 0.0


def distribution_similarity(a: Mapping[str, int], b: Mapping[str, int]) -> float | None:
    """Mean of ``1 - |pA - pB|`` over buckets with signal in either distribution."""
    total_a, total_b = sum(a.values()), sum(b.values())
    if total_a == 0 or total_b == 0:
        return None
    buckets = sorted(k for k in set(a) | set(b) if a.get(k, 0) > 0 or b.get(k, 0) > 0)
    return fmean(1.0 - abs(a.get(k, 0) / total_a - b.get(k, 0) / total_b) for k in buckets)


def _bucket_totals(prefs: Mapping[str, Mapping[str, int]]) -> dict[str, int]:
    return {bucket: sum(counts.values()) for bucket, counts in prefs.items()}


def _activity_types(profile: BehaviorProfile) -> set[str]:
    return {
        kind for kind, count in profile.content_preferences.activity_types.items()
        if count > 0 and kind not in SYSTEM_INTERACTIONS
    }


def behavioral_similarity(a: BehaviorProfile | None, b: BehaviorProfile | None) -> float | None:
    """Average of activity-type Jaccard, time and mood distribution similarity.

    Sub-terms lacking data on either side are excluded. Returns None when no
    sub-term can be computed.
    """
    if a is None or b is None or a.is_empty or b.is_empty:
        return None
    terms: list[float] = []
    types_a, types_b = _activity_types(a), _activity_types(b)
    if types_a and types_b:
        terms.append(jaccard(types_a, types_b))
    time_sim = distribution_similarity(
        _bucket_totals(a.time_preferences), _bucket_totals(b.time_preferences)
    )
    if time_sim is not None:
        terms.append(time_sim)
    mood_sim = distribution_similarity(
        _bucket_totals(a.mood_preferences), _bucket_totals(b.mood_preferences)
    )
    if mood_sim is not None:
        terms.append(mood_sim)
    return clamp(fmean(terms)) if terms else None


def activity_level_compatibility(a: ActivityLevel | None, b: ActivityLevel | None) -> float | None:
    if a is None or b is None:
        return None
    return 1.0 if abs(_LEVEL_ORDER[a] - _LEVEL_ORDER[b]) <= 1 else 0.0


def suggested_interaction_type(score: float) -> str:
    if score > 0.8:
        return "collaborative_support"
    if score > 0.6:
        return "peer_mentoring"
    if score > 0.4:
        return "activity_partnership"
    return "general_connection"


class CompatibilityScorer:
    """Symmetric, deterministic peer compatibility."""

    def __init__(self, weights: CompatibilityWeights | None = None) -> None:
        self._weights = weights or CompatibilityWeights()

    @property
    def weights(self) -> CompatibilityWeights:
        return self._weights

    def compatibility(
        self,
        profile_a: UserProfile,
        profile_b: UserProfile,
        behavior_a: BehaviorProfile | None = None,
        behavior_b: BehaviorProfile | None = None,
    ) -> CompatibilityResult:
        """Score a pair of users. Never raises; failures yield a neutral score."""
        try:
            return self._score(profile_a, profile_b, behavior_a, behavior_b)
        except Exception as e:
            logger.error("compatibility_scoring_failed", user_a=profile_a.user_id,
                         user_b=profile_b.user_id, error=str(e))
            return CompatibilityResult(
                user_a=profile_a.user_id, user_b=profile_b.user_id,
                score=NEUTRAL_SCORE, confidence=Confidence.LOW,
                suggested_interaction=suggested_interaction_type(NEUTRAL_SCORE),
            )

    def _score(
        self,
        profile_a: UserProfile,
        profile_b: UserProfile,
        behavior_a: BehaviorProfile | None,
        behavior_b: BehaviorProfile | None,
    ) -> CompatibilityResult:
        interests_a, interests_b = _normalized(profile_a.interests), _normalized(profile_b.interests)
        exp_a, exp_b = _normalized(profile_a.experiences), _normalized(profile_b.experiences)
        shared_interests = sorted(interests_a & interests_b)
        shared_experiences = sorted(exp_a & exp_b)

        breakdown: dict[str, float] = {}
        if interests_a and interests_b:
            breakdown["interests"] = overlap_ratio(interests_a, interests_b)
        if exp_a and exp_b:
            breakdown["experiences"] = overlap_ratio(exp_a, exp_b)
        age_a, age_b = parse_age_range(profile_a.age_range), parse_age_range(profile_b.age_range)
        if age_a and age_b:
            breakdown["age_range"] = 1.0 if age_a[0] <= age_b[1] and age_b[0] <= age_a[1] else 0.0
        style_a = (profile_a.communication_style or "").strip().lower()
        style_b = (profile_b.communication_style or "").strip().lower()
        if style_a and style_b:
            breakdown["communication_style"] = 1.0 if style_a == style_b else 0.0
        behavior = behavioral_similarity(behavior_a, behavior_b)
        if behavior is not None:
            breakdown["behavioral_similarity"] = behavior
        level = activity_level_compatibility(
            categorize_activity_level(behavior_a.engagement_patterns) if behavior_a else None,
            categorize_activity_level(behavior_b.engagement_patterns) if behavior_b else None,
        )
        if level is not None:
            breakdown["activity_level"] = level

        weights = self._weights.as_dict()
        participating = sum(weights[name] for name in breakdown)
        if participating > 0:
            score = clamp(sum(weights[n] * s for n, s in breakdown.items()) / participating)
            confidence = (
                Confidence.HIGH if participating >= 0.9
                else Confidence.MEDIUM if participating >= 0.5
                else Confidence.LOW
            )
        else:
            both_empty = (
                profile_a.is_empty and profile_b.is_empty
                and (behavior_a is None or behavior_a.is_empty)
                and (behavior_b is None or behavior_b.is_empty)
            )
            score = 0.0 if both_empty else NEUTRAL_SCORE
            confidence = Confidence.LOW

        return CompatibilityResult(
            user_a=profile_a.user_id,
            user_b=profile_b.user_id,
            score=score,
            shared_interests=shared_interests,
            shared_experiences=shared_experiences,
            behavioral_similarity=behavior,
            breakdown=breakdown,
            confidence=confidence,
            suggested_interaction=suggested_interaction_type(score),
        )

    def rank_candidates(
        self,
        profile: UserProfile,
        candidates: Sequence[tuple[UserProfile, BehaviorProfile | None]],
        behavior: BehaviorProfile | None = None,
        *,
        min_score: float | None = None,
        limit: int | None = None,
    ) -> list[PeerMatch]:
        """Score candidates, drop those below the minimum and return the best first."""
        threshold = self._weights.min_match_score if min_score is None else min_score
        cap = self._weights.max_matches if limit is None else limit
        matches = [
            PeerMatch(profile=peer, compatibility=self.compatibility(profile, peer, behavior, peer_behavior))
            for peer, peer_behavior in candidates
            if peer.user_id != profile.user_id
        ]
        matches = [m for m in matches if m.compatibility.score >= threshold]
        matches.sort(key=lambda m: (-m.compatibility.score, m.profile.user_id))
        return matches[:cap]


def categorize_matches(user_id: str, matches: Sequence[PeerMatch]) -> PeerMatches:
    """Split ranked matches into support, activity and mentor lists."""
    result = PeerMatches(user_id=user_id, confidence=Confidence.LOW)
    for match in matches:
        kind = match.compatibility.suggested_interaction
        if kind == "peer_mentoring":
            result.mentor_connections.append(match)
        elif kind == "collaborative_support" or match.compatibility.shared_experiences:
            result.support_partners.append(match)
        else:
            result.activity_partners.append(match)
    if matches:
        behaviour_backed = any("behavioral_similarity" in m.compatibility.breakdown for m in matches)
        result.confidence = Confidence.HIGH if behaviour_backed else Confidence.MEDIUM
    return result
