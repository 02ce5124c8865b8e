"""
Solace-AI Personalization - Domain Models.

Interaction records with typed payloads, derived behaviour profiles,
recommendation metrics and the result objects returned by the core.

Architecture Layer: Domain
Principles: Immutable Records, Tagged Payloads, Type Safety
"""
from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimeOfDay(str, Enum):
    """Coarse time-of-day buckets."""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class NormalizedMood(str, Enum):
    """Closed set of canonical mood categories."""
    HAPPY = "happy"
    SAD = "sad"
    ANXIOUS = "anxious"
    STRESSED = "stressed"
    NEUTRAL = "neutral"


class InteractionType(str, Enum):
    """Tracked user actions."""
    CONTENT_VIEW = "content_view"
    CONTENT_COMPLETE = "content_complete"
    PEER_MESSAGE = "peer_message"
    PEER_MATCH_VIEW = "peer_match_view"
    MOOD_LOG = "mood_log"
    JOURNAL_ENTRY = "journal_entry"
    BREATHING_EXERCISE = "breathing_exercise"
    MEDITATION = "meditation"
    PHYSICAL_EXERCISE = "physical_exercise"
    SOCIAL_ACTIVITY = "social_activity"
    RECOMMENDATION_IMPRESSION = "recommendation_impression"
    RECOMMENDATION_ACCEPT = "recommendation_accept"
    RECOMMENDATION_DISMISS = "recommendation_dismiss"
    RECOMMENDATION_COMPLETE = "recommendation_complete"
    RECOMMENDATION_FEEDBACK = "recommendation_feedback"
    RECOMMENDATION_REFRESH = "recommendation_refresh"
    AI_INSIGHTS_GENERATED = "ai_insights_generated"

    @property
    def is_recommendation_related(self) -> bool:
        return self.value.startswith("recommendation_")

    @property
    def is_social(self) -> bool:
        return self in (
            InteractionType.PEER_MESSAGE,
            InteractionType.PEER_MATCH_VIEW,
            InteractionType.SOCIAL_ACTIVITY,
        )


class RecommendationAction(str, Enum):
    """Outcome events tracked against a recommendation."""
    IMPRESSION = "impression"
    ACCEPT = "accept"
    DISMISS = "dismiss"
    COMPLETE = "complete"
    FEEDBACK = "feedback"


class RefreshCategory(str, Enum):
    """Recommendation families the scheduler can regenerate."""
    CONTENT = "content"
    PEERS = "peers"
    EXERCISES = "exercises"
    ACTIVITIES = "activities"


class Trend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"
    NEW = "new"


class StressState(str, Enum):
    NORMAL = "normal"
    ELEVATED = "elevated"
    CRITICAL = "critical"


class ActivityLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AdjustmentType(str, Enum):
    REDUCE_FREQUENCY = "reduce_frequency"
    IMPROVE_QUALITY = "improve_quality"
    QUALITY_REVIEW = "quality_review"


# Context


class MoodSnapshot(BaseModel):
    """Free-text emotion label with classifier confidence."""
    emotion: str = Field(..., min_length=1, max_length=64)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    model_config = ConfigDict(frozen=True)


class InteractionContext(BaseModel):
    """Snapshot of the situation an interaction happened in."""
    time_of_day: TimeOfDay
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Monday")
    hour: int | None = Field(default=None, ge=0, le=23)
    mood: MoodSnapshot | None = None
    stress_level: float | None = Field(default=None, ge=0.0, le=10.0)
    anxiety_level: float | None = Field(default=None, ge=0.0, le=10.0)
    model_config = ConfigDict(frozen=True)


# Payloads: one variant per interaction family, keyed by InteractionType


class BasePayload(BaseModel):
    """Learning fields shared by every payload variant."""
    completed: bool | None = None
    user_rating: float | None = Field(default=None, ge=1.0, le=5.0)
    effectiveness_score: float | None = Field(default=None, ge=0.0, le=1.0)
    model_config = ConfigDict(frozen=True, extra="allow")


class ContentPayload(BasePayload):
    kind: str = Field(default="content", frozen=True)
    content_id: str | None = None
    duration_seconds: float | None = Field(default=None, ge=0.0)
    completion_percentage: float | None = Field(default=None, ge=0.0, le=100.0)


class PeerPayload(BasePayload):
    kind: str = Field(default="peer", frozen=True)
    peer_id: str | None = None
    quality: str | None = None
    mutual_rating: float | None = Field(default=None, ge=1.0, le=5.0)


class MoodLogPayload(BasePayload):
    kind: str = Field(default="mood_log", frozen=True)
    emotion: str | None = None
    intensity: float | None = Field(default=None, ge=0.0, le=10.0)
    note: str | None = Field(default=None, max_length=2000)


class RecommendationPayload(BasePayload):
    kind: str = Field(default="recommendation", frozen=True)
    recommendation_id: str | None = None
    category: str | None = None
    action: RecommendationAction | None = None
    time_from_impression_ms: float | None = Field(default=None, ge=0.0)


class RefreshPayload(BasePayload):
    kind: str = Field(default="refresh", frozen=True)
    categories: list[RefreshCategory] = Field(default_factory=list)
    total_recommendations: int = Field(default=0, ge=0)


class InsightPayload(BasePayload):
    kind: str = Field(default="insight", frozen=True)
    insight_type: str | None = None
    summary: dict[str, Any] = Field(default_factory=dict)


InteractionPayload = Union[
    ContentPayload,
    PeerPayload,
    MoodLogPayload,
    RecommendationPayload,
    RefreshPayload,
    InsightPayload,
]

PAYLOAD_VARIANTS: dict[InteractionType, type[BasePayload]] = {
    InteractionType.CONTENT_VIEW: ContentPayload,
    InteractionType.CONTENT_COMPLETE: ContentPayload,
    InteractionType.JOURNAL_ENTRY: ContentPayload,
    InteractionType.BREATHING_EXERCISE: ContentPayload,
    InteractionType.MEDITATION: ContentPayload,
    InteractionType.PHYSICAL_EXERCISE: ContentPayload,
    InteractionType.SOCIAL_ACTIVITY: ContentPayload,
    InteractionType.PEER_MESSAGE: PeerPayload,
    InteractionType.PEER_MATCH_VIEW: PeerPayload,
    InteractionType.MOOD_LOG: MoodLogPayload,
    InteractionType.RECOMMENDATION_IMPRESSION: RecommendationPayload,
    InteractionType.RECOMMENDATION_ACCEPT: RecommendationPayload,
    InteractionType.RECOMMENDATION_DISMISS: RecommendationPayload,
    InteractionType.RECOMMENDATION_COMPLETE: RecommendationPayload,
    InteractionType.RECOMMENDATION_FEEDBACK: RecommendationPayload,
    InteractionType.RECOMMENDATION_REFRESH: RefreshPayload,
    InteractionType.AI_INSIGHTS_GENERATED: InsightPayload,
}


def build_payload(
    interaction_type: InteractionType | str,
    data: Mapping[str, Any] | BasePayload | None = None,
) -> BasePayload:
    """Validate raw payload data into the variant registered for the type."""
    interaction_type = InteractionType(interaction_type)
    variant = PAYLOAD_VARIANTS[interaction_type]
    if isinstance(data, variant):
        return data
    if isinstance(data, BasePayload):
        data = data.model_dump(exclude={"kind"})
    raw = {k: v for k, v in dict(data or {}).items() if k != "kind"}
    return variant.model_validate(raw)


class InteractionRecord(BaseModel):
    """One tracked user action. Immutable once created."""
    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    type: InteractionType
    payload: InteractionPayload
    context: InteractionContext
    timestamp: datetime = Field(default_factory=utc_now)
    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _select_payload_variant(cls, values: Any) -> Any:
        if isinstance(values, dict) and "type" in values:
            values = dict(values)
            values["payload"] = build_payload(values["type"], values.get("payload"))
        return values


# Behaviour profile


def _empty_time_buckets() -> dict[str, dict[str, int]]:
    return {t.value: {} for t in TimeOfDay}


def _empty_mood_buckets() -> dict[str, dict[str, int]]:
    return {m.value: {} for m in NormalizedMood}


class ContentPreferences(BaseModel):
    activity_types: dict[str, int] = Field(default_factory=dict)
    effectiveness_scores: dict[str, float] = Field(default_factory=dict)
    user_ratings: dict[str, float] = Field(default_factory=dict)
    completion_rates: dict[str, float] = Field(default_factory=dict)


class ActivityEngagement(BaseModel):
    frequency: int = 0
    completion_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    average_rating: float = 0.0
    engagement_score: float = Field(default=0.0, ge=0.0, le=1.0)


class EngagementPatterns(BaseModel):
    average_session_length_ms: float = Field(default=0.0, ge=0.0)
    session_count: int = Field(default=0, ge=0)
    session_frequency: dict[int, int] = Field(default_factory=dict)
    preferred_activities: dict[str, ActivityEngagement] = Field(default_factory=dict)

    @property
    def total_sessions(self) -> int:
        return sum(self.session_frequency.values())


class BehaviorProfile(BaseModel):
    """Preference distributions derived from the ledger. Never authoritative."""
    time_preferences: dict[str, dict[str, int]] = Field(default_factory=_empty_time_buckets)
    content_preferences: ContentPreferences = Field(default_factory=ContentPreferences)
    mood_preferences: dict[str, dict[str, int]] = Field(default_factory=_empty_mood_buckets)
    engagement_patterns: EngagementPatterns = Field(default_factory=EngagementPatterns)
    peak_hours: dict[int, int] = Field(default_factory=dict)
    total_interactions: int = Field(default=0, ge=0)

    @property
    def is_empty(self) -> bool:
        return self.total_interactions == 0


class ActivitySuggestion(BaseModel):
    activity: str
    score: float = Field(ge=0.0, le=1.0)
    reason: str


class OptimalTime(BaseModel):
    time_of_day: TimeOfDay
    activity_count: int
    preference: str


class MoodSuggestion(BaseModel):
    activity: str
    frequency: int
    mood_fit: NormalizedMood
    reason: str


# Recommendations


class RecommendationItem(BaseModel):
    """Candidate recommendation before context adaptation."""
    type: str = Field(..., min_length=1)
    score: float = 0.0
    id: str | None = None
    title: str | None = None
    reason: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class AdaptedRecommendation(RecommendationItem):
    """Recommendation after context adaptation, with annotations."""
    original_score: float = 0.0
    mood_boost: bool = False
    time_optimized: bool = False
    stress_level: StressState = StressState.NORMAL
    immediate_action: bool = False


class RecommendationBundle(BaseModel):
    """Adapted recommendation list returned to callers."""
    user_id: str
    items: list[AdaptedRecommendation] = Field(default_factory=list)
    stress_level: StressState = StressState.NORMAL
    immediate_action: bool = False
    source: str = "learned"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    context: InteractionContext | None = None
    generated_at: datetime = Field(default_factory=utc_now)


# Analytics


class RecommendationMetric(BaseModel):
    """Running outcome counters for one recommendation identifier."""
    recommendation_id: str
    impressions: int = Field(default=0, ge=0)
    accepts: int = Field(default=0, ge=0)
    dismisses: int = Field(default=0, ge=0)
    completions: int = Field(default=0, ge=0)
    ratings: list[float] = Field(default_factory=list)
    time_to_action_ms: list[float] = Field(default_factory=list)
    category: str = "unknown"
    user_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    last_updated: datetime = Field(default_factory=utc_now)


class OutcomeEvent(BaseModel):
    """Single entry of the analytics outcome history."""
    recommendation_id: str
    action: RecommendationAction
    category: str = "unknown"
    user_id: str | None = None
    rating: float | None = None
    timestamp: datetime = Field(default_factory=utc_now)
    model_config = ConfigDict(frozen=True)


class RecommendationPerformance(BaseModel):
    recommendation_id: str
    category: str
    accept_rate: float = Field(ge=0.0, le=1.0)
    completion_rate: float = Field(ge=0.0, le=1.0)
    engagement_rate: float = Field(ge=0.0, le=1.0)
    average_rating: float = Field(ge=0.0, le=5.0)
    average_time_to_action_ms: float = Field(ge=0.0)
    total_impressions: int
    total_accepts: int
    total_dismisses: int
    total_completions: int
    total_feedback: int
    score: float = Field(ge=0.0, le=1.0)


class CategoryAnalysis(BaseModel):
    category: str
    total_interactions: int = 0
    unique_recommendations: int = 0
    accept_rate: float = 0.0
    completion_rate: float = 0.0
    average_rating: float = 0.0
    top_recommendations: list[RecommendationPerformance] = Field(default_factory=list)
    trend: Trend = Trend.NEW


class PerformanceOverview(BaseModel):
    total_interactions: int = 0
    unique_recommendations: int = 0
    total_accepts: int = 0
    total_completions: int = 0
    average_accept_rate: float = 0.0
    average_completion_rate: float = 0.0
    overall_engagement: float = 0.0
    insufficient_data: bool = True


class AdjustmentSuggestion(BaseModel):
    """Suggested policy change. Generated, never auto-applied."""
    type: AdjustmentType
    category: str
    reason: str
    suggested_action: str
    frequency_change: float | None = None


class EngagementWindow(BaseModel):
    interactions: int = 0
    accepts: int = 0
    accept_rate: float = Field(default=0.0, ge=0.0, le=1.0)


class UserSatisfaction(BaseModel):
    average_rating: float
    satisfaction_rate: float = Field(ge=0.0, le=1.0)
    dissatisfaction_rate: float = Field(ge=0.0, le=1.0)
    total_ratings: int


class CategoryPreference(BaseModel):
    accepts: int = 0
    dismisses: int = 0
    preference_score: float = Field(default=0.0, ge=0.0, le=1.0)


class AnalyticsExport(BaseModel):
    """Reporting snapshot of the analytics state."""
    user_id: str | None = None
    metrics: dict[str, RecommendationMetric] = Field(default_factory=dict)
    total_interactions: int = 0
    total_recommendations: int = 0
    average_accept_rate: float = 0.0
    top_performing_categories: list[tuple[str, float]] = Field(default_factory=list)
    engagement_trends: dict[str, EngagementWindow] = Field(default_factory=dict)
    user_satisfaction: UserSatisfaction | None = None
    category_preferences: dict[str, CategoryPreference] = Field(default_factory=dict)
    exported_at: datetime = Field(default_factory=utc_now)


class AnalyticsSummary(BaseModel):
    user_id: str | None = None
    performance_overview: PerformanceOverview
    category_analysis: dict[str, CategoryAnalysis] = Field(default_factory=dict)
    suggested_adjustments: list[AdjustmentSuggestion] = Field(default_factory=list)
    ai_insights: dict[str, Any] | None = None
    generated_at: datetime = Field(default_factory=utc_now)


# Peers


class UserProfile(BaseModel):
    """Peer-matching profile supplied by the persistence collaborator."""
    user_id: str
    display_name: str | None = None
    interests: list[str] = Field(default_factory=list)
    experiences: list[str] = Field(default_factory=list)
    age_range: str | None = None
    communication_style: str | None = None
    is_anonymous: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.interests or self.experiences or self.age_range or self.communication_style)


class CompatibilityResult(BaseModel):
    user_a: str
    user_b: str
    score: float = Field(ge=0.0, le=1.0)
    shared_interests: list[str] = Field(default_factory=list)
    shared_experiences: list[str] = Field(default_factory=list)
    behavioral_similarity: float | None = Field(default=None, ge=0.0, le=1.0)
    breakdown: dict[str, float] = Field(default_factory=dict)
    confidence: Confidence = Confidence.MEDIUM
    suggested_interaction: str = "general_connection"


class PeerMatch(BaseModel):
    profile: UserProfile
    compatibility: CompatibilityResult


class PeerMatches(BaseModel):
    """Categorized peer suggestions."""
    user_id: str
    support_partners: list[PeerMatch] = Field(default_factory=list)
    activity_partners: list[PeerMatch] = Field(default_factory=list)
    mentor_connections: list[PeerMatch] = Field(default_factory=list)
    confidence: Confidence = Confidence.MEDIUM
    generated_at: datetime = Field(default_factory=utc_now)

    @property
    def total(self) -> int:
        return len(self.support_partners) + len(self.activity_partners) + len(self.mentor_connections)


# Refresh


class RefreshResult(BaseModel):
    category: RefreshCategory
    success: bool
    count: int = 0
    error: str | None = None
    data: Any = None


class RefreshOutcome(BaseModel):
    user_id: str
    success: bool = True
    skipped: bool = False
    discarded: bool = False
    reason: str | None = None
    categories: list[RefreshCategory] = Field(default_factory=list)
    results: dict[str, RefreshResult] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def total_recommendations(self) -> int:
        return sum(r.count for r in self.results.values())


class RefreshState(BaseModel):
    """Per-user refresh bookkeeping, owned by that user's session."""
    last_refresh_time: datetime | None = None
    interval: timedelta = Field(default=timedelta(minutes=10))
    last_context: InteractionContext | None = None


class RefreshStatistics(BaseModel):
    total_refreshes: int = 0
    average_recommendations: float = 0.0
    last_refresh: datetime | None = None
    refreshes_per_day: float = 0.0
