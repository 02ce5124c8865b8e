"""
Solace-AI Personalization - Performance Analytics.

Tracks recommendation outcomes (impression, accept, dismiss, complete,
feedback), derives per-recommendation performance, category trends and
adjustment suggestions that feed back into scheduling.

Architecture Layer: Domain
Principles: Incremental Metrics, Bounded History, Suggestions Not Actions
"""
from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta
import math
from statistics import fmean
from typing import Any

import structlog

from .config import AnalyticsConfig
from .context import Clock, system_clock
from .learner import clamp
from .ledger import BackgroundWriter
from .models import (
    AdjustmentSuggestion,
    AdjustmentType,
    AnalyticsExport,
    AnalyticsSummary,
    CategoryAnalysis,
    CategoryPreference,
    EngagementWindow,
    OutcomeEvent,
    PerformanceOverview,
    RecommendationAction,
    RecommendationMetric,
    RecommendationPerformance,
    Trend,
    UserSatisfaction,
)
from .repository import PersonalizationRepository

logger = structlog.get_logger(__name__)

TREND_THRESHOLD = 0.1
FREQUENCY_REDUCTION = 0.3
LOW_ACCEPT_RATE = 0.2
LOW_RATING = 3.0
TOP_RECOMMENDATIONS = 5
ENGAGEMENT_PERIODS: tuple[tuple[str, timedelta], ...] = (
    ("last_24h", timedelta(hours=24)),
    ("last_7d", timedelta(days=7)),
    ("last_30d", timedelta(days=30)),
)


def performance_score(accept_rate: float, completion_rate: float,
                      engagement_rate: float, average_rating: float) -> float:
    return clamp(
        0.3 * accept_rate + 0.3 * completion_rate
        + 0.2 * engagement_rate + 0.2 * (average_rating / 5.0)
    )


def _rates(metric: RecommendationMetric) -> tuple[float, float, float, float]:
    impressions, accepts = metric.impressions, metric.accepts
    accept_rate = clamp(accepts / impressions) if impressions > 0 else 0.0
    completion_rate = clamp(metric.completions / accepts) if accepts > 0 else 0.0
    engagement_rate = (
        clamp((accepts + metric.completions + len(metric.ratings)) / impressions)
        if impressions > 0 else 0.0
    )
    average_rating = fmean(metric.ratings) if metric.ratings else 0.0
    return accept_rate, completion_rate, engagement_rate, average_rating


def _optional_float(data: Mapping[str, Any], key: str, *,
                    low: float | None = None, high: float | None = None) -> float | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"{key} must be a number, got {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"{key} must be finite, got {value!r}")
    if (low is not None and number < low) or (high is not None and number > high):
        raise ValueError(f"{key} out of range: {number}")
    return number


def _period_score(events: Sequence[OutcomeEvent]) -> float:
    accepts = sum(1 for e in events if e.action == RecommendationAction.ACCEPT)
    completions = sum(1 for e in events if e.action == RecommendationAction.COMPLETE)
    accept_rate = accepts / len(events) if events else 0.0
    completion_rate = clamp(completions / accepts) if accepts > 0 else 0.0
    return accept_rate + completion_rate


class PerformanceAnalytics:
    """Outcome metrics store with trend and adjustment analysis."""

    def __init__(
        self,
        repository: PersonalizationRepository | None = None,
        config: AnalyticsConfig | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._config = config or AnalyticsConfig()
        self._clock = clock
        self._metrics: dict[str, RecommendationMetric] = {}
        self._history: deque[OutcomeEvent] = deque(maxlen=self._config.history_size)
        self._writer: BackgroundWriter[RecommendationMetric] | None = None
        if repository is not None:
            async def _upsert(metric: RecommendationMetric) -> None:
                await repository.upsert_metric(metric.recommendation_id, metric)

            self._writer = BackgroundWriter(
                "recommendation-metrics", _upsert, failure_event="metric_persist_failed",
            )

    @property
    def config(self) -> AnalyticsConfig:
        return self._config

    @property
    def writer(self) -> BackgroundWriter[RecommendationMetric] | None:
        return self._writer

    @property
    def history_size(self) -> int:
        return len(self._history)

    async def track(
        self,
        recommendation_id: str,
        action: RecommendationAction | str,
        data: Mapping[str, Any] | None = None,
        *,
        user_id: str | None = None,
    ) -> OutcomeEvent | None:
        """Record an outcome event. Never raises; failures return None."""
        try:
            return self._track(recommendation_id, RecommendationAction(action), dict(data or {}), user_id)
        except ValueError as e:
            logger.warning("recommendation_outcome_rejected", recommendation_id=recommendation_id,
                           action=str(action), error=str(e))
            return None
        except Exception as e:
            logger.error("recommendation_tracking_failed", recommendation_id=recommendation_id,
                         action=str(action), error=str(e))
            return None

    def _track(self, recommendation_id: str, action: RecommendationAction,
               data: dict[str, Any], user_id: str | None) -> OutcomeEvent:
        rating = _optional_float(data, "rating", low=1.0, high=5.0)
        elapsed = _optional_float(data, "time_from_impression_ms", low=0.0)
        now = self._clock()
        category = data.get("category") or "unknown"
        metric = self._metrics.get(recommendation_id)
        if metric is None:
            metric = RecommendationMetric(
                recommendation_id=recommendation_id, category=category,
                user_id=user_id, created_at=now, last_updated=now,
            )
            self._metrics[recommendation_id] = metric
        elif metric.category == "unknown" and category != "unknown":
            metric.category = category

        if action == RecommendationAction.IMPRESSION:
            metric.impressions += 1
        elif action == RecommendationAction.ACCEPT:
            metric.accepts += 1
            if elapsed is not None:
                metric.time_to_action_ms.append(elapsed)
        elif action == RecommendationAction.DISMISS:
            metric.dismisses += 1
        elif action == RecommendationAction.COMPLETE:
            metric.completions += 1
            if rating is not None:
                metric.ratings.append(rating)
        elif action == RecommendationAction.FEEDBACK and rating is not None:
            metric.ratings.append(rating)
        metric.last_updated = now

        event = OutcomeEvent(
            recommendation_id=recommendation_id, action=action,
            category=metric.category, user_id=user_id or metric.user_id,
            rating=rating, timestamp=now,
        )
        self._history.append(event)
        if self._writer is not None:
            self._writer.submit(metric.model_copy(deep=True))
        logger.debug("recommendation_outcome_tracked", recommendation_id=recommendation_id,
                     action=action.value, category=metric.category)
        return event

    def _metrics_for(self, user_id: str | None) -> list[RecommendationMetric]:
        return [m for m in self._metrics.values() if user_id is None or m.user_id == user_id]

    def _events(
        self,
        window: timedelta | None = None,
        *,
        category: str | None = None,
        user_id: str | None = None,
    ) -> list[OutcomeEvent]:
        cutoff = self._clock() - window if window is not None else None
        return [
            e for e in self._history
            if (cutoff is None or e.timestamp > cutoff)
            and (category is None or e.category == category)
            and (user_id is None or e.user_id == user_id)
        ]

    def metric(self, recommendation_id: str) -> RecommendationMetric | None:
        return self._metrics.get(recommendation_id)

    def performance(self, recommendation_id: str) -> RecommendationPerformance | None:
        metric = self._metrics.get(recommendation_id)
        if metric is None:
            return None
        accept_rate, completion_rate, engagement_rate, average_rating = _rates(metric)
        times = metric.time_to_action_ms
        return RecommendationPerformance(
            recommendation_id=recommendation_id,
            category=metric.category,
            accept_rate=accept_rate,
            completion_rate=completion_rate,
            engagement_rate=engagement_rate,
            average_rating=average_rating,
            average_time_to_action_ms=fmean(times) if times else 0.0,
            total_impressions=metric.impressions,
            total_accepts=metric.accepts,
            total_dismisses=metric.dismisses,
            total_completions=metric.completions,
            total_feedback=len(metric.ratings),
            score=performance_score(accept_rate, completion_rate, engagement_rate, average_rating),
        )

    def category_trend(
        self, category: str, window: timedelta | None = None, *, user_id: str | None = None,
    ) -> Trend:
        """Compare the two halves of the window on accept rate plus completion rate."""
        window = window or self._config.default_window
        now = self._clock()
        midpoint = now - window / 2
        start = now - window
        events = self._events(window, category=category, user_id=user_id)
        recent = [e for e in events if e.timestamp > midpoint]
        older = [e for e in events if start < e.timestamp <= midpoint]
        if not older:
            return Trend.NEW
        difference = _period_score(recent) - _period_score(older)
        if difference > TREND_THRESHOLD:
            return Trend.IMPROVING
        if difference < -TREND_THRESHOLD:
            return Trend.DECLINING
        return Trend.STABLE

    def category_analytics(
        self, category: str, window: timedelta | None = None, *, user_id: str | None = None,
    ) -> CategoryAnalysis:
        window = window or self._config.default_window
        events = self._events(window, category=category, user_id=user_id)
        if not events:
            return CategoryAnalysis(category=category, trend=Trend.NEW)

        by_recommendation: dict[str, list[OutcomeEvent]] = defaultdict(list)
        for event in events:
            by_recommendation[event.recommendation_id].append(event)
        accepts = sum(1 for e in events if e.action == RecommendationAction.ACCEPT)
        completions = sum(1 for e in events if e.action == RecommendationAction.COMPLETE)
        ratings = [
            e.rating for e in events
            if e.rating and e.action in (RecommendationAction.COMPLETE, RecommendationAction.FEEDBACK)
        ]
        performances = [
            p for p in (self.performance(rid) for rid in by_recommendation) if p is not None
        ]
        performances.sort(key=lambda p: (-p.score, p.recommendation_id))
        unique = len(by_recommendation)
        return CategoryAnalysis(
            category=category,
            total_interactions=len(events),
            unique_recommendations=unique,
            accept_rate=clamp(accepts / unique),
            completion_rate=clamp(completions / accepts) if accepts > 0 else 0.0,
            average_rating=fmean(ratings) if ratings else 0.0,
            top_recommendations=performances[:TOP_RECOMMENDATIONS],
            trend=self.category_trend(category, window, user_id=user_id),
        )

    def performance_overview(
        self, window: timedelta | None = None, *, user_id: str | None = None,
    ) -> PerformanceOverview:
        events = self._events(window or self._config.default_window, user_id=user_id)
        if not events:
            return PerformanceOverview()
        accepts = sum(1 for e in events if e.action == RecommendationAction.ACCEPT)
        completions = sum(1 for e in events if e.action == RecommendationAction.COMPLETE)
        unique = len({e.recommendation_id for e in events})
        return PerformanceOverview(
            total_interactions=len(events),
            unique_recommendations=unique,
            total_accepts=accepts,
            total_completions=completions,
            average_accept_rate=clamp(accepts / unique),
            average_completion_rate=clamp(completions / accepts) if accepts > 0 else 0.0,
            overall_engagement=clamp((accepts + completions) / len(events)),
            insufficient_data=False,
        )

    def suggest_adjustments(
        self, analysis: Mapping[str, CategoryAnalysis],
    ) -> list[AdjustmentSuggestion]:
        """Policy suggestions per category. Categories without data are skipped."""
        suggestions: list[AdjustmentSuggestion] = []
        for category, result in analysis.items():
            if result.total_interactions == 0:
                continue
            if result.trend == Trend.DECLINING:
                suggestions.append(AdjustmentSuggestion(
                    type=AdjustmentType.REDUCE_FREQUENCY, category=category,
                    reason=f"Declining engagement in {category} recommendations",
                    suggested_action=f"Reduce frequency of {category} recommendations by 30%",
                    frequency_change=-FREQUENCY_REDUCTION,
                ))
            if result.accept_rate < LOW_ACCEPT_RATE:
                suggestions.append(AdjustmentSuggestion(
                    type=AdjustmentType.IMPROVE_QUALITY, category=category,
                    reason=f"Low accept rate ({result.accept_rate * 100:.1f}%) in {category}",
                    suggested_action=f"Improve {category} recommendation quality or reduce frequency",
                ))
            if 0 < result.average_rating < LOW_RATING:
                suggestions.append(AdjustmentSuggestion(
                    type=AdjustmentType.QUALITY_REVIEW, category=category,
                    reason=f"Low average rating ({result.average_rating:.1f}) in {category}",
                    suggested_action=f"Review {category} recommendation content quality",
                ))
        return suggestions

    def summary(
        self,
        user_id: str | None = None,
        *,
        categories: Sequence[str] | None = None,
        window: timedelta | None = None,
    ) -> AnalyticsSummary:
        window = window or self._config.default_window
        names = list(categories or self._config.categories)
        for event in self._events(window, user_id=user_id):
            if event.category not in names:
                names.append(event.category)
        analysis = {name: self.category_analytics(name, window, user_id=user_id) for name in names}
        return AnalyticsSummary(
            user_id=user_id,
            performance_overview=self.performance_overview(window, user_id=user_id),
            category_analysis=analysis,
            suggested_adjustments=self.suggest_adjustments(analysis),
        )

    def overall_accept_rate(self, *, user_id: str | None = None) -> float:
        metrics = self._metrics_for(user_id)
        impressions = sum(m.impressions for m in metrics)
        accepts = sum(m.accepts for m in metrics)
        return clamp(accepts / impressions) if impressions > 0 else 0.0

    def engagement_trends(self, *, user_id: str | None = None) -> dict[str, EngagementWindow]:
        trends: dict[str, EngagementWindow] = {}
        for name, period in ENGAGEMENT_PERIODS:
            events = self._events(period, user_id=user_id)
            accepts = sum(1 for e in events if e.action == RecommendationAction.ACCEPT)
            trends[name] = EngagementWindow(
                interactions=len(events), accepts=accepts,
                accept_rate=accepts / len(events) if events else 0.0,
            )
        return trends

    def user_satisfaction(self, *, user_id: str | None = None) -> UserSatisfaction | None:
        ratings = [r for m in self._metrics_for(user_id) for r in m.ratings]
        if not ratings:
            return None
        return UserSatisfaction(
            average_rating=fmean(ratings),
            satisfaction_rate=sum(1 for r in ratings if r >= 4) / len(ratings),
            dissatisfaction_rate=sum(1 for r in ratings if r <= 2) / len(ratings),
            total_ratings=len(ratings),
        )

    def top_performing_categories(
        self, limit: int = 5, *, user_id: str | None = None,
    ) -> list[tuple[str, float]]:
        by_category: dict[str, list[float]] = defaultdict(list)
        for metric in self._metrics_for(user_id):
            by_category[metric.category].append(performance_score(*_rates(metric)))
        scores = [(category, fmean(values)) for category, values in by_category.items()]
        scores.sort(key=lambda item: (-item[1], item[0]))
        return scores[:limit]

    def category_preferences(self, *, user_id: str | None = None) -> dict[str, CategoryPreference]:
        prefs: dict[str, CategoryPreference] = {}
        for event in self._events(user_id=user_id):
            pref = prefs.setdefault(event.category, CategoryPreference())
            if event.action in (RecommendationAction.ACCEPT, RecommendationAction.COMPLETE):
                pref.accepts += 1
            elif event.action == RecommendationAction.DISMISS:
                pref.dismisses += 1
        for pref in prefs.values():
            total = pref.accepts + pref.dismisses
            pref.preference_score = pref.accepts / total if total > 0 else 0.0
        return prefs

    def cleanup(self) -> int:
        """Retention sweep. Returns the number of metrics removed."""
        cutoff: datetime = self._clock() - self._config.retention
        stale = [rid for rid, m in self._metrics.items() if m.last_updated < cutoff]
        for rid in stale:
            del self._metrics[rid]
        logger.info("analytics_cleanup_completed", removed_metrics=len(stale),
                    remaining_metrics=len(self._metrics), history_size=len(self._history))
        return len(stale)

    def export(self, *, user_id: str | None = None) -> AnalyticsExport:
        metrics = {m.recommendation_id: m.model_copy(deep=True) for m in self._metrics_for(user_id)}
        return AnalyticsExport(
            user_id=user_id,
            metrics=metrics,
            total_interactions=len(self._events(user_id=user_id)),
            total_recommendations=len(metrics),
            average_accept_rate=self.overall_accept_rate(user_id=user_id),
            top_performing_categories=self.top_performing_categories(user_id=user_id),
            engagement_trends=self.engagement_trends(user_id=user_id),
            user_satisfaction=self.user_satisfaction(user_id=user_id),
            category_preferences=self.category_preferences(user_id=user_id),
        )

    async def close(self) -> None:
        if self._writer is not None:
            await self._writer.stop()
