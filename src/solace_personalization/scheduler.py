"""
Solace-AI Personalization - Adaptive Refresh Scheduler.

Computes a per-user refresh cadence from engagement, decides whether a refresh
is due and which recommendation categories to regenerate. Each user's timer
and refresh state live in a RefreshSession owned by the scheduler.

Architecture Layer: Domain
Principles: Soft Timers, Independent Failure, Idempotent Teardown
"""
from __future__ import annotations

import asyncio
import inspect
import random
from collections import deque
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import timedelta
from typing import Any

import structlog

from .analytics import PerformanceAnalytics
from .config import SchedulerConfig
from .context import Clock, categorize_time_of_day, context_changed, context_mood, current_context, system_clock
from .events import PersonalizationEventPublisher, RefreshCompletedEvent
from .learner import PatternLearner
from .ledger import InteractionLedger
from .models import (
    InteractionContext,
    InteractionType,
    NormalizedMood,
    RefreshCategory,
    RefreshOutcome,
    RefreshResult,
    RefreshState,
    RefreshStatistics,
    TimeOfDay,
)

logger = structlog.get_logger(__name__)

Regenerator = Callable[[str, InteractionContext], Awaitable[Sequence[Any]]]
RefreshCallback = Callable[[RefreshOutcome], Any]

LONG_SESSION_MS = 10 * 60 * 1000
ACTIVE_SESSION_COUNT = 5
BUSY_TIME_BUCKET = 10
RECENT_ACTIVITY_WINDOW = 10
RECOMMENDATION_ACTIVITY_THRESHOLD = 5
SOCIAL_WINDOW = 20
SOCIAL_MINIMUM = 3
EXERCISE_MOODS = frozenset({NormalizedMood.ANXIOUS, NormalizedMood.STRESSED, NormalizedMood.SAD})
ACTIVITY_TIMES = frozenset({TimeOfDay.MORNING, TimeOfDay.AFTERNOON})


class RefreshSession:
    """One user's refresh timer and state. Stopping is idempotent."""

    def __init__(self, user_id: str, scheduler: RefreshScheduler) -> None:
        self.user_id = user_id
        self.state = RefreshState(interval=scheduler.base_interval)
        self._scheduler = scheduler
        self._task: asyncio.Task | None = None
        self._active = True
        self._refreshing = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def timer_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_timer(self) -> None:
        if not self._active or self.timer_running:
            return
        self._task = asyncio.create_task(self._run(), name=f"refresh-{self.user_id}")

    async def _run(self) -> None:
        while self._active:
            self.state.interval = self._scheduler.compute_interval(self.user_id)
            await asyncio.sleep(self.state.interval.total_seconds())
            if not self._active:
                break
            self._refreshing = True
            try:
                await self._scheduler.refresh(self.user_id)
            finally:
                self._refreshing = False

    def close(self) -> None:
        """Stop the timer. A refresh already in flight finishes; its results are discarded."""
        if not self._active:
            return
        self._active = False
        if self._task is not None and not self._refreshing:
            self._task.cancel()
        self._task = None


class RefreshScheduler:
    """Decides when and what to refresh for each user."""

    def __init__(
        self,
        ledger: InteractionLedger,
        analytics: PerformanceAnalytics,
        *,
        learner: PatternLearner | None = None,
        config: SchedulerConfig | None = None,
        regenerators: Mapping[RefreshCategory, Regenerator] | None = None,
        publisher: PersonalizationEventPublisher | None = None,
        clock: Clock = system_clock,
        rng: random.Random | None = None,
    ) -> None:
        self._ledger = ledger
        self._analytics = analytics
        self._learner = learner or PatternLearner(ledger.config.session_gap)
        self._config = config or SchedulerConfig()
        self._regenerators: dict[RefreshCategory, Regenerator] = dict(regenerators or {})
        self._publisher = publisher
        self._clock = clock
        self._rng = rng or random.Random()
        self._sessions: dict[str, RefreshSession] = {}
        self._callbacks: dict[str, list[RefreshCallback]] = {}
        self._history: deque[RefreshOutcome] = deque(maxlen=self._config.history_size)
        self._refreshing = False

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def base_interval(self) -> timedelta:
        return self._clamp(self._config.min_interval * 2)

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing

    def set_regenerator(self, category: RefreshCategory, regenerator: Regenerator) -> None:
        self._regenerators[category] = regenerator

    def _clamp(self, interval: timedelta) -> timedelta:
        return max(self._config.min_interval, min(self._config.max_interval, interval))

    # Sessions

    def get_session(self, user_id: str) -> RefreshSession | None:
        return self._sessions.get(user_id)

    def _session(self, user_id: str) -> RefreshSession:
        session = self._sessions.get(user_id)
        if session is None:
            session = RefreshSession(user_id, self)
            self._sessions[user_id] = session
        return session

    async def start(
        self, user_id: str, *, context: InteractionContext | None = None, refresh_now: bool = False,
    ) -> timedelta:
        """Start (or restart) the user's refresh timer. Returns the current interval."""
        self.stop(user_id)
        session = self._session(user_id)
        session.state.interval = self.compute_interval(user_id)
        session.start_timer()
        logger.info("refresh_session_started", user_id=user_id,
                    interval_seconds=session.state.interval.total_seconds())
        if refresh_now:
            await self.refresh(user_id, context)
        return session.state.interval

    def stop(self, user_id: str) -> bool:
        """Tear down the user's session. Returns False when nothing was scheduled."""
        session = self._sessions.pop(user_id, None)
        if session is None:
            return False
        session.close()
        logger.info("refresh_session_stopped", user_id=user_id)
        return True

    def shutdown(self) -> None:
        for user_id in list(self._sessions):
            self.stop(user_id)
        self._callbacks.clear()

    # Callbacks

    def register_callback(self, user_id: str, callback: RefreshCallback) -> None:
        self._callbacks.setdefault(user_id, []).append(callback)

    def unregister_callback(self, user_id: str, callback: RefreshCallback) -> bool:
        callbacks = self._callbacks.get(user_id, [])
        if callback not in callbacks:
            return False
        callbacks.remove(callback)
        if not callbacks:
            del self._callbacks[user_id]
        return True

    async def _notify(self, user_id: str, outcome: RefreshOutcome) -> None:
        for callback in list(self._callbacks.get(user_id, [])):
            try:
                result = callback(outcome)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("refresh_callback_error", user_id=user_id, error=str(e))

    # Decisions

    def compute_interval(self, user_id: str) -> timedelta:
        """Engagement-adjusted refresh interval, clamped to the configured bounds."""
        try:
            seconds = self._config.min_interval.total_seconds() * 2
            profile = self._learner.learn_patterns(self._ledger.snapshot(user_id))
            engagement = profile.engagement_patterns
            if engagement.average_session_length_ms > LONG_SESSION_MS:
                seconds *= 0.7
            if engagement.total_sessions > ACTIVE_SESSION_COUNT:
                seconds *= 0.8
            accept_rate = self._analytics.overall_accept_rate(user_id=user_id)
            if accept_rate > 0.5:
                seconds *= 0.9
            elif accept_rate < 0.2:
                seconds *= 1.5
            bucket = categorize_time_of_day(self._clock().hour)
            if sum(profile.time_preferences.get(bucket.value, {}).values()) > BUSY_TIME_BUCKET:
                seconds *= 0.8
            return self._clamp(timedelta(seconds=round(seconds)))
        except Exception as e:
            logger.error("refresh_interval_failed", user_id=user_id, error=str(e))
            return self.base_interval

    def should_refresh(self, user_id: str, context: InteractionContext | None = None) -> bool:
        context = context or current_context(now=self._clock())
        session = self._sessions.get(user_id)
        last_refresh = session.state.last_refresh_time if session else None
        last_context = session.state.last_context if session else None
        now = self._clock()

        if last_refresh is not None and now - last_refresh < self._config.min_interval:
            return False
        if last_refresh is None or now - last_refresh > self._config.staleness_threshold:
            return True

        recent = self._ledger.get_recent(RECENT_ACTIVITY_WINDOW, user_id)
        if sum(1 for r in recent if r.type.is_recommendation_related) >= RECOMMENDATION_ACTIVITY_THRESHOLD:
            return True

        last_day = self._analytics.engagement_trends(user_id=user_id)["last_24h"]
        if last_day.interactions > 0 and last_day.accept_rate < self._config.engagement_threshold:
            return True

        return context_changed(context, last_context)

    def select_categories(self, user_id: str, context: InteractionContext) -> list[RefreshCategory]:
        categories = [RefreshCategory.CONTENT]
        recent = self._ledger.get_recent(SOCIAL_WINDOW, user_id)
        social = sum(1 for r in recent if r.type.is_social)
        if social < SOCIAL_MINIMUM or self._rng.random() < self._config.exploration_probability:
            categories.append(RefreshCategory.PEERS)
        if context_mood(context) in EXERCISE_MOODS:
            categories.append(RefreshCategory.EXERCISES)
        if context.time_of_day in ACTIVITY_TIMES:
            categories.append(RefreshCategory.ACTIVITIES)
        return categories

    # Refresh

    async def refresh(
        self, user_id: str, context: InteractionContext | None = None, *, force: bool = False,
    ) -> RefreshOutcome:
        """Run one refresh pass. Never raises."""
        if self._refreshing:
            logger.info("refresh_skipped", user_id=user_id, reason="refresh_in_progress")
            return RefreshOutcome(user_id=user_id, skipped=True, reason="refresh_in_progress")
        self._refreshing = True
        try:
            return await self._refresh(user_id, context, force)
        except Exception as e:
            logger.error("refresh_failed", user_id=user_id, error=str(e), error_type=type(e).__name__)
            return RefreshOutcome(user_id=user_id, success=False, reason=str(e))
        finally:
            self._refreshing = False

    async def _refresh(
        self, user_id: str, context: InteractionContext | None, force: bool,
    ) -> RefreshOutcome:
        context = context or current_context(now=self._clock())
        session = self._session(user_id)
        if not force and not self.should_refresh(user_id, context):
            logger.debug("refresh_skipped", user_id=user_id, reason="not_needed")
            return RefreshOutcome(user_id=user_id, skipped=True, reason="not_needed")

        categories = self.select_categories(user_id, context)
        results: dict[str, RefreshResult] = {}
        for category in categories:
            results[category.value] = await self._regenerate(category, user_id, context)

        if not session.active or self._sessions.get(user_id) is not session:
            logger.info("refresh_results_discarded", user_id=user_id,
                        categories=[c.value for c in categories])
            return RefreshOutcome(
                user_id=user_id, discarded=True, reason="session_stopped",
                categories=categories, results=results,
            )

        outcome = RefreshOutcome(
            user_id=user_id,
            success=any(r.success for r in results.values()),
            categories=categories,
            results=results,
            timestamp=self._clock(),
        )
        await self._ledger.record(
            user_id,
            InteractionType.RECOMMENDATION_REFRESH,
            {"categories": categories, "total_recommendations": outcome.total_recommendations},
            context,
        )
        session.state.last_refresh_time = outcome.timestamp
        session.state.last_context = context
        self._history.append(outcome)
        await self._notify(user_id, outcome)
        if self._publisher is not None:
            await self._publisher.publish(RefreshCompletedEvent(
                user_id=user_id, categories=categories,
                total_recommendations=outcome.total_recommendations, success=outcome.success,
            ))
        logger.info("refresh_completed", user_id=user_id, categories=[c.value for c in categories],
                    total_recommendations=outcome.total_recommendations)
        return outcome

    async def _regenerate(
        self, category: RefreshCategory, user_id: str, context: InteractionContext,
    ) -> RefreshResult:
        regenerator = self._regenerators.get(category)
        if regenerator is None:
            return RefreshResult(category=category, success=False, error="no_regenerator_registered")
        try:
            items = list(await regenerator(user_id, context))
        except Exception as e:
            logger.warning("refresh_category_failed", user_id=user_id,
                           category=category.value, error=str(e))
            return RefreshResult(category=category, success=False, error=str(e))
        return RefreshResult(category=category, success=True, count=len(items), data=items)

    def refresh_statistics(self, user_id: str) -> RefreshStatistics:
        events = [o for o in self._history if o.user_id == user_id]
        if not events:
            return RefreshStatistics()
        span = events[-1].timestamp - events[0].timestamp
        days = span / timedelta(days=1)
        return RefreshStatistics(
            total_refreshes=len(events),
            average_recommendations=sum(o.total_recommendations for o in events) / len(events),
            last_refresh=events[-1].timestamp,
            refreshes_per_day=len(events) / days if days > 0 else 0.0,
        )
