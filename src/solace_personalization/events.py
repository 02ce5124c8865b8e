"""
Solace-AI Personalization - Domain Events.

Events emitted by the personalization core for an external notifier. The core
never depends on delivery: handler and callback failures are logged only.

Architecture Layer: Domain
Principles: Event-Driven Architecture, Async Processing, Best-Effort Delivery
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field
import structlog

from .models import AdjustmentSuggestion, RefreshCategory, StressState

logger = structlog.get_logger(__name__)

MILESTONE_THRESHOLDS: tuple[int, ...] = (10, 50, 100, 250, 500)


class PersonalizationEventType(str, Enum):
    """Personalization event types."""
    INTERACTION_TRACKED = "interaction.tracked"
    RECOMMENDATIONS_ADAPTED = "recommendations.adapted"
    SAFETY_OVERRIDE_TRIGGERED = "safety.override_triggered"
    REFRESH_COMPLETED = "refresh.completed"
    MILESTONE_REACHED = "milestone.reached"
    ADJUSTMENT_SUGGESTED = "adjustment.suggested"


class PersonalizationEvent(BaseModel):
    """Base class for all personalization domain events."""
    event_id: UUID = Field(default_factory=uuid4)
    event_type: PersonalizationEventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    user_id: str | None = Field(default=None)
    source: str = Field(default="personalization-service")
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        """Serialize event to JSON."""
        return self.model_dump_json()


class InteractionTrackedEvent(PersonalizationEvent):
    event_type: PersonalizationEventType = Field(default=PersonalizationEventType.INTERACTION_TRACKED)
    interaction_id: UUID
    interaction_type: str


class RecommendationsAdaptedEvent(PersonalizationEvent):
    """Fired when a recommendation plan was adapted to the user's context."""
    event_type: PersonalizationEventType = Field(default=PersonalizationEventType.RECOMMENDATIONS_ADAPTED)
    item_count: int = Field(default=0, ge=0)
    stress_level: StressState = Field(default=StressState.NORMAL)
    source_kind: str = Field(default="learned")


class SafetyOverrideEvent(PersonalizationEvent):
    event_type: PersonalizationEventType = Field(default=PersonalizationEventType.SAFETY_OVERRIDE_TRIGGERED)
    anxiety_level: float | None = Field(default=None)
    stress_level: float | None = Field(default=None)


class RefreshCompletedEvent(PersonalizationEvent):
    event_type: PersonalizationEventType = Field(default=PersonalizationEventType.REFRESH_COMPLETED)
    categories: list[RefreshCategory] = Field(default_factory=list)
    total_recommendations: int = Field(default=0, ge=0)
    success: bool = Field(default=True)


class MilestoneReachedEvent(PersonalizationEvent):
    event_type: PersonalizationEventType = Field(default=PersonalizationEventType.MILESTONE_REACHED)
    milestone: int = Field(..., ge=1)
    total_interactions: int = Field(..., ge=0)


class AdjustmentSuggestedEvent(PersonalizationEvent):
    event_type: PersonalizationEventType = Field(default=PersonalizationEventType.ADJUSTMENT_SUGGESTED)
    adjustments: list[AdjustmentSuggestion] = Field(default_factory=list)


def milestone_for(count: int) -> int | None:
    """Milestone reached exactly at ``count`` interactions, if any."""
    return count if count in MILESTONE_THRESHOLDS else None


class PersonalizationEventHandler(ABC):
    """Abstract base class for personalization event handlers."""

    @abstractmethod
    async def handle(self, event: PersonalizationEvent) -> None:
        """Handle a personalization event."""


class PersonalizationEventPublisher:
    """Publisher for personalization domain events."""

    def __init__(self, max_history: int = 1000) -> None:
        self._handlers: dict[PersonalizationEventType, list[PersonalizationEventHandler]] = {}
        self._async_callbacks: list[Callable[[PersonalizationEvent], Awaitable[None]]] = []
        self._event_queue: asyncio.Queue[PersonalizationEvent] = asyncio.Queue()
        self._processing_task: asyncio.Task | None = None
        self._running = False
        self._event_history: list[PersonalizationEvent] = []
        self._max_history = max_history

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background dispatch loop."""
        if self._running:
            return
        self._running = True
        self._processing_task = asyncio.create_task(self._process_events())
        logger.info("personalization_event_publisher_started")

    async def stop(self) -> None:
        """Stop the dispatch loop."""
        self._running = False
        if self._processing_task:
            self._processing_task.cancel()
            try:
                await self._processing_task
            except asyncio.CancelledError:
                pass
            self._processing_task = None
        logger.info("personalization_event_publisher_stopped")

    def register_handler(
        self, event_type: PersonalizationEventType, handler: PersonalizationEventHandler
    ) -> None:
        """Register a handler for an event type."""
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug("personalization_handler_registered", event_type=event_type.value)

    def register_callback(
        self, callback: Callable[[PersonalizationEvent], Awaitable[None]]
    ) -> None:
        """Register an async callback for all events."""
        self._async_callbacks.append(callback)

    async def publish(self, event: PersonalizationEvent) -> None:
        """Queue an event when the loop runs, otherwise dispatch it inline."""
        if not self._running:
            await self._dispatch_event(event)
            return
        await self._event_queue.put(event)
        logger.debug(
            "personalization_event_published",
            event_type=event.event_type.value,
            event_id=str(event.event_id),
            user_id=event.user_id,
        )

    async def _process_events(self) -> None:
        while self._running:
            try:
                event = await asyncio.wait_for(self._event_queue.get(), timeout=1.0)
                await self._dispatch_event(event)
                self._event_queue.task_done()
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("personalization_event_processing_error", error=str(e))

    async def _dispatch_event(self, event: PersonalizationEvent) -> None:
        self._record_event(event)
        for handler in self._handlers.get(event.event_type, []):
            try:
                await handler.handle(event)
            except Exception as e:
                logger.error(
                    "personalization_handler_error",
                    handler=type(handler).__name__,
                    event_type=event.event_type.value,
                    error=str(e),
                )
        for callback in self._async_callbacks:
            try:
                await callback(event)
            except Exception as e:
                logger.error("personalization_callback_error",
                             event_type=event.event_type.value, error=str(e))

    def _record_event(self, event: PersonalizationEvent) -> None:
        self._event_history.append(event)
        if len(self._event_history) > self._max_history:
            self._event_history = self._event_history[-self._max_history:]

    def get_recent_events(
        self, limit: int = 100, event_type: PersonalizationEventType | None = None
    ) -> list[PersonalizationEvent]:
        """Get recent events from history."""
        events = self._event_history
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        return events[-limit:]


class EventCountingHandler(PersonalizationEventHandler):
    """Handler that counts events per type."""

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}

    async def handle(self, event: PersonalizationEvent) -> None:
        key = event.event_type.value
        self._counts[key] = self._counts.get(key, 0) + 1

    def get_counts(self) -> dict[str, int]:
        return dict(self._counts)
