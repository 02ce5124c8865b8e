"""
Solace-AI Personalization - API Endpoints.

REST API for interaction tracking, adapted recommendations, peer matching,
recommendation outcome analytics and refresh scheduling.

Architecture Layer: Infrastructure (API)
Principles: Clean API Design, Request Validation, Dependency Injection
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
import structlog

from .context import current_context
from .models import (
    AnalyticsSummary,
    BehaviorProfile,
    InteractionContext,
    InteractionRecord,
    InteractionType,
    MoodSnapshot,
    OutcomeEvent,
    PeerMatches,
    RecommendationAction,
    RecommendationBundle,
    RecommendationItem,
    RefreshOutcome,
    RefreshStatistics,
)
from .service import PersonalizationService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/personalization", tags=["personalization"])

_personalization_service: PersonalizationService | None = None


def get_personalization_service() -> PersonalizationService:
    """Dependency to get the personalization service."""
    if _personalization_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Personalization service not initialized",
        )
    return _personalization_service


def set_dependencies(service: PersonalizationService | None) -> None:
    """Set global dependencies for API routes."""
    global _personalization_service
    _personalization_service = service


class ContextRequest(BaseModel):
    """Current user context supplied by the client."""
    mood: str | None = Field(default=None, max_length=64)
    mood_confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    stress_level: float | None = Field(default=None, ge=0.0, le=10.0)
    anxiety_level: float | None = Field(default=None, ge=0.0, le=10.0)

    def to_context(self) -> InteractionContext:
        mood = MoodSnapshot(emotion=self.mood, confidence=self.mood_confidence) if self.mood else None
        return current_context(
            mood=mood, stress_level=self.stress_level, anxiety_level=self.anxiety_level,
        )


class TrackInteractionRequest(BaseModel):
    """Request model for tracking an interaction."""
    user_id: str = Field(..., min_length=1, max_length=128)
    type: InteractionType
    payload: dict[str, Any] = Field(default_factory=dict)
    context: ContextRequest | None = Field(default=None)


class RecommendationRequest(BaseModel):
    """Request model for adapted recommendations."""
    context: ContextRequest = Field(default_factory=ContextRequest)
    base: list[RecommendationItem] | None = Field(
        default=None, description="Candidate list to adapt. Learned candidates are used when omitted.",
    )


class RecommendationEventRequest(BaseModel):
    """Request model for a recommendation outcome event."""
    user_id: str = Field(..., min_length=1, max_length=128)
    recommendation_id: str = Field(..., min_length=1, max_length=256)
    action: RecommendationAction
    category: str | None = Field(default=None, max_length=64)
    rating: float | None = Field(default=None, ge=1.0, le=5.0)
    time_from_impression_ms: float | None = Field(default=None, ge=0.0)


class RecommendationEventResponse(BaseModel):
    accepted: bool
    event: OutcomeEvent | None = None


class RefreshSessionResponse(BaseModel):
    user_id: str
    active: bool
    interval_seconds: float | None = None


@router.post("/interactions", response_model=InteractionRecord, status_code=status.HTTP_201_CREATED)
async def track_interaction(
    request: TrackInteractionRequest,
    service: PersonalizationService = Depends(get_personalization_service),
) -> InteractionRecord:
    """Track a user interaction."""
    context = request.context.to_context() if request.context else None
    record = await service.track_interaction(request.user_id, request.type, request.payload, context)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid payload for interaction type {request.type.value}",
        )
    return record


@router.post("/recommendations/{user_id}", response_model=RecommendationBundle)
async def get_recommendations(
    user_id: str,
    request: RecommendationRequest | None = None,
    service: PersonalizationService = Depends(get_personalization_service),
) -> RecommendationBundle:
    """Get recommendations adapted to the supplied context."""
    request = request or RecommendationRequest()
    bundle = await service.get_recommendations(user_id, request.context.to_context(), request.base)
    logger.info("recommendations_served", user_id=user_id, items=len(bundle.items),
                source=bundle.source, stress_level=bundle.stress_level.value)
    return bundle


@router.get("/peers/{user_id}", response_model=PeerMatches)
async def get_peer_matches(
    user_id: str,
    limit: int | None = Query(default=None, ge=1, le=100),
    min_score: float | None = Query(default=None, ge=0.0, le=1.0),
    service: PersonalizationService = Depends(get_personalization_service),
) -> PeerMatches:
    """Get categorized peer matches."""
    return await service.get_peer_matches(user_id, limit=limit, min_score=min_score)


@router.post("/recommendation-events", response_model=RecommendationEventResponse)
async def track_recommendation_event(
    request: RecommendationEventRequest,
    service: PersonalizationService = Depends(get_personalization_service),
) -> RecommendationEventResponse:
    """Track a recommendation outcome (impression, accept, dismiss, complete, feedback)."""
    data = request.model_dump(include={"category", "rating", "time_from_impression_ms"}, exclude_none=True)
    event = await service.track_recommendation_event(
        request.user_id, request.recommendation_id, request.action, data,
    )
    return RecommendationEventResponse(accepted=event is not None, event=event)


@router.get("/analytics/{user_id}", response_model=AnalyticsSummary)
async def get_analytics_summary(
    user_id: str,
    window_days: int | None = Query(default=None, ge=1, le=90),
    service: PersonalizationService = Depends(get_personalization_service),
) -> AnalyticsSummary:
    """Get recommendation performance analytics for a user."""
    window = timedelta(days=window_days) if window_days else None
    return await service.get_analytics_summary(user_id, window=window)


@router.post("/refresh/{user_id}", response_model=RefreshOutcome)
async def trigger_refresh(
    user_id: str,
    request: ContextRequest | None = None,
    service: PersonalizationService = Depends(get_personalization_service),
) -> RefreshOutcome:
    """Force a refresh pass for the user."""
    context = request.to_context() if request else None
    return await service.trigger_refresh(user_id, context)


@router.post("/refresh/{user_id}/session", response_model=RefreshSessionResponse)
async def start_refresh(
    user_id: str,
    refresh_now: bool = Query(default=False),
    service: PersonalizationService = Depends(get_personalization_service),
) -> RefreshSessionResponse:
    """Start the adaptive refresh timer for the user."""
    interval = await service.start_refresh(user_id, refresh_now=refresh_now)
    return RefreshSessionResponse(user_id=user_id, active=True, interval_seconds=interval.total_seconds())


@router.delete("/refresh/{user_id}", response_model=RefreshSessionResponse)
async def stop_refresh(
    user_id: str,
    service: PersonalizationService = Depends(get_personalization_service),
) -> RefreshSessionResponse:
    """Stop the user's refresh timer. Safe to call when nothing is scheduled."""
    service.stop_refresh(user_id)
    return RefreshSessionResponse(user_id=user_id, active=False)


@router.get("/refresh/{user_id}/statistics", response_model=RefreshStatistics)
async def get_refresh_statistics(
    user_id: str,
    service: PersonalizationService = Depends(get_personalization_service),
) -> RefreshStatistics:
    """Get refresh history statistics for the user."""
    return service.refresh_statistics(user_id)


@router.get("/patterns/{user_id}", response_model=BehaviorProfile)
async def get_patterns(
    user_id: str,
    service: PersonalizationService = Depends(get_personalization_service),
) -> BehaviorProfile:
    """Get the behaviour profile learned from the user's interactions."""
    return service.learn_patterns(user_id)


@router.get("/health")
async def personalization_health() -> dict[str, Any]:
    """Personalization-specific health check."""
    status_info: dict[str, Any] = {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
    if _personalization_service is not None:
        status_info["service"] = "initialized"
        status_info["interactions_tracked"] = _personalization_service.ledger.count()
        status_info["publisher_running"] = _personalization_service.publisher.running
    else:
        status_info["service"] = "not_initialized"
        status_info["status"] = "degraded"
    return status_info
