"""
Solace-AI Personalization - Persistence Boundary.
Repository pattern with async support; the core degrades to in-memory
operation when an implementation raises StorageError.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

import structlog

from .models import InteractionRecord, RecommendationMetric, UserProfile

logger = structlog.get_logger(__name__)


class PersonalizationRepository(ABC):
    """Abstract persistence collaborator. Implementations raise StorageError on failure."""

    @abstractmethod
    async def append_interaction(self, record: InteractionRecord) -> None: ...
    @abstractmethod
    async def upsert_metric(self, recommendation_id: str, metric: RecommendationMetric) -> None: ...
    @abstractmethod
    async def fetch_user_profile(self, user_id: str) -> UserProfile | None: ...
    @abstractmethod
    async def fetch_candidate_peers(self, exclude_user_id: str) -> list[UserProfile]: ...


class InMemoryPersonalizationRepository(PersonalizationRepository):
    """In-memory implementation for testing and development."""

    def __init__(self, profiles: list[UserProfile] | None = None) -> None:
        self._interactions: list[InteractionRecord] = []
        self._metrics: dict[str, RecommendationMetric] = {}
        self._profiles: dict[str, UserProfile] = {p.user_id: p for p in profiles or []}
        self._lock = asyncio.Lock()

    async def append_interaction(self, record: InteractionRecord) -> None:
        async with self._lock:
            self._interactions.append(record)

    async def upsert_metric(self, recommendation_id: str, metric: RecommendationMetric) -> None:
        async with self._lock:
            self._metrics[recommendation_id] = metric.model_copy(deep=True)

    async def fetch_user_profile(self, user_id: str) -> UserProfile | None:
        return self._profiles.get(user_id)

    async def fetch_candidate_peers(self, exclude_user_id: str) -> list[UserProfile]:
        return [p for uid, p in sorted(self._profiles.items()) if uid != exclude_user_id]

    async def save_user_profile(self, profile: UserProfile) -> None:
        async with self._lock:
            self._profiles[profile.user_id] = profile
        logger.debug("user_profile_saved", user_id=profile.user_id)

    @property
    def interactions(self) -> list[InteractionRecord]:
        return list(self._interactions)

    @property
    def metrics(self) -> dict[str, RecommendationMetric]:
        return dict(self._metrics)
