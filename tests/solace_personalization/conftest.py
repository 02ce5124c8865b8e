"""
Pytest configuration and fixtures for personalization tests.
"""
import random
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from solace_personalization.config import PersonalizationSettings
from solace_personalization.context import current_context
from solace_personalization.models import InteractionRecord, InteractionType
from solace_personalization.repository import InMemoryPersonalizationRepository
from solace_personalization.service import PersonalizationService

# Monday 2026-03-02, 19:00 UTC (evening)
BASE_TIME = datetime(2026, 3, 2, 19, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = BASE_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, moment: datetime) -> None:
        self.now = moment


@pytest.fixture
def clock():
    """Fixed clock starting Monday evening."""
    return FakeClock()


@pytest.fixture
def settings():
    """Default settings with AI insights enabled."""
    return PersonalizationSettings()


@pytest.fixture
def repository():
    """In-memory persistence collaborator."""
    return InMemoryPersonalizationRepository()


@pytest_asyncio.fixture
async def service(settings, repository, clock):
    """Personalization service wired to the fake clock."""
    svc = PersonalizationService(
        settings, repository=repository, clock=clock, rng=random.Random(7),
    )
    yield svc
    await svc.shutdown()


@pytest.fixture
def make_context():
    """Factory for interaction contexts at a given instant."""
    def _make(at: datetime = BASE_TIME, mood=None, stress_level=None, anxiety_level=None):
        return current_context(now=at, mood=mood, stress_level=stress_level, anxiety_level=anxiety_level)
    return _make


@pytest.fixture
def make_record(make_context):
    """Factory for interaction records without going through a ledger."""
    def _make(user_id="user-1", interaction_type=InteractionType.CONTENT_VIEW, payload=None,
              at: datetime = BASE_TIME, mood=None):
        return InteractionRecord(
            user_id=user_id,
            type=interaction_type,
            payload=payload or {},
            context=make_context(at, mood=mood),
            timestamp=at,
        )
    return _make


@pytest.fixture
def base_time():
    return BASE_TIME
