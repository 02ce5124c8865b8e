"""
Solace-AI Personalization.

Adaptive personalization core: interaction ledger, pattern learning,
peer compatibility, real-time recommendation adaptation with a safety
override, adaptive refresh scheduling and recommendation analytics.
"""
from .adapter import RealTimeAdapter, fallback_recommendations
from .analytics import PerformanceAnalytics
from .compatibility import CompatibilityScorer, categorize_matches
from .config import PersonalizationSettings, get_settings, reset_settings
from .context import categorize_time_of_day, current_context, normalize_mood
from .events import PersonalizationEventPublisher, PersonalizationEventType
from .exceptions import (
    ConfigurationError,
    InsufficientDataError,
    PersonalizationError,
    StorageError,
    TransientIOError,
)
from .insights import InsightGenerator, NullInsightGenerator
from .learner import PatternLearner
from .ledger import InteractionLedger
from .models import (
    BehaviorProfile,
    InteractionContext,
    InteractionRecord,
    InteractionType,
    RecommendationAction,
    RecommendationBundle,
    RecommendationItem,
    UserProfile,
)
from .repository import InMemoryPersonalizationRepository, PersonalizationRepository
from .scheduler import RefreshScheduler
from .service import PersonalizationService, create_personalization_service

__version__ = "1.0.0"

__all__ = [
    "BehaviorProfile",
    "CompatibilityScorer",
    "ConfigurationError",
    "InMemoryPersonalizationRepository",
    "InsightGenerator",
    "InsufficientDataError",
    "InteractionContext",
    "InteractionLedger",
    "InteractionRecord",
    "InteractionType",
    "NullInsightGenerator",
    "PatternLearner",
    "PerformanceAnalytics",
    "PersonalizationError",
    "PersonalizationEventPublisher",
    "PersonalizationEventType",
    "PersonalizationRepository",
    "PersonalizationService",
    "PersonalizationSettings",
    "RealTimeAdapter",
    "RecommendationAction",
    "RecommendationBundle",
    "RecommendationItem",
    "RefreshScheduler",
    "StorageError",
    "TransientIOError",
    "UserProfile",
    "categorize_matches",
    "categorize_time_of_day",
    "create_personalization_service",
    "current_context",
    "fallback_recommendations",
    "get_settings",
    "normalize_mood",
    "reset_settings",
]
