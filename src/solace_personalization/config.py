"""
Solace-AI Personalization - Configuration.

Centralized configuration for the personalization core. Every policy
constant (boost factors, safety thresholds, weights, refresh cadence) is a
setting so clinical tuning never needs a code change.

Architecture Layer: Infrastructure
Principles: 12-Factor App, Configuration Externalization, Type Safety
"""
from __future__ import annotations

from datetime import timedelta
from enum import Enum
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import structlog

from .exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

WEIGHT_TOLERANCE = 1e-6


class Environment(str, Enum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class ServiceConfiguration(BaseSettings):
    """Core service configuration."""
    name: str = Field(default="personalization-service")
    version: str = Field(default="1.0.0")
    env: Environment = Field(default=Environment.DEVELOPMENT)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8012, ge=1, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="PERSONALIZATION_SERVICE_",
        env_file=".env",
        extra="ignore",
    )


class LedgerConfig(BaseSettings):
    """Interaction ledger configuration."""
    max_records: int = Field(default=10000, ge=100, le=1000000)
    session_gap_minutes: int = Field(default=30, ge=1, le=720)
    writer_queue_size: int = Field(default=1000, ge=10, le=100000)

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def session_gap(self) -> timedelta:
        return timedelta(minutes=self.session_gap_minutes)


class AdapterPolicy(BaseSettings):
    """Real-time adaptation policy, including the safety override thresholds."""
    critical_anxiety_threshold: float = Field(default=8.0, ge=0.0, le=10.0)
    critical_stress_threshold: float = Field(default=7.0, ge=0.0, le=10.0)
    elevated_anxiety_threshold: float = Field(default=5.0, ge=0.0, le=10.0)
    elevated_stress_threshold: float = Field(default=5.0, ge=0.0, le=10.0)
    mood_boost_factor: float = Field(default=1.3, ge=1.0, le=3.0)
    time_boost_factor: float = Field(default=1.1, ge=1.0, le=3.0)

    model_config = SettingsConfigDict(
        env_prefix="ADAPTER_",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_threshold_order(self) -> AdapterPolicy:
        if self.elevated_anxiety_threshold > self.critical_anxiety_threshold:
            raise ValueError("elevated_anxiety_threshold must not exceed critical_anxiety_threshold")
        if self.elevated_stress_threshold > self.critical_stress_threshold:
            raise ValueError("elevated_stress_threshold must not exceed critical_stress_threshold")
        return self


class CompatibilityWeights(BaseSettings):
    """Canonical peer-compatibility weighting. Weights must sum to 1."""
    interests: float = Field(default=0.24, ge=0.0, le=1.0)
    experiences: float = Field(default=0.21, ge=0.0, le=1.0)
    age_range: float = Field(default=0.09, ge=0.0, le=1.0)
    communication_style: float = Field(default=0.06, ge=0.0, le=1.0)
    behavioral_similarity: float = Field(default=0.30, ge=0.0, le=1.0)
    activity_level: float = Field(default=0.10, ge=0.0, le=1.0)
    min_match_score: float = Field(default=0.3, ge=0.0, le=1.0)
    max_matches: int = Field(default=10, ge=1, le=100)

    model_config = SettingsConfigDict(
        env_prefix="COMPATIBILITY_",
        env_file=".env",
        extra="ignore",
    )

    def as_dict(self) -> dict[str, float]:
        return {
            "interests": self.interests,
            "experiences": self.experiences,
            "age_range": self.age_range,
            "communication_style": self.communication_style,
            "behavioral_similarity": self.behavioral_similarity,
            "activity_level": self.activity_level,
        }

    @model_validator(mode="after")
    def _check_weight_sum(self) -> CompatibilityWeights:
        total = sum(self.as_dict().values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"compatibility weights must sum to 1.0, got {total:.6f}")
        return self


class SchedulerConfig(BaseSettings):
    """Adaptive refresh scheduling configuration."""
    min_interval_seconds: int = Field(default=300, ge=1, le=86400)
    max_interval_seconds: int = Field(default=3600, ge=1, le=86400)
    staleness_threshold_seconds: int = Field(default=1800, ge=1, le=86400)
    engagement_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    exploration_probability: float = Field(default=0.3, ge=0.0, le=1.0)
    history_size: int = Field(default=100, ge=1, le=10000)

    model_config = SettingsConfigDict(
        env_prefix="REFRESH_",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_interval_bounds(self) -> SchedulerConfig:
        if self.min_interval_seconds > self.max_interval_seconds:
            raise ValueError("min_interval_seconds must not exceed max_interval_seconds")
        return self

    @property
    def min_interval(self) -> timedelta:
        return timedelta(seconds=self.min_interval_seconds)

    @property
    def max_interval(self) -> timedelta:
        return timedelta(seconds=self.max_interval_seconds)

    @property
    def staleness_threshold(self) -> timedelta:
        return timedelta(seconds=self.staleness_threshold_seconds)


class AnalyticsConfig(BaseSettings):
    """Recommendation performance analytics configuration."""
    retention_days: int = Field(default=30, ge=1, le=365)
    history_size: int = Field(default=1000, ge=10, le=100000)
    default_window_days: int = Field(default=7, ge=1, le=90)
    categories: list[str] = Field(
        default_factory=lambda: ["wellness", "social", "habits", "mood"]
    )
    ai_insights_min_history: int = Field(default=20, ge=0, le=10000)

    model_config = SettingsConfigDict(
        env_prefix="ANALYTICS_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.retention_days)

    @property
    def default_window(self) -> timedelta:
        return timedelta(days=self.default_window_days)


class InsightsConfig(BaseSettings):
    """External AI insight generation configuration."""
    enabled: bool = Field(default=True)
    timeout_seconds: float = Field(default=5.0, ge=0.1, le=60.0)
    min_interactions: int = Field(default=10, ge=0, le=10000)

    model_config = SettingsConfigDict(
        env_prefix="INSIGHTS_",
        env_file=".env",
        extra="ignore",
    )


class ObservabilityConfig(BaseSettings):
    """Observability configuration."""
    log_format: Literal["json", "console"] = Field(default="json")

    model_config = SettingsConfigDict(
        env_prefix="OBSERVABILITY_",
        env_file=".env",
        extra="ignore",
    )


class PersonalizationSettings(BaseSettings):
    """Aggregate personalization configuration."""
    service: ServiceConfiguration = Field(default_factory=ServiceConfiguration)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    adapter: AdapterPolicy = Field(default_factory=AdapterPolicy)
    compatibility: CompatibilityWeights = Field(default_factory=CompatibilityWeights)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    insights: InsightsConfig = Field(default_factory=InsightsConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @staticmethod
    def load() -> PersonalizationSettings:
        """Load configuration from environment, failing fast on invalid policy."""
        try:
            settings = PersonalizationSettings()
        except ValueError as e:
            raise ConfigurationError(
                "Invalid personalization configuration", operation="load_settings", cause=e,
            ) from e
        logger.info(
            "personalization_config_loaded",
            service=settings.service.name,
            env=settings.service.env.value,
            min_interval_seconds=settings.scheduler.min_interval_seconds,
            max_interval_seconds=settings.scheduler.max_interval_seconds,
        )
        return settings

    def is_production(self) -> bool:
        """Check if running in production."""
        return self.service.env == Environment.PRODUCTION


_settings: PersonalizationSettings | None = None


def get_settings() -> PersonalizationSettings:
    """Get singleton configuration instance."""
    global _settings
    if _settings is None:
        _settings = PersonalizationSettings.load()
    return _settings


def reset_settings() -> None:
    """Reset configuration (useful for testing)."""
    global _settings
    _settings = None
