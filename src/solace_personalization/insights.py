"""
Solace-AI Personalization - AI Insight Boundary.

The insight generator is an opaque, best-effort collaborator. Calls are
bounded by a timeout; a timeout, an error or a ``None`` result all mean
"no insights" and the deterministic heuristics are used alone.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

import structlog

from .config import InsightsConfig

logger = structlog.get_logger(__name__)


class InsightGenerator(ABC):
    """Generates free-form structured insights from an analysis context."""

    @abstractmethod
    async def generate_insights(self, context: dict[str, Any]) -> dict[str, Any] | None: ...


class NullInsightGenerator(InsightGenerator):
    """Generator used when no AI backend is configured."""

    async def generate_insights(self, context: dict[str, Any]) -> dict[str, Any] | None:
        return None


class InsightClient:
    """Timeout-bounded wrapper around an InsightGenerator."""

    def __init__(self, generator: InsightGenerator | None = None,
                 config: InsightsConfig | None = None) -> None:
        self._generator = generator or NullInsightGenerator()
        self._config = config or InsightsConfig()
        self._request_count = 0
        self._error_count = 0

    @property
    def enabled(self) -> bool:
        return self._config.enabled and not isinstance(self._generator, NullInsightGenerator)

    async def generate(self, context: dict[str, Any], *, purpose: str) -> dict[str, Any] | None:
        if not self._config.enabled:
            return None
        self._request_count += 1
        try:
            result = await asyncio.wait_for(
                self._generator.generate_insights(context),
                timeout=self._config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            self._error_count += 1
            logger.warning("insight_generation_timeout", purpose=purpose,
                           timeout_seconds=self._config.timeout_seconds)
            return None
        except Exception as e:
            self._error_count += 1
            logger.warning("insight_generation_failed", purpose=purpose,
                           error=str(e), error_type=type(e).__name__)
            return None
        if result is not None:
            logger.info("insights_generated", purpose=purpose, keys=sorted(result))
        return result

    def get_statistics(self) -> dict[str, int]:
        return {"requests": self._request_count, "errors": self._error_count}
