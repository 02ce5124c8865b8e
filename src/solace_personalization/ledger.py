"""
Solace-AI Personalization - Interaction Ledger.

Append-only record of tracked user actions. Records are kept in memory and a
copy of each is handed to a background writer for persistence; persistence is
best effort and its failures are logged, never raised to the caller.

Architecture Layer: Domain
Principles: Append-Only Log, Fire-and-Forget Persistence, Async Processing
"""
from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from typing import Any, Generic, TypeVar

import structlog

from .config import LedgerConfig
from .context import Clock, current_context, system_clock
from .models import (
    BasePayload,
    InteractionContext,
    InteractionRecord,
    InteractionType,
    build_payload,
)
from .repository import PersonalizationRepository

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class BackgroundWriter(Generic[T]):
    """Bounded asyncio queue drained by a single worker task.

    Items are handed to ``sink`` one at a time. A failing sink call is logged
    under ``failure_event`` and the worker moves on to the next item. When the
    queue is full the item is dropped and ``submit`` returns False.
    """

    def __init__(
        self,
        name: str,
        sink: Callable[[T], Awaitable[None]],
        *,
        failure_event: str,
        max_queue_size: int = 1000,
    ) -> None:
        self._name = name
        self._sink = sink
        self._failure_event = failure_event
        self._max_queue_size = max_queue_size
        self._queue: asyncio.Queue[T] | None = None
        self._task: asyncio.Task | None = None
        self._failures = 0
        self._dropped = 0

    @property
    def failures(self) -> int:
        return self._failures

    @property
    def dropped(self) -> int:
        return self._dropped

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _ensure_worker(self) -> asyncio.Queue[T]:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self._max_queue_size)
        if not self.running:
            self._task = asyncio.create_task(self._run(), name=f"{self._name}-writer")
        return self._queue

    def submit(self, item: T) -> bool:
        """Enqueue an item without waiting. Must be called from a running loop."""
        queue = self._ensure_worker()
        try:
            queue.put_nowait(item)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning("background_write_dropped", writer=self._name, queue_size=queue.qsize())
            return False
        return True

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            item = await self._queue.get()
            try:
                await self._sink(item)
            except Exception as e:
                self._failures += 1
                logger.warning(self._failure_event, writer=self._name,
                               error=str(e), error_type=type(e).__name__)
            finally:
                self._queue.task_done()

    async def flush(self) -> None:
        """Wait until every submitted item has been handed to the sink."""
        if self._queue is not None and self.running:
            await self._queue.join()

    async def stop(self) -> None:
        """Drain pending items, then cancel the worker."""
        await self.flush()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.debug("background_writer_stopped", writer=self._name,
                     failures=self._failures, dropped=self._dropped)


class InteractionLedger:
    """In-memory interaction log with background persistence."""

    def __init__(
        self,
        repository: PersonalizationRepository | None = None,
        config: LedgerConfig | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._config = config or LedgerConfig()
        self._repository = repository
        self._clock = clock
        self._records: deque[InteractionRecord] = deque(maxlen=self._config.max_records)
        self._writer: BackgroundWriter[InteractionRecord] | None = None
        if repository is not None:
            self._writer = BackgroundWriter(
                "interaction-ledger",
                repository.append_interaction,
                failure_event="interaction_persist_failed",
                max_queue_size=self._config.writer_queue_size,
            )

    @property
    def config(self) -> LedgerConfig:
        return self._config

    @property
    def writer(self) -> BackgroundWriter[InteractionRecord] | None:
        return self._writer

    async def record(
        self,
        user_id: str,
        interaction_type: InteractionType | str,
        payload: Mapping[str, Any] | BasePayload | None = None,
        context: InteractionContext | None = None,
        *,
        timestamp: datetime | None = None,
    ) -> InteractionRecord:
        """Append a validated record and hand a copy to the persistence writer.

        Persistence failures are logged by the writer and never reach the caller.
        Invalid input is not recorded: an unknown type raises ``ValueError`` and a
        payload outside its variant's bounds raises ``pydantic.ValidationError``.
        ``PersonalizationService.track_interaction`` converts both into ``None``.
        """
        interaction_type = InteractionType(interaction_type)
        moment = timestamp or self._clock()
        record = InteractionRecord(
            user_id=user_id,
            type=interaction_type,
            payload=build_payload(interaction_type, payload),
            context=context or current_context(now=moment),
            timestamp=moment,
        )
        self._records.append(record)
        if self._writer is not None:
            self._writer.submit(record)
        logger.debug(
            "interaction_recorded",
            user_id=user_id,
            interaction_type=interaction_type.value,
            record_id=str(record.id),
        )
        return record

    def _select(self, user_id: str | None) -> list[InteractionRecord]:
        records = [r for r in self._records if user_id is None or r.user_id == user_id]
        records.sort(key=lambda r: r.timestamp)
        return records

    def snapshot(self, user_id: str | None = None) -> tuple[InteractionRecord, ...]:
        """Chronological copy of the ledger, optionally for one user."""
        return tuple(self._select(user_id))

    def get_recent(self, n: int = 20, user_id: str | None = None) -> tuple[InteractionRecord, ...]:
        """Most recent ``n`` records, newest first. Each call re-reads current state."""
        if n <= 0:
            return ()
        return tuple(reversed(self._select(user_id)[-n:]))

    def count(self, user_id: str | None = None) -> int:
        if user_id is None:
            return len(self._records)
        return sum(1 for r in self._records if r.user_id == user_id)

    def clear(self) -> None:
        self._records.clear()
        logger.info("interaction_ledger_cleared")

    async def close(self) -> None:
        if self._writer is not None:
            await self._writer.stop()
