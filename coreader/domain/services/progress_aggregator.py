"""Furthest-progress tracking with throttled durable writes."""

import asyncio
import logging
import time
import weakref
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional
from uuid import UUID

from ..entities.progress import ProgressOutcome, ProgressPosition, ProgressRecord
from ..entities.reading_session import utc_now
from ..errors import PersistenceFailure
from ..interfaces.progress_repository import ProgressRepository
from .quota import QuotaEnforcer

logger = logging.getLogger(__name__)

ProgressKey = tuple[UUID, UUID]


class ProgressAggregator:
    """
    Keeps the high-water mark of every (document, participant) pair.

    A report at or below the current mark is ignored. Accepted reports update
    the in-memory mark at once; the durable copy is written at most once per
    flush interval per key, always with the newest mark.
    """

    def __init__(
        self,
        repository: ProgressRepository,
        quota: QuotaEnforcer,
        retry_attempts: int = 3,
        retry_base_delay: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the aggregator.

        Args:
            repository: Durable progress storage.
            quota: Source of the flush interval and staleness window.
            retry_attempts: Attempts per flush before giving up.
            retry_base_delay: First backoff delay in seconds, doubled per retry.
            clock: Monotonic clock used for write throttling.
        """
        self._repository = repository
        self._quota = quota
        self._retry_attempts = max(1, retry_attempts)
        self._retry_base_delay = retry_base_delay
        self._clock = clock

        self._marks: Dict[ProgressKey, ProgressRecord] = {}
        self._last_flush: Dict[ProgressKey, float] = {}
        self._pending: Dict[ProgressKey, asyncio.Task] = {}
        # Keys whose in-memory mark is ahead of the last successful write
        self._dirty: set[ProgressKey] = set()
        self._locks: "weakref.WeakValueDictionary[ProgressKey, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock(self, key: ProgressKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def report(
        self,
        document_id: UUID,
        participant_id: UUID,
        position: ProgressPosition,
        username: Optional[str] = None,
    ) -> ProgressOutcome:
        """Record a reported position if it moves the reader forward."""
        key = (document_id, participant_id)
        async with self._lock(key):
            current = self._marks.get(key)
            if current is None:
                current = await self._repository.get_progress(document_id, participant_id)
                if current is not None:
                    self._marks[key] = current

            if current is not None and position.percentage <= current.percentage:
                logger.debug(
                    f"Ignoring progress {position.percentage} <= {current.percentage} "
                    f"for {participant_id} in {document_id}"
                )
                return ProgressOutcome.IGNORED

            now = utc_now()
            self._marks[key] = ProgressRecord(
                document_id=document_id,
                participant_id=participant_id,
                username=username or (current.username if current else None),
                percentage=position.percentage,
                location=position.location,
                chapter=position.chapter,
                created_at=current.created_at if current else now,
                last_updated_at=now,
            )
            self._dirty.add(key)
            self._schedule_flush(key)
            return ProgressOutcome.ACCEPTED

    def _schedule_flush(self, key: ProgressKey) -> None:
        if key in self._pending:
            return

        interval = self._quota.limits.progress.flush_interval_ms / 1000
        last = self._last_flush.get(key)
        delay = 0.0 if last is None else max(0.0, last + interval - self._clock())
        self._pending[key] = asyncio.create_task(self._deferred_flush(key, delay))

    async def _deferred_flush(self, key: ProgressKey, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        # Reports arriving during the write schedule a new flush.
        self._pending.pop(key, None)
        try:
            await self._flush(key)
        except Exception as e:
            logger.error(f"Error flushing progress for {key}: {e}", exc_info=True)

    async def _flush(self, key: ProgressKey) -> bool:
        record = self._marks.get(key)
        if record is None:
            return True

        self._last_flush[key] = self._clock()
        for attempt in range(1, self._retry_attempts + 1):
            try:
                await self._repository.upsert_progress(record)
                if self._marks.get(key) is record:
                    self._dirty.discard(key)
                return True
            except PersistenceFailure as e:
                if attempt == self._retry_attempts:
                    logger.warning(
                        f"Giving up on progress write for {record.participant_id} in "
                        f"{record.document_id} after {attempt} attempts: {e}"
                    )
                    return False
                delay = self._retry_base_delay * 2 ** (attempt - 1)
                logger.info(f"Progress write failed (attempt {attempt}), retrying in {delay}s")
                await asyncio.sleep(delay)
        return False

    async def current(self, document_id: UUID, participant_id: UUID) -> Optional[ProgressRecord]:
        """Return the in-memory mark, falling back to the durable record."""
        record = self._marks.get((document_id, participant_id))
        if record is not None:
            return record
        return await self._repository.get_progress(document_id, participant_id)

    async def snapshot(self, document_id: UUID) -> list[ProgressRecord]:
        """All progress for a document, with in-memory marks overriding durable ones."""
        records = {r.participant_id: r for r in await self._repository.list_progress(document_id)}
        for (doc_id, participant_id), record in self._marks.items():
            if doc_id == document_id:
                stored = records.get(participant_id)
                if stored is None or record.percentage >= stored.percentage:
                    records[participant_id] = record
        return sorted(records.values(), key=lambda r: r.last_updated_at, reverse=True)

    async def active_readers(self, document_id: UUID, now: Optional[datetime] = None) -> list[ProgressRecord]:
        """Progress of readers seen within the staleness window, newest first."""
        cutoff = (now or utc_now()) - self._stale_after()
        return [r for r in await self.snapshot(document_id) if r.last_updated_at >= cutoff]

    def evict_stale(self, now: Optional[datetime] = None) -> int:
        """Forget in-memory marks not updated within the staleness window.

        Durable records are kept; a later report re-seeds from them. Marks
        whose last write failed are kept and their write is retried instead.
        """
        cutoff = (now or utc_now()) - self._stale_after()
        stale = []
        for key, record in self._marks.items():
            if record.last_updated_at >= cutoff or key in self._pending:
                continue
            if key in self._dirty:
                self._schedule_flush(key)
            else:
                stale.append(key)
        for key in stale:
            del self._marks[key]
            self._last_flush.pop(key, None)
        return len(stale)

    async def flush_all(self) -> None:
        """Write every deferred mark now. Called at shutdown."""
        pending = list(self._pending.items())
        self._pending.clear()
        for _, task in pending:
            task.cancel()
        await asyncio.gather(*(task for _, task in pending), return_exceptions=True)

        keys = {key for key, _ in pending} | self._dirty
        for key in keys:
            await self._flush(key)
        logger.info(f"Flushed {len(keys)} pending progress writes")

    def _stale_after(self) -> timedelta:
        return timedelta(minutes=self._quota.limits.progress.stale_after_minutes)
