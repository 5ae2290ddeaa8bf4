"""Two-tier cache of recommended actions.

The volatile tier is a process-wide dict keyed by subject and is always
authoritative for the current process. The durable tier (a
RecommendationStore) is written in the background and read at startup
to warm the volatile tier.

Durable writes are two separate calls, "mark prior rows stale" then
"insert new row valid", with no transaction around them. A crash in
between can leave two valid rows for one subject; warm-up resolves that
by keeping the row with the latest created_at.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine, Iterable
from enum import Enum
from typing import Any

from buyer_insights.config import settings
from buyer_insights.entities import CacheEntry, CacheStatus, RecommendationRecord, RecommendedAction
from buyer_insights.protocols import RecommendationStore

logger = logging.getLogger(__name__)


class ReadPolicy(str, Enum):
    """Which tiers a read may touch."""

    VOLATILE_ONLY = "volatile_only"  # durable tier only used for warm-up
    READ_THROUGH = "read_through"  # lookup() falls back to the durable tier on a miss


class KeyState(str, Enum):
    """Durable-tier state of one subject's entry."""

    WRITING = "writing"  # volatile entry written, durable write pending
    VALID = "valid"  # durable tier holds a valid row for the volatile entry
    STALE = "stale"  # invalidated, or the durable write failed


def latest_valid_records(records: Iterable[RecommendationRecord]) -> dict[str, RecommendationRecord]:
    """Pick one row per subject: the valid row with the latest created_at."""
    latest: dict[str, RecommendationRecord] = {}
    for record in records:
        if record.status is not CacheStatus.VALID:
            continue
        current = latest.get(record.subject_id)
        if current is None or record.created_at > current.created_at:
            latest[record.subject_id] = record
    return latest


class RecommendationCache:
    """Recommendation cache with TTL staleness and background persistence.

    Reads never block on the durable tier. Writes update the volatile tier
    before returning and queue the durable write; durable writes for one
    subject run one at a time in submission order, while different
    subjects proceed independently.

    Example:
        ```python
        cache = RecommendationCache(store=RedisRecommendationRepository.create())
        await cache.warm()

        await cache.put("buyer-1", actions)
        entry = cache.get("buyer-1")  # status VALID for the next hour
        ```
    """

    def __init__(
        self,
        store: RecommendationStore | None = None,
        ttl: int | None = None,
        read_policy: ReadPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            store: Durable tier. If None, the cache is volatile only.
            ttl: Seconds before an entry reads as stale. Defaults to settings.
            read_policy: Whether lookup() may read the durable tier. Defaults to settings.
            clock: Returns the current Unix timestamp (injectable for tests).
        """
        self._store = store
        self._ttl = settings.recommendation_ttl if ttl is None else ttl
        if read_policy is None:
            read_policy = ReadPolicy.READ_THROUGH if settings.read_through else ReadPolicy.VOLATILE_ONLY
        self._read_policy = read_policy
        self._clock = clock

        self._entries: dict[str, CacheEntry] = {}
        self._states: dict[str, KeyState] = {}
        self._generations: dict[str, int] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._holds: dict[str, int] = {}
        self._warming = 0
        self._pending: set[asyncio.Task] = set()

    @property
    def ttl(self) -> int:
        return self._ttl

    @property
    def read_policy(self) -> ReadPolicy:
        return self._read_policy

    @property
    def size(self) -> int:
        """Number of subjects held in the volatile tier."""
        return len(self._entries)

    def state(self, subject_id: str) -> KeyState | None:
        """Durable-tier state of a subject, or None once nothing is held or pending for it."""
        return self._states.get(subject_id)

    def get(self, subject_id: str) -> CacheEntry | None:
        """Read the volatile tier.

        Args:
            subject_id: The buyer to look up

        Returns:
            The entry marked VALID if younger than the TTL, the same entry
            marked STALE if older, or None on a miss
        """
        entry = self._entries.get(subject_id)
        if entry is None:
            return None

        age = self._clock() - entry.cached_at
        return entry.with_status(CacheStatus.VALID if age < self._ttl else CacheStatus.STALE)

    async def lookup(self, subject_id: str) -> CacheEntry | None:
        """Read with the configured policy.

        Same as get() under VOLATILE_ONLY. Under READ_THROUGH a volatile miss
        loads the newest valid durable row into the volatile tier first.
        """
        entry = self.get(subject_id)
        if entry is not None or self._store is None or self._read_policy is ReadPolicy.VOLATILE_ONLY:
            return entry

        if self._states.get(subject_id) is KeyState.STALE:
            # Invalidated, durable rows not yet demoted
            return None

        generation = self._generations.get(subject_id)
        self._hold(subject_id)
        try:
            records = await asyncio.to_thread(self._store.find_valid_for_subject, subject_id, self._clock())
            record = latest_valid_records(records).get(subject_id)
            # A put() or invalidate() during the read supersedes the durable row
            if record is not None and self._generations.get(subject_id) == generation:
                self._entries[subject_id] = record.to_entry()
                self._states[subject_id] = KeyState.VALID
        finally:
            self._release(subject_id)
        return self.get(subject_id)

    async def put(self, subject_id: str, actions: Iterable[RecommendedAction]) -> CacheEntry:
        """Cache a fresh set of actions.

        The volatile tier is updated before this returns, so a get() right
        after sees the new actions. The durable write runs in the background.

        Args:
            subject_id: The buyer the actions are about
            actions: The actions, in display order

        Returns:
            The new entry
        """
        now = self._clock()
        entry = CacheEntry(subject_id=subject_id, actions=tuple(actions), cached_at=now)
        self._entries[subject_id] = entry
        generation = self._next_generation(subject_id)

        if self._store is None:
            self._states[subject_id] = KeyState.VALID
            return entry

        self._states[subject_id] = KeyState.WRITING
        record = RecommendationRecord(
            subject_id=subject_id,
            actions=entry.actions,
            created_at=now,
            expires_at=now + self._ttl,
        )
        self._schedule(subject_id, self._persist(record, generation))
        return entry

    async def invalidate(self, subject_id: str) -> None:
        """Drop a subject's entry.

        The volatile entry is removed immediately; durable rows are marked
        stale in the background.
        """
        self._entries.pop(subject_id, None)
        self._next_generation(subject_id)
        self._states[subject_id] = KeyState.STALE

        if self._store is not None:
            self._schedule(subject_id, self._demote(subject_id))
        self._forget(subject_id)

    async def warm(self) -> int:
        """Fill the volatile tier from the durable tier.

        Entries already in the volatile tier win over durable rows, and so
        does any put() or invalidate() made while the durable read runs.

        Returns:
            Number of subjects loaded
        """
        if self._store is None:
            return 0

        generations = dict(self._generations)
        self._warming += 1
        try:
            records = await asyncio.to_thread(self._store.find_valid, self._clock())
        finally:
            self._warming -= 1

        loaded = 0
        for subject_id, record in latest_valid_records(records).items():
            if (
                subject_id in self._entries
                or self._states.get(subject_id) is KeyState.STALE
                or self._generations.get(subject_id) != generations.get(subject_id)
            ):
                continue
            self._entries[subject_id] = record.to_entry()
            self._states[subject_id] = KeyState.VALID
            loaded += 1

        for subject_id in list(self._generations):
            self._forget(subject_id)

        logger.info(
            "Recommendation cache warmed",
            extra={"extra_data": {"subjects": loaded, "rows": len(records)}},
        )
        return loaded

    async def flush(self) -> None:
        """Wait for every queued durable write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def _next_generation(self, subject_id: str) -> int:
        generation = self._generations.get(subject_id, 0) + 1
        self._generations[subject_id] = generation
        return generation

    def _lock(self, subject_id: str) -> asyncio.Lock:
        lock = self._locks.get(subject_id)
        if lock is None:
            lock = self._locks[subject_id] = asyncio.Lock()
        return lock

    def _hold(self, subject_id: str) -> None:
        self._holds[subject_id] = self._holds.get(subject_id, 0) + 1

    def _release(self, subject_id: str) -> None:
        remaining = self._holds[subject_id] - 1
        if remaining:
            self._holds[subject_id] = remaining
            return
        del self._holds[subject_id]
        self._forget(subject_id)

    def _forget(self, subject_id: str) -> None:
        """Drop bookkeeping for a subject with no entry and no durable work in flight."""
        if self._warming or subject_id in self._entries or subject_id in self._holds:
            return
        self._states.pop(subject_id, None)
        self._generations.pop(subject_id, None)
        self._locks.pop(subject_id, None)

    def _schedule(self, subject_id: str, coro: Coroutine[Any, Any, None]) -> None:
        self._hold(subject_id)
        task = asyncio.create_task(coro)
        self._pending.add(task)

        def done(finished: asyncio.Task) -> None:
            self._pending.discard(finished)
            self._release(subject_id)

        task.add_done_callback(done)

    async def _persist(self, record: RecommendationRecord, generation: int) -> None:
        subject_id = record.subject_id
        async with self._lock(subject_id):
            try:
                await asyncio.to_thread(self._store.mark_stale, subject_id)
                await asyncio.to_thread(self._store.insert, record)
            except Exception:
                logger.exception(
                    "Failed to persist recommendation cache",
                    extra={"extra_data": {"subject_id": subject_id}},
                )
                outcome = KeyState.STALE
            else:
                outcome = KeyState.VALID

        # A later put() or invalidate() owns the state now
        if self._generations.get(subject_id) == generation:
            self._states[subject_id] = outcome

    async def _demote(self, subject_id: str) -> None:
        async with self._lock(subject_id):
            try:
                await asyncio.to_thread(self._store.mark_stale, subject_id)
            except Exception:
                logger.exception(
                    "Failed to invalidate recommendation cache",
                    extra={"extra_data": {"subject_id": subject_id}},
                )
