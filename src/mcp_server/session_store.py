from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field, replace
from typing import AsyncIterator, Callable, Dict, Optional, Tuple

from src.shared.observability import get_logger
from src.shared.observability.metrics import sessions_active, sessions_evicted_total

from .errors import SessionError

logger = get_logger(__name__)

Mutator = Callable[["Session"], "Session"]


@dataclass(frozen=True)
class Session:
    """Per-conversation state keyed by thread id."""

    thread_id: str
    selected_location_ids: Tuple[str, ...] = ()
    last_translated_query: Optional[str] = None
    created_at: float = 0.0
    updated_at: float = 0.0

    def to_dict(self) -> dict:
        return {
            "threadId": self.thread_id,
            "selectedLocationIds": list(self.selected_location_ids),
            "lastTranslatedQuery": self.last_translated_query,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class _Entry:
    session: Session
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    pins: int = 0
    # Idle clock for purge; refreshed by every call, unlike session.updated_at
    last_seen: float = 0.0


class SessionStore:
    """In-memory session map with one FIFO lock per thread id.

    Entry bookkeeping never awaits, so it is atomic on the event loop. An
    entry pinned by an in-flight call is never purged.
    """

    def __init__(
        self,
        *,
        idle_ttl_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._idle_ttl_seconds = idle_ttl_seconds
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, thread_id: str) -> bool:
        return thread_id in self._entries

    def _entry(self, thread_id: str) -> _Entry:
        entry = self._entries.get(thread_id)
        if entry is None:
            now = self._clock()
            entry = _Entry(
                session=Session(thread_id=thread_id, created_at=now, updated_at=now),
                last_seen=now,
            )
            self._entries[thread_id] = entry
            sessions_active.set(len(self._entries))
            logger.info("session_created", thread_id=thread_id)
        return entry

    def get(self, thread_id: str) -> Session:
        """Return the session for ``thread_id``, creating an empty one if absent.

        Refreshes the idle clock only; the returned session is unchanged.
        """
        entry = self._entry(thread_id)
        entry.last_seen = self._clock()
        return entry.session

    def snapshot(self, thread_id: str) -> Optional[Session]:
        entry = self._entries.get(thread_id)
        return entry.session if entry else None

    @asynccontextmanager
    async def lock(self, thread_id: str) -> AsyncIterator[None]:
        """Hold the per-thread lock; waiters are served in arrival order."""
        entry = self._entry(thread_id)
        entry.pins += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.pins -= 1

    def apply(self, thread_id: str, mutator: Mutator) -> Session:
        """Apply a pure mutation. The caller must hold ``lock(thread_id)``."""
        entry = self._entry(thread_id)
        updated = mutator(entry.session)
        if updated.thread_id != thread_id:
            raise SessionError(
                "ThreadMismatch",
                f"Mutation for thread '{thread_id}' produced a session for "
                f"'{updated.thread_id}'",
            )
        entry.session = replace(updated, updated_at=self._clock())
        entry.last_seen = entry.session.updated_at
        return entry.session

    async def update(self, thread_id: str, mutator: Mutator) -> Session:
        """Apply a pure mutation atomically under the per-thread lock."""
        async with self.lock(thread_id):
            return self.apply(thread_id, mutator)

    def purge_idle(self, now: Optional[float] = None) -> int:
        """Drop sessions idle longer than the configured window."""
        now = self._clock() if now is None else now
        cutoff = now - self._idle_ttl_seconds
        expired = [
            thread_id
            for thread_id, entry in self._entries.items()
            if entry.last_seen < cutoff
            and entry.pins == 0
            and not entry.lock.locked()
        ]
        for thread_id in expired:
            del self._entries[thread_id]

        if expired:
            sessions_evicted_total.inc(len(expired))
            sessions_active.set(len(self._entries))
            logger.info(
                "sessions_purged",
                purged=len(expired),
                remaining=len(self._entries),
                idle_ttl_seconds=self._idle_ttl_seconds,
            )
        return len(expired)


class SessionReaper:
    """
    Background task that purges idle sessions on a fixed interval.
    """

    def __init__(self, store: SessionStore, interval_seconds: float) -> None:
        self.store = store
        self.interval = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self.total_purged = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="session-reaper")
        logger.info("session_reaper_started", interval_seconds=self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("session_reaper_stopped", total_purged=self.total_purged)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.total_purged += self.store.purge_idle()
            except Exception as e:
                logger.error("session_reaper_failed", error=str(e), exc_info=True)
