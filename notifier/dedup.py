"""Bounded, time-expiring in-memory cache of processed webhook events.

Prevents the same GitHub delivery from producing two chat notifications.
Entries live in process memory only; a restart forgets everything.

Expiry is handled by a periodic sweep rather than on read: an entry that is
past its expiration window but not yet swept still counts as a duplicate.
"""

import asyncio
import logging
import threading
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict

from notifier.logger import with_fields
from notifier.models import ParsedEvent, PushDetails

DEFAULT_MAX_ENTRIES = 10_000
DEFAULT_EXPIRATION_SECONDS = 24 * 60 * 60
DEFAULT_CLEANUP_INTERVAL_SECONDS = 60 * 60

# Eviction trims the cache down to this fraction of max_entries.
EVICTION_TARGET_RATIO = 0.9


class EventEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str
    event_type: str
    repository: str
    timestamp: datetime
    processed: bool = True


class CacheStats(BaseModel):
    size: int
    max_size: int
    oldest_entry: datetime | None = None


def make_event_key(event: ParsedEvent) -> str:
    key = f"{event.event_type}:{event.event_id}:{event.repository}"
    if isinstance(event.details, PushDetails) and event.details.head_commit:
        key += f":{event.details.head_commit.id}"
    return key


class EventCache:
    def __init__(
        self,
        logger: logging.Logger,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        expiration_seconds: float = DEFAULT_EXPIRATION_SECONDS,
        cleanup_interval_seconds: float | None = DEFAULT_CLEANUP_INTERVAL_SECONDS,
    ):
        self._logger = logger
        self._entries: dict[str, EventEntry] = {}  # key -> entry, insertion ordered
        self._max_entries = max_entries
        self._expiration = timedelta(seconds=expiration_seconds)
        self._cleanup_interval = cleanup_interval_seconds
        self._lock = threading.Lock()
        self._sweep_task: asyncio.Task | None = None

    # -- lookups and inserts (callers hold self._lock) ----------------------

    def _lookup(self, key: str, event: ParsedEvent) -> bool:
        existing = self._entries.get(key)
        if existing is None:
            return False

        self._logger.debug(
            "Duplicate event detected",
            extra=with_fields(
                event_id=event.event_id,
                event_type=event.event_type,
                repository=event.repository,
                original_timestamp=existing.timestamp.isoformat(),
                current_timestamp=event.timestamp.isoformat(),
            ),
        )
        return True

    def _insert(self, key: str, event: ParsedEvent) -> None:
        self._entries[key] = EventEntry(
            event_id=event.event_id,
            event_type=event.event_type,
            repository=event.repository,
            timestamp=event.timestamp,
        )
        if len(self._entries) > self._max_entries:
            self._evict_oldest()

        self._logger.debug(
            "Event marked as processed",
            extra=with_fields(
                event_id=event.event_id,
                event_type=event.event_type,
                repository=event.repository,
                cache_size=len(self._entries),
            ),
        )

    def _evict_oldest(self) -> None:
        ordered = sorted(self._entries.items(), key=lambda item: item[1].timestamp)
        target_size = int(self._max_entries * EVICTION_TARGET_RATIO)
        count = max(1, len(self._entries) - target_size)

        for key, _ in ordered[:count]:
            del self._entries[key]

        self._logger.debug(
            "Evicted oldest event entries",
            extra=with_fields(evicted=count, remaining=len(self._entries)),
        )

    # -- public API ----------------------------------------------------------

    def is_duplicate(self, event: ParsedEvent) -> bool:
        with self._lock:
            return self._lookup(make_event_key(event), event)

    def mark_as_processed(self, event: ParsedEvent) -> None:
        with self._lock:
            self._insert(make_event_key(event), event)

    def check_and_mark_processed(self, event: ParsedEvent) -> bool:
        """Return True if already seen, otherwise mark and return False."""
        key = make_event_key(event)
        with self._lock:
            if self._lookup(key, event):
                return True
            self._insert(key, event)
            return False

    def cleanup_expired(self, now: datetime | None = None) -> int:
        """Drop every entry older than the expiration window."""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            expired = [
                key
                for key, entry in self._entries.items()
                if now - entry.timestamp > self._expiration
            ]
            for key in expired:
                del self._entries[key]
            remaining = len(self._entries)

        if expired:
            self._logger.debug(
                "Cleaned up expired event entries",
                extra=with_fields(expired=len(expired), remaining=remaining),
            )
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            oldest = min((e.timestamp for e in self._entries.values()), default=None)
            return CacheStats(
                size=len(self._entries),
                max_size=self._max_entries,
                oldest_entry=oldest,
            )

    @property
    def size(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    # -- lifecycle -----------------------------------------------------------

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval)
            try:
                self.cleanup_expired()
            except Exception:
                self._logger.exception("Dedup sweep failed")

    def start(self) -> None:
        """Schedule the periodic expiry sweep on the running event loop."""
        if self._cleanup_interval is None or self._sweep_task is not None:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="dedup-sweep")
        self._logger.debug(
            "Dedup sweep started",
            extra=with_fields(interval_seconds=self._cleanup_interval),
        )

    @property
    def sweeping(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def destroy(self) -> None:
        """Cancel the periodic sweep and forget every entry."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            self._sweep_task = None
        self.clear()

    async def stop(self) -> None:
        """Like ``destroy``, but also wait for the sweep task to finish."""
        task = self._sweep_task
        self.destroy()
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
