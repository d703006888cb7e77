"""In-memory cache of resolved title searches.

Entries are keyed by the original search string. Expiry is pull-based: nothing
is purged until ``sweep`` is called.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from clipstage.schemas.clip import ClipDescriptor

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    clip: ClipDescriptor
    search_frequency: int
    last_accessed: float


class ClipCache:
    """Thread-safe search cache with access-time expiration."""

    def __init__(
        self,
        expiration_seconds: float = 30 * 86400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._expiration = expiration_seconds
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> ClipDescriptor | None:
        """Return the cached clip and record the access, or None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            entry.last_accessed = self._clock()
            entry.search_frequency += 1
            return entry.clip

    def entry(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, clip: ClipDescriptor) -> None:
        with self._lock:
            existing = self._entries.get(key)
            now = self._clock()
            if existing is None:
                self._entries[key] = CacheEntry(clip=clip, search_frequency=1, last_accessed=now)
            else:
                # Superseded, not edited
                existing.clip = clip
                existing.last_accessed = now

    def sweep(self, now: float | None = None) -> int:
        """Purge entries idle longer than the expiration. Returns the purge count."""
        with self._lock:
            now = self._clock() if now is None else now
            expired = [
                key for key, entry in self._entries.items() if now - entry.last_accessed > self._expiration
            ]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"Clip cache sweep purged {len(expired)} entries")
        return len(expired)
