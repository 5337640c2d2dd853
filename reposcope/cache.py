"""Content-addressed cache for parsed file summaries.

Entries are keyed by absolute file path and only served when the stored
content hash matches the current one.  Eviction is epoch-based: once the
cache is full, the least recently accessed ~20% of entries are dropped in
one pass instead of tracking strict LRU order on every access.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from hashlib import blake2b
from typing import Dict, Iterator, Optional, Tuple

from .config import DEFAULT_EVICTION_FRACTION, DEFAULT_MAX_CACHE_ENTRIES
from .models import CacheStats, ParsedFile

logger = logging.getLogger(__name__)


def hash_content(content: str) -> str:
    """Fast 128-bit digest of *content* used for cache invalidation."""
    return blake2b(content.encode("utf-8", errors="surrogatepass"), digest_size=16).hexdigest()


@dataclass
class _CacheEntry:
    file_path: str
    content_hash: str
    parsed: ParsedFile
    cached_at: str
    last_accessed_at: str
    last_access_tick: int
    access_count: int = 1


class ParseCache:
    """Thread-safe parse cache with hit/miss accounting.

    Callers that may parse the same file concurrently wrap the
    lookup-parse-store sequence in :meth:`key_lock` so a stale result can
    never overwrite a fresh one.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_CACHE_ENTRIES,
        eviction_fraction: float = DEFAULT_EVICTION_FRACTION,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.eviction_fraction = eviction_fraction
        self._entries: Dict[str, _CacheEntry] = {}
        # key -> (lock, callers holding or waiting on it)
        self._key_locks: Dict[str, Tuple[threading.Lock, int]] = {}
        self._lock = threading.Lock()
        self._tick = 0
        self.hit_count = 0
        self.miss_count = 0

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    @contextmanager
    def key_lock(self, key: str) -> Iterator[None]:
        """Serialize all cache work for one key.

        The per-key lock is dropped once its last caller leaves, so only
        keys with work in flight hold a lock.
        """
        with self._lock:
            lock, users = self._key_locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._key_locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._lock:
                lock, users = self._key_locks[key]
                if users <= 1:
                    del self._key_locks[key]
                else:
                    self._key_locks[key] = (lock, users - 1)

    # ------------------------------------------------------------------
    # Lookup / store
    # ------------------------------------------------------------------

    def lookup(self, key: str, content_hash: str) -> Optional[ParsedFile]:
        """Return the cached summary for *key* if its hash still matches.

        Counts one hit or one miss per call.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.content_hash == content_hash:
                self.hit_count += 1
                self._tick += 1
                entry.access_count += 1
                entry.last_access_tick = self._tick
                entry.last_accessed_at = datetime.now().isoformat()
                return entry.parsed
            self.miss_count += 1
            return None

    def store(self, key: str, content_hash: str, parsed: ParsedFile) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._evict_oldest()
            now = datetime.now().isoformat()
            self._tick += 1
            self._entries[key] = _CacheEntry(
                file_path=key,
                content_hash=content_hash,
                parsed=parsed,
                cached_at=now,
                last_accessed_at=now,
                last_access_tick=self._tick,
            )

    def _evict_oldest(self) -> None:
        # Caller holds self._lock.
        count = max(1, int(self.max_entries * self.eviction_fraction))
        oldest = sorted(self._entries.values(), key=lambda e: e.last_access_tick)[:count]
        for entry in oldest:
            del self._entries[entry.file_path]
        logger.debug("Evicted %d parse cache entries", len(oldest))

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Drop every entry and reset the counters."""
        with self._lock:
            self._entries.clear()
            self.hit_count = 0
            self.miss_count = 0
            self._tick = 0
        logger.info("Parse cache cleared")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def stats(self) -> CacheStats:
        with self._lock:
            entries = list(self._entries.values())
            total = self.hit_count + self.miss_count
            return CacheStats(
                total_entries=len(entries),
                hit_count=self.hit_count,
                miss_count=self.miss_count,
                hit_rate=self.hit_count / total if total else 0.0,
                oldest_entry=min((e.cached_at for e in entries), default=None),
                newest_entry=max((e.cached_at for e in entries), default=None),
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries
