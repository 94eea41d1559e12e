from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from lyricsync.lyrics.model import LyricSet

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 50
DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_TTL_S = 24 * 3600.0
# shorter so lyrics published later for the song are still picked up
DEFAULT_NOT_FOUND_TTL_S = 6 * 3600.0

_ENTRY_OVERHEAD = 128
_LINE_OVERHEAD = 64
_WORD_OVERHEAD = 48


def estimate_size(lyric_set: LyricSet | None) -> int:
    """Rough in-memory footprint in bytes; only used for the cache bound."""
    if lyric_set is None:
        return _ENTRY_OVERHEAD
    size = _ENTRY_OVERHEAD
    for line in lyric_set.lines:
        size += _LINE_OVERHEAD + len(line.text.encode("utf-8"))
        for w in line.words:
            size += _WORD_OVERHEAD + len(w.text.encode("utf-8"))
    return size


@dataclass(frozen=True, slots=True)
class CacheEntry:
    lyric_set: LyricSet | None
    fetched_at: float
    size: int

    @property
    def is_not_found(self) -> bool:
        return self.lyric_set is None

    def is_expired(self, now: float, ttl_s: float) -> bool:
        return now - self.fetched_at > ttl_s


class LyricsCache:
    """
    Volatile key -> LyricSet store bounded by entry count and estimated size.

    Least recently used entries are evicted first. Expiry is lazy: an expired
    entry is reported as a miss but stays until evicted or overwritten.
    """

    def __init__(
        self,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_bytes: int = DEFAULT_MAX_BYTES,
        ttl_s: float = DEFAULT_TTL_S,
        not_found_ttl_s: float = DEFAULT_NOT_FOUND_TTL_S,
        clock: Callable[[], float] = time.time,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self.max_bytes = max_bytes
        self.ttl_s = ttl_s
        self.not_found_ttl_s = not_found_ttl_s
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._bytes = 0
        self._lock = threading.Lock()

    def _ttl_for(self, entry: CacheEntry) -> float:
        return self.not_found_ttl_s if entry.is_not_found else self.ttl_s

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock(), self._ttl_for(entry)):
                return None
            self._entries.move_to_end(key)
            return entry

    def is_warm(self, key: str) -> bool:
        return self.get(key) is not None

    def put(self, key: str, lyric_set: LyricSet) -> None:
        self._store(key, lyric_set)

    def put_not_found(self, key: str) -> None:
        self._store(key, None)

    def _store(self, key: str, lyric_set: LyricSet | None) -> None:
        size = estimate_size(lyric_set)
        if size > self.max_bytes:
            logger.warning("Not caching %s: %s bytes exceeds cache limit", key, size)
            return
        entry = CacheEntry(lyric_set=lyric_set, fetched_at=self._clock(), size=size)
        with self._lock:
            old = self._entries.pop(key, None)
            if old is not None:
                self._bytes -= old.size
            while self._entries and (
                len(self._entries) >= self.max_entries or self._bytes + size > self.max_bytes
            ):
                evicted_key, evicted = self._entries.popitem(last=False)
                self._bytes -= evicted.size
                logger.debug("Evicted %s from lyrics cache", evicted_key)
            self._entries[key] = entry
            self._bytes += size

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._bytes = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._bytes
