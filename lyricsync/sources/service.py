from __future__ import annotations

import enum
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

import requests

from lyricsync.cache.memory import LyricsCache
from lyricsync.config import AppConfig
from lyricsync.errors import LyricsNotFound, ProviderError
from lyricsync.lyrics.model import LyricSet, LyricsFormat, TrackIdentity
from lyricsync.lyrics.parse import parse_source
from lyricsync.lyrics.process import finalize
from lyricsync.quality.scorer import Candidate, make_candidate, select_best

from .amll import AmllSource
from .base import LyricsSource
from .itunes import ITunesClient
from .lrclib import LrcLibSource
from .lyrics_ovh import LyricsOvhSource
from .matching import contains_cjk
from .netease import NetEaseSource
from .qqmusic import QQMusicSource

logger = logging.getLogger(__name__)

PRIORITY_HEAD = ("amll",)
PRIORITY_CJK = ("qqmusic", "netease", "lrclib")
PRIORITY_OTHER = ("lrclib", "qqmusic", "netease")
PRIORITY_TAIL = ("lyrics_ovh",)


class Strategy(str, enum.Enum):
    PARALLEL = "parallel"
    PRIORITY = "priority"


class LyricsStatus(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    FOUND = "found"
    NOT_FOUND = "not_found"


@dataclass(frozen=True, slots=True)
class LyricsState:
    status: LyricsStatus
    identity: TrackIdentity | None = None
    lyric_set: LyricSet | None = None
    source: str | None = None


Listener = Callable[[LyricsState], None]


def build_sources(cfg: AppConfig, session: requests.Session | None = None) -> list[LyricsSource]:
    http = dict(
        timeout_s=cfg.fetch_timeout_s,
        min_interval_s=cfg.api_min_interval_s,
        max_retries=cfg.api_max_retries,
        backoff_base_s=cfg.api_backoff_base_s,
        user_agent=cfg.user_agent,
        session=session,
    )
    itunes: ITunesClient | None = None

    def shared_itunes() -> ITunesClient:
        nonlocal itunes
        if itunes is None:
            itunes = ITunesClient(**http)
        return itunes

    out: list[LyricsSource] = []
    for s in cfg.sources:
        name = s.strip().lower()
        if name == "amll":
            out.append(AmllSource(itunes=shared_itunes(), **http))
        elif name == "lrclib":
            out.append(LrcLibSource(**http))
        elif name in ("netease", "ncm"):
            out.append(NetEaseSource(**http))
        elif name in ("qqmusic", "qq"):
            out.append(QQMusicSource(itunes=shared_itunes(), **http))
        elif name in ("lyrics_ovh", "lyrics.ovh", "ovh"):
            out.append(LyricsOvhSource(**http))
        else:
            logger.info("Unknown source '%s' in config, skipping", s)
    return out


def priority_order(sources: Sequence[LyricsSource], identity: TrackIdentity) -> list[LyricsSource]:
    middle = PRIORITY_CJK if contains_cjk(identity.title) or contains_cjk(identity.artist) else PRIORITY_OTHER
    order = (*PRIORITY_HEAD, *middle, *PRIORITY_TAIL)
    by_name = {src.name: src for src in sources}
    ranked = [by_name[n] for n in order if n in by_name]
    return ranked + [src for src in sources if src.name not in order]


class LyricsOrchestrator:
    """
    Resolves lyrics for the current track: cache first, then providers
    (priority walk or parallel fan-out), then scoring and selection.

    State changes are published to listeners and kept in `state`. A result
    whose identity is no longer current is cached but not published.
    """

    def __init__(
        self,
        sources: Sequence[LyricsSource],
        cache: LyricsCache,
        *,
        strategy: Strategy = Strategy.PARALLEL,
        fetch_timeout_s: float = 10.0,
        preload_delay_s: float = 0.5,
        max_workers: int = 4,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.sources = list(sources)
        self.cache = cache
        self.strategy = Strategy(strategy)
        self.fetch_timeout_s = fetch_timeout_s
        self.preload_delay_s = preload_delay_s
        self._clock = clock
        self._sleep = sleep

        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="lyrics")
        self._fetch_pool = ThreadPoolExecutor(
            max_workers=max(len(self.sources) * 2, 2), thread_name_prefix="lyrics-src"
        )
        self._preload_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="lyrics-preload")

        self._lock = threading.Lock()
        self._inflight: dict[str, Future[LyricsState]] = {}
        self._current_key: str | None = None
        self._state = LyricsState(LyricsStatus.IDLE)
        self._listeners: list[Listener] = []
        self._closed = False

    @classmethod
    def from_config(
        cls,
        cfg: AppConfig,
        *,
        sources: Sequence[LyricsSource] | None = None,
        session: requests.Session | None = None,
    ) -> "LyricsOrchestrator":
        if sources is None:
            sources = build_sources(cfg, session=session)
        cache = LyricsCache(
            max_entries=cfg.cache_max_entries,
            max_bytes=cfg.cache_max_bytes,
            ttl_s=cfg.cache_ttl_s,
            not_found_ttl_s=cfg.not_found_ttl_s,
        )
        return cls(
            sources,
            cache,
            strategy=Strategy(cfg.strategy),
            fetch_timeout_s=cfg.fetch_timeout_s,
            preload_delay_s=cfg.preload_delay_s,
        )

    # ---- state ----

    @property
    def state(self) -> LyricsState:
        with self._lock:
            return self._state

    @property
    def current_key(self) -> str | None:
        with self._lock:
            return self._current_key

    def add_listener(self, callback: Listener) -> None:
        with self._lock:
            self._listeners.append(callback)

    def remove_listener(self, callback: Listener) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def _notify(self, state: LyricsState) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for cb in listeners:
            try:
                cb(state)
            except Exception:
                logger.exception("Lyrics listener failed")

    def _retained_set(self, key: str) -> LyricSet | None:
        """The displayed set survives a refresh or a miss only for the same song."""
        prev = self._state
        if prev.identity is not None and prev.identity.key == key:
            return prev.lyric_set
        return None

    def _state_for(self, identity: TrackIdentity, lyric_set: LyricSet | None) -> LyricsState:
        if lyric_set is not None and len(lyric_set):
            return LyricsState(LyricsStatus.FOUND, identity, lyric_set, lyric_set.source)
        return LyricsState(LyricsStatus.NOT_FOUND, identity, self._retained_set(identity.key), None)

    # ---- requests ----

    def request(self, identity: TrackIdentity, force_refresh: bool = False) -> Future[LyricsState]:
        """
        Make `identity` current and start resolving it. The returned future
        completes with the resolved state; a cache hit completes immediately.
        """
        key = identity.key
        if self._closed:
            raise RuntimeError("orchestrator is closed")

        if not force_refresh:
            entry = self.cache.get(key)
            if entry is not None:
                with self._lock:
                    self._current_key = key
                    state = self._state_for(identity, entry.lyric_set)
                    self._state = state
                logger.debug("Cache hit for %s (%s)", identity.display, state.status.value)
                self._notify(state)
                done: Future[LyricsState] = Future()
                done.set_result(state)
                return done

        with self._lock:
            self._current_key = key
            fut = self._inflight.get(key)
            if fut is None:
                fut = self._executor.submit(self._run, identity)
                self._inflight[key] = fut
            else:
                logger.debug("Joining in-flight lookup for %s", identity.display)
            loading = LyricsState(LyricsStatus.LOADING, identity, self._retained_set(key), None)
            self._state = loading
        self._notify(loading)
        return fut

    def resolve(
        self,
        identity: TrackIdentity,
        force_refresh: bool = False,
        timeout: float | None = None,
    ) -> LyricSet | None:
        """
        Blocking lookup. Returns None when a newer identity took over while
        this one was loading.
        """
        state = self.request(identity, force_refresh=force_refresh).result(timeout=timeout)
        if self.current_key != identity.key:
            return None
        if state.status is LyricsStatus.NOT_FOUND:
            raise LyricsNotFound(f"No lyrics for {identity.display}")
        return state.lyric_set

    def _run(self, identity: TrackIdentity) -> LyricsState:
        key = identity.key
        started = self._clock()
        try:
            lyric_set = self.acquire(identity)
        except Exception:
            logger.exception("Lyrics acquisition failed for %s", identity.display)
            lyric_set = None

        if lyric_set is not None and len(lyric_set):
            self.cache.put(key, lyric_set)
        else:
            lyric_set = None
            self.cache.put_not_found(key)

        with self._lock:
            self._inflight.pop(key, None)
            state = self._state_for(identity, lyric_set)
            is_current = self._current_key == key
            if is_current:
                self._state = state

        elapsed = self._clock() - started
        if not is_current:
            logger.info("Discarding stale result for %s (%.2fs)", identity.display, elapsed)
            return state
        if state.status is LyricsStatus.FOUND:
            logger.info("Lyrics for %s from %s (%.2fs)", identity.display, state.source, elapsed)
        else:
            logger.info("No lyrics for %s (%.2fs)", identity.display, elapsed)
        self._notify(state)
        return state

    # ---- acquisition ----

    def acquire(self, identity: TrackIdentity) -> LyricSet | None:
        """Query providers and build the final set; no cache, no publishing."""
        if not self.sources:
            logger.warning("No lyrics sources configured")
            return None
        if self.strategy is Strategy.PRIORITY:
            best = self._fetch_priority(identity)
        else:
            best = self._fetch_parallel(identity)
        if best is None:
            return None
        lyric_set = finalize(best.lines, source=best.provider, synced=best.format is not LyricsFormat.PLAIN)
        return lyric_set if len(lyric_set) else None

    def _candidate_from(self, src: LyricsSource, identity: TrackIdentity) -> Candidate | None:
        try:
            result = src.fetch(identity)
        except ProviderError as e:
            logger.warning("%s failed for %s: %s", src.name, identity.display, e)
            return None
        except Exception:
            logger.exception("%s raised while fetching %s", src.name, identity.display)
            return None
        if result is None or not result.raw_text.strip():
            return None

        try:
            lines = parse_source(result, identity.duration_s)
            if not lines:
                logger.info("%s returned unparseable %s content", src.name, result.format.value)
                return None
            return make_candidate(result.provider, result.format, lines, identity.duration_s)
        except Exception:
            logger.exception("%s returned %s content that could not be scored", src.name, result.format.value)
            return None

    def _fetch_priority(self, identity: TrackIdentity) -> Candidate | None:
        fallbacks: list[Candidate] = []
        for src in priority_order(self.sources, identity):
            fut = self._fetch_pool.submit(self._candidate_from, src, identity)
            try:
                cand = fut.result(timeout=self.fetch_timeout_s)
            except FutureTimeout:
                logger.warning("%s timed out after %.1fs", src.name, self.fetch_timeout_s)
                continue
            if cand is None:
                continue
            if cand.is_valid:
                logger.info("Using %s (score=%.1f)", cand.provider, cand.score)
                return cand
            logger.info("%s failed validation (%s), trying next", cand.provider, ", ".join(cand.report.issues))
            fallbacks.append(cand)
        return select_best(fallbacks)

    def _fetch_parallel(self, identity: TrackIdentity) -> Candidate | None:
        futures = {self._fetch_pool.submit(self._candidate_from, src, identity): src for src in self.sources}
        done, pending = wait(futures, timeout=self.fetch_timeout_s)
        for fut in pending:
            logger.warning("%s timed out after %.1fs", futures[fut].name, self.fetch_timeout_s)

        candidates = [c for c in (fut.result() for fut in done) if c is not None]
        logger.debug("%s candidate(s) for %s", len(candidates), identity.display)
        return select_best(candidates)

    # ---- preload ----

    def preload(self, identities: Iterable[TrackIdentity]) -> Future[int]:
        """
        Warm the cache for upcoming tracks, one at a time. Resolves to the
        number of network lookups performed.
        """
        items = list(identities)
        return self._preload_pool.submit(self._preload, items)

    def _preload(self, items: list[TrackIdentity]) -> int:
        fetched = 0
        for identity in items:
            if self._closed:
                break
            key = identity.key
            if self.cache.is_warm(key):
                logger.debug("Preload: %s already cached", identity.display)
                continue

            with self._lock:
                if key in self._inflight:
                    logger.debug("Preload: %s already loading", identity.display)
                    continue
                flight: Future[LyricsState] = Future()
                self._inflight[key] = flight

            if fetched and self.preload_delay_s > 0:
                self._sleep(self.preload_delay_s)
            logger.info("Preloading lyrics for %s", identity.display)
            try:
                state = self._run(identity)
            except BaseException as e:
                with self._lock:
                    self._inflight.pop(key, None)
                flight.set_exception(e)
                raise
            flight.set_result(state)
            fetched += 1
        return fetched

    def close(self) -> None:
        self._closed = True
        self._preload_pool.shutdown(wait=False, cancel_futures=True)
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._fetch_pool.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "LyricsOrchestrator":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
