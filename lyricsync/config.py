from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace

logger = logging.getLogger(__name__)

DEFAULT_SOURCES = ("amll", "lrclib", "netease", "qqmusic", "lyrics_ovh")
DEFAULT_USER_AGENT = "lyricsync/0.1 (+https://github.com/lyricsync/lyricsync)"


@dataclass(frozen=True)
class AppConfig:
    # Sources
    sources: tuple[str, ...]
    strategy: str  # "parallel" | "priority"
    fetch_timeout_s: float
    api_min_interval_s: float
    api_max_retries: int
    api_backoff_base_s: float
    user_agent: str

    # Cache
    cache_max_entries: int
    cache_max_bytes: int
    cache_ttl_s: float
    not_found_ttl_s: float

    # Preload
    preload_delay_s: float

    # Sync
    sync_tolerance_s: float
    interlude_gap_s: float
    refresh_hz: float

    def with_overrides(self, **changes) -> "AppConfig":
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid value for %s=%r, using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid value for %s=%r, using %s", name, raw, default)
        return default


def _env_strategy() -> str:
    raw = (os.getenv("LYRICSYNC_STRATEGY") or "parallel").strip().lower()
    if raw not in ("parallel", "priority"):
        logger.warning("Unknown strategy %r, using parallel", raw)
        return "parallel"
    return raw


def load_config() -> AppConfig:
    sources_env = os.getenv("LYRICSYNC_SOURCES")
    if sources_env:
        sources = tuple(s.strip().lower() for s in sources_env.split(",") if s.strip())
    else:
        sources = DEFAULT_SOURCES

    return AppConfig(
        sources=sources,
        strategy=_env_strategy(),
        fetch_timeout_s=_env_float("LYRICSYNC_FETCH_TIMEOUT", 10.0),
        api_min_interval_s=_env_float("LYRICSYNC_API_MIN_INTERVAL", 0.0),
        api_max_retries=max(_env_int("LYRICSYNC_API_MAX_RETRIES", 2), 1),
        api_backoff_base_s=_env_float("LYRICSYNC_API_BACKOFF_BASE", 0.5),
        user_agent=os.getenv("LYRICSYNC_USER_AGENT") or DEFAULT_USER_AGENT,
        cache_max_entries=max(_env_int("LYRICSYNC_CACHE_MAX_ENTRIES", 50), 1),
        cache_max_bytes=_env_int("LYRICSYNC_CACHE_MAX_BYTES", 10 * 1024 * 1024),
        cache_ttl_s=_env_float("LYRICSYNC_CACHE_TTL", 24 * 3600.0),
        not_found_ttl_s=_env_float("LYRICSYNC_NOT_FOUND_TTL", 6 * 3600.0),
        preload_delay_s=_env_float("LYRICSYNC_PRELOAD_DELAY", 0.5),
        sync_tolerance_s=_env_float("LYRICSYNC_SYNC_TOLERANCE", 3.5),
        interlude_gap_s=_env_float("LYRICSYNC_INTERLUDE_GAP", 5.0),
        refresh_hz=_env_float("LYRICSYNC_REFRESH_HZ", 20.0),
    )
