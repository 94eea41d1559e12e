from __future__ import annotations

import logging
import time
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, TextIO

from colorama import Fore, Style

from lyricsync.config import AppConfig
from lyricsync.errors import LyricsNotFound
from lyricsync.lyrics.model import LOADING_MARKER, LyricSet, TrackIdentity
from lyricsync.sources.service import LyricsOrchestrator
from lyricsync.sync.tracker import LineTracker

logger = logging.getLogger(__name__)

TAIL_S = 2.0


def format_line(lyric_set: LyricSet, idx: int | None, in_interlude: bool) -> str:
    if idx is None:
        return f"{Style.DIM}{LOADING_MARKER}{Style.RESET_ALL}" if in_interlude else ""
    line = lyric_set.lines[idx]
    if line.is_placeholder:
        return f"{Style.DIM}{LOADING_MARKER}{Style.RESET_ALL}"
    return f"{Fore.GREEN}{Style.BRIGHT}{line.text}{Style.RESET_ALL}"


def play(
    lyric_set: LyricSet,
    cfg: AppConfig,
    out: TextIO,
    *,
    start: float = 0.0,
    speed: float = 1.0,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Drive a LineTracker from a simulated playback clock and print every line
    change. Returns the number of changes printed.
    """
    tracker = LineTracker(
        lyric_set,
        tolerance=cfg.sync_tolerance_s,
        interlude_gap=cfg.interlude_gap_s,
    )
    if not lyric_set.lines:
        return 0

    end = max(line.end_time for line in lyric_set.lines) + TAIL_S
    tick_s = 1.0 / max(cfg.refresh_hz, 1.0)
    t0 = clock()
    printed = 0

    while True:
        position = start + (clock() - t0) * speed
        if position > end:
            break
        frame = tracker.update(position)
        text = format_line(lyric_set, frame.index, frame.in_interlude) if frame.changed else ""
        if text:
            out.write(f"{Style.DIM}[{position:7.2f}]{Style.RESET_ALL} {text}\n")
            out.flush()
            printed += 1
        sleep(tick_s)
    return printed


def watch(
    cfg: AppConfig,
    identity: TrackIdentity,
    out: TextIO,
    *,
    start: float = 0.0,
    speed: float = 1.0,
) -> int:
    """Resolve lyrics for one track, then play them back against a simulated clock."""
    with LyricsOrchestrator.from_config(cfg) as orchestrator:
        try:
            lyric_set = orchestrator.resolve(identity, timeout=cfg.fetch_timeout_s * 6)
        except LyricsNotFound:
            out.write(f"{Fore.YELLOW}No lyrics found for {identity.display}{Style.RESET_ALL}\n")
            return 1
        except FutureTimeout:
            out.write(f"{Fore.YELLOW}Timed out looking up lyrics for {identity.display}{Style.RESET_ALL}\n")
            return 1

    if lyric_set is None:
        return 1

    header = f"{Fore.CYAN}{Style.BRIGHT}{identity.display}{Style.RESET_ALL}"
    if not lyric_set.synced:
        header += f" {Fore.YELLOW}[unsynced]{Style.RESET_ALL}"
    out.write(f"{header} ({lyric_set.source})\n")

    try:
        play(lyric_set, cfg, out, start=start, speed=speed)
    except KeyboardInterrupt:
        logger.debug("Playback interrupted")
    return 0
