from __future__ import annotations

import logging
from typing import Sequence

from .model import LyricLine, LyricSet, make_placeholder

logger = logging.getLogger(__name__)

METADATA_MAX_DURATION_S = 3.0
METADATA_GRACE_S = 3.0
TITLE_SEPARATOR_MAX_LEN = 50
MISSING_END_FALLBACK_S = 10.0

_COLONS = (":", "：")


def _has_colon(text: str) -> bool:
    return any(c in text for c in _COLONS)


def is_metadata_like(line: LyricLine) -> bool:
    """Credits such as "作词 : X", "Composer: Y" or "Artist - Title" headers."""
    text = line.text.strip()
    if not text:
        return True
    if line.duration < METADATA_MAX_DURATION_S and _has_colon(text):
        return True
    return " - " in text and len(text) < TITLE_SEPARATOR_MAX_LEN


def filter_metadata_lines(lines: Sequence[LyricLine]) -> list[LyricLine]:
    """
    Drop the credit block some providers put in front of the lyrics.

    Only lines before the first real lyric are candidates; after that, short
    colon-bearing lines starting within METADATA_GRACE_S of the last dropped
    line are still treated as trailing credits.
    """
    kept: list[LyricLine] = []
    found_real = False
    metadata_end: float | None = None

    for line in lines:
        if not found_real:
            if is_metadata_like(line):
                metadata_end = line.end_time
                continue
            found_real = True
            kept.append(line)
            continue

        if (
            metadata_end is not None
            and line.start_time < metadata_end + METADATA_GRACE_S
            and line.duration < METADATA_MAX_DURATION_S
            and _has_colon(line.text)
        ):
            metadata_end = max(metadata_end, line.end_time)
            continue
        kept.append(line)

    if not kept:
        return list(lines)
    return kept


def repair_end_times(lines: Sequence[LyricLine]) -> list[LyricLine]:
    out: list[LyricLine] = []
    for i, line in enumerate(lines):
        if line.end_time > line.start_time:
            out.append(line)
            continue
        next_start = line.start_time + MISSING_END_FALLBACK_S
        for later in lines[i + 1 :]:
            if later.start_time > line.start_time:
                next_start = later.start_time
                break
        out.append(LyricLine(text=line.text, start_time=line.start_time, end_time=next_start, words=line.words))
    return out


def finalize(lines: Sequence[LyricLine], *, source: str | None, synced: bool = True) -> LyricSet:
    """Filter credits, repair end times and prepend the loading placeholder."""
    real = repair_end_times(filter_metadata_lines(lines))
    if not real:
        return LyricSet(lines=(), source=source, synced=synced)
    dropped = len(lines) - len(real)
    if dropped:
        logger.debug("Dropped %s leading metadata line(s) from %s", dropped, source)
    placeholder = make_placeholder(real[0].start_time)
    return LyricSet(lines=(placeholder, *real), source=source, synced=synced)
