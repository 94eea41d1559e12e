from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from lyricsync.lyrics.model import LyricLine, LyricSet, LyricsFormat
from lyricsync.lyrics.process import filter_metadata_lines

logger = logging.getLogger(__name__)

REVERSE_TOLERANCE_S = 0.1
OVERLAP_TOLERANCE_S = 0.5
SHORT_LINE_S = 0.5
MIN_REAL_LINES = 3

# Thresholds are lenient: repeated choruses and harmonies trip them legitimately.
MAX_REVERSE_RATIO = 0.25
MAX_OVERLAP_RATIO = 0.20
MAX_SHORT_RATIO = 0.30

WORD_SYNC_WEIGHT = 30.0
QUALITY_WEIGHT = 30.0
LINE_COUNT_CAP = 15.0
LINE_COUNT_STEP = 0.5
COVERAGE_WEIGHT = 15.0

PROVIDER_BONUS: dict[str, float] = {
    "amll": 10.0,
    "netease": 8.0,
    "qqmusic": 6.0,
    "lrclib": 5.0,
    "lyrics_ovh": 0.0,
}

_ELLIPSES = {"", "...", "…", "⋯", "。。。", "···", "・・・"}


@dataclass(frozen=True, slots=True)
class QualityReport:
    total_lines: int
    reverse_count: int
    overlap_count: int
    short_count: int
    quality_score: float
    is_valid: bool
    issues: tuple[str, ...] = ()

    @property
    def reverse_ratio(self) -> float:
        return self.reverse_count / self.total_lines if self.total_lines else 0.0

    @property
    def overlap_ratio(self) -> float:
        return self.overlap_count / self.total_lines if self.total_lines else 0.0

    @property
    def short_ratio(self) -> float:
        return self.short_count / self.total_lines if self.total_lines else 0.0


def _lines_of(lyrics: LyricSet | Sequence[LyricLine]) -> Sequence[LyricLine]:
    if isinstance(lyrics, LyricSet):
        return lyrics.lines
    return lyrics


def real_lines(lyrics: LyricSet | Sequence[LyricLine]) -> list[LyricLine]:
    lines = [ln for ln in _lines_of(lyrics) if not ln.is_placeholder and ln.text.strip() not in _ELLIPSES]
    if not lines:
        return []
    return filter_metadata_lines(lines)


def analyze(lyrics: LyricSet | Sequence[LyricLine]) -> QualityReport:
    lines = real_lines(lyrics)
    total = len(lines)
    if total == 0:
        return QualityReport(0, 0, 0, 0, 0.0, False, ("no lyric lines",))

    reverse = overlap = short = 0
    for i, cur in enumerate(lines):
        if cur.duration < SHORT_LINE_S:
            short += 1
        if i == 0:
            continue
        prev = lines[i - 1]
        if cur.start_time < prev.start_time - REVERSE_TOLERANCE_S:
            reverse += 1
        if cur.start_time < prev.end_time - OVERLAP_TOLERANCE_S:
            overlap += 1

    reverse_ratio = reverse / total
    overlap_ratio = overlap / total
    short_ratio = short / total
    quality = max(0.0, 100.0 - reverse_ratio * 300 - overlap_ratio * 200 - short_ratio * 100)

    issues: list[str] = []
    if total < MIN_REAL_LINES:
        issues.append(f"too few lines ({total})")
    if reverse_ratio > MAX_REVERSE_RATIO:
        issues.append(f"time reversals {reverse}/{total} ({reverse_ratio:.0%})")
    if overlap_ratio > MAX_OVERLAP_RATIO:
        issues.append(f"overlaps {overlap}/{total} ({overlap_ratio:.0%})")
    if short_ratio > MAX_SHORT_RATIO:
        issues.append(f"short lines {short}/{total} ({short_ratio:.0%})")

    return QualityReport(
        total_lines=total,
        reverse_count=reverse,
        overlap_count=overlap,
        short_count=short,
        quality_score=quality,
        is_valid=not issues,
        issues=tuple(issues),
    )


def provider_bonus(provider: str, fmt: LyricsFormat | None = None) -> float:
    if fmt is LyricsFormat.PLAIN:
        return 0.0
    return PROVIDER_BONUS.get(provider, 0.0)


def score(
    lyrics: LyricSet | Sequence[LyricLine],
    duration_s: float,
    provider: str,
    fmt: LyricsFormat | None = None,
    report: QualityReport | None = None,
) -> float:
    """Additive 0-100 score; see the weight constants above."""
    lines = real_lines(lyrics)
    if not lines:
        return 0.0
    if report is None:
        report = analyze(lyrics)
    if fmt is None and isinstance(lyrics, LyricSet) and not lyrics.synced:
        fmt = LyricsFormat.PLAIN

    word_sync = sum(1 for ln in lines if ln.has_word_sync) / len(lines) * WORD_SYNC_WEIGHT
    quality = report.quality_score / 100.0 * QUALITY_WEIGHT
    line_count = min(len(lines) * LINE_COUNT_STEP, LINE_COUNT_CAP)
    coverage = 0.0
    if duration_s > 0:
        last_end = max(ln.end_time for ln in lines)
        coverage = min(last_end / duration_s, 1.0) * COVERAGE_WEIGHT

    return word_sync + quality + line_count + coverage + provider_bonus(provider, fmt)


@dataclass(frozen=True, slots=True)
class Candidate:
    provider: str
    format: LyricsFormat
    lines: tuple[LyricLine, ...]
    score: float
    report: QualityReport = field(compare=False)

    @property
    def is_valid(self) -> bool:
        return self.report.is_valid


def make_candidate(provider: str, fmt: LyricsFormat, lines: Sequence[LyricLine], duration_s: float) -> Candidate:
    report = analyze(lines)
    value = score(lines, duration_s, provider, fmt, report=report)
    return Candidate(provider=provider, format=fmt, lines=tuple(lines), score=value, report=report)


def select_best(candidates: Iterable[Candidate]) -> Candidate | None:
    """
    Highest-scoring valid candidate, or the highest-scoring one overall when
    none passes validation.
    """
    ranked = sorted(candidates, key=lambda c: c.score, reverse=True)
    if not ranked:
        return None
    for c in ranked:
        logger.info(
            "Candidate %s (%s): score=%.1f valid=%s%s",
            c.provider,
            c.format.value,
            c.score,
            c.is_valid,
            f" issues={', '.join(c.report.issues)}" if c.report.issues else "",
        )
    for c in ranked:
        if c.is_valid:
            return c
    logger.info("No candidate passed validation, using best score from %s", ranked[0].provider)
    return ranked[0]
