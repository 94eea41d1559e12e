from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterator

LOADING_MARKER = "⋯"


class LyricsFormat(str, enum.Enum):
    LRC = "lrc"
    TTML = "ttml"
    YRC = "yrc"
    PLAIN = "plain"


def _normalize(value: str) -> str:
    return " ".join((value or "").split()).casefold()


@dataclass(frozen=True, slots=True)
class TrackIdentity:
    title: str
    artist: str
    duration_s: float = 0.0

    @property
    def key(self) -> str:
        return f"{_normalize(self.title)}|{_normalize(self.artist)}"

    @property
    def display(self) -> str:
        if self.artist and self.title:
            return f"{self.artist} - {self.title}"
        return self.title or self.artist or "Unknown track"


@dataclass(frozen=True, slots=True)
class LyricWord:
    text: str
    start_time: float
    end_time: float

    def progress(self, now: float) -> float:
        """Fraction of the word already sung at `now`, in [0, 1]."""
        if self.end_time <= self.start_time:
            return 1.0 if now >= self.start_time else 0.0
        if now <= self.start_time:
            return 0.0
        if now >= self.end_time:
            return 1.0
        return (now - self.start_time) / (self.end_time - self.start_time)


@dataclass(frozen=True, slots=True)
class LyricLine:
    text: str
    start_time: float
    end_time: float
    words: tuple[LyricWord, ...] = ()

    @property
    def has_word_sync(self) -> bool:
        return bool(self.words)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def is_placeholder(self) -> bool:
        return self.text == LOADING_MARKER and not self.words


def make_placeholder(first_start: float) -> LyricLine:
    return LyricLine(text=LOADING_MARKER, start_time=0.0, end_time=max(first_start, 0.0))


@dataclass(frozen=True, slots=True)
class LyricSet:
    """
    Timed lines for one track, sorted by start time.

    Sets produced by the orchestrator are headed by the loading placeholder,
    so index 0 covers the intro and the first real lyric sits at index 1.
    """

    lines: tuple[LyricLine, ...]
    source: str | None = None
    synced: bool = True

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self) -> Iterator[LyricLine]:
        return iter(self.lines)

    def __getitem__(self, idx: int) -> LyricLine:
        return self.lines[idx]

    @property
    def has_placeholder(self) -> bool:
        return bool(self.lines) and self.lines[0].is_placeholder

    @property
    def first_real_index(self) -> int:
        return 1 if self.has_placeholder else 0

    @property
    def real_lines(self) -> tuple[LyricLine, ...]:
        return self.lines[self.first_real_index :]

    @property
    def has_word_sync(self) -> bool:
        return any(line.has_word_sync for line in self.lines)


@dataclass(frozen=True, slots=True)
class SourceResult:
    """Raw provider payload; lives only until it has been parsed and scored."""

    provider: str
    raw_text: str
    format: LyricsFormat
