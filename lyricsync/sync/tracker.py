from __future__ import annotations

from dataclasses import dataclass

from lyricsync.lyrics.model import LyricLine, LyricSet

DEFAULT_TOLERANCE_S = 3.5
DEFAULT_INTERLUDE_GAP_S = 5.0
# earliest position a look-ahead window may open at
MIN_WINDOW_START_S = 0.5


def _window_start(line: LyricLine, tolerance: float) -> float:
    return max(line.start_time - tolerance, min(line.start_time, MIN_WINDOW_START_S))


def active_index(lyric_set: LyricSet, position: float, tolerance: float = DEFAULT_TOLERANCE_S) -> int | None:
    """
    Index of the first line with position in [start - tolerance, end).

    The look-ahead only moves the lower bound: a line may light up early but
    never lingers past its end. Near the start of the song the lower bound
    is clamped to MIN_WINDOW_START_S (or the line's own start, if earlier),
    so nothing is shown at 0 s before the first line. The clamp is
    continuous in the line start: a line at 3.4 s opens at 0.5 s, one at
    3.6 s opens at 0.5 s too, and one at 4.5 s opens at 1.0 s.
    """
    for i, line in enumerate(lyric_set.lines):
        if _window_start(line, tolerance) <= position < line.end_time:
            return i
    return None


def is_interlude(a: LyricLine, b: LyricLine, min_gap: float = DEFAULT_INTERLUDE_GAP_S) -> bool:
    return b.start_time - a.end_time >= min_gap


@dataclass(frozen=True, slots=True)
class SyncFrame:
    index: int | None
    changed: bool
    in_interlude: bool


class LineTracker:
    """
    Maps a playback position onto the active line of one LyricSet snapshot.

    Pure computation, meant to be polled by the render loop; `update` reports
    whether the active line moved since the previous call.
    """

    def __init__(
        self,
        lyric_set: LyricSet,
        *,
        tolerance: float = DEFAULT_TOLERANCE_S,
        interlude_gap: float = DEFAULT_INTERLUDE_GAP_S,
    ):
        self.lyric_set = lyric_set
        self.tolerance = tolerance
        self.interlude_gap = interlude_gap
        self.last_idx: int | None = None
        self._started = False

    def current_index(self, position: float) -> int | None:
        return active_index(self.lyric_set, position, self.tolerance)

    def changed_index(self, position: float) -> int | None:
        frame = self.update(position)
        return frame.index if frame.changed else None

    def update(self, position: float) -> SyncFrame:
        idx = self.current_index(position)
        changed = not self._started or idx != self.last_idx
        self._started = True
        self.last_idx = idx
        return SyncFrame(index=idx, changed=changed, in_interlude=self._in_interlude(idx, position))

    def _in_interlude(self, idx: int | None, position: float) -> bool:
        lines = self.lyric_set.lines
        if not lines:
            return False
        if idx is not None:
            return lines[idx].is_placeholder
        prev: LyricLine | None = None
        nxt: LyricLine | None = None
        for line in lines:
            if line.start_time > position:
                nxt = line
                break
            prev = line
        if prev is None or nxt is None:
            # before the first line or after the last one
            return True
        return is_interlude(prev, nxt, self.interlude_gap)

    @property
    def current_line(self) -> LyricLine | None:
        if self.last_idx is None:
            return None
        return self.lyric_set.lines[self.last_idx]

    def word_progress(self, position: float) -> list[float]:
        line = self.current_line
        if line is None:
            return []
        return [w.progress(position) for w in line.words]
