from lyricsync.lyrics.model import LyricLine, LyricSet, LyricWord
from lyricsync.lyrics.parse import parse_lrc
from lyricsync.lyrics.process import finalize
from lyricsync.sync.tracker import LineTracker, active_index, is_interlude


def _set(*spans):
    return LyricSet(lines=tuple(LyricLine(text, s, e) for text, s, e in spans))


def test_tolerance_window_lower_bound_only():
    lyric_set = _set(("a", 10.0, 15.0), ("b", 15.0, 20.0))
    assert active_index(lyric_set, 6.6) == 0
    assert active_index(lyric_set, 6.4) is None
    assert active_index(lyric_set, 14.99) == 0
    # half-open upper bound
    assert active_index(lyric_set, 15.0) == 1
    assert active_index(lyric_set, 20.0) is None


def test_hello_world_scenario():
    lyric_set = LyricSet(lines=tuple(parse_lrc("[00:01.50]Hello\n[00:05.00]World")))
    assert active_index(lyric_set, 0.0) is None
    assert active_index(lyric_set, 1.5) == 0
    assert active_index(lyric_set, 4.9) == 0
    assert active_index(lyric_set, 5.0) == 1
    assert active_index(lyric_set, 10.0) is None


def test_is_interlude():
    a = LyricLine("a", 0.0, 5.0)
    assert is_interlude(a, LyricLine("b", 10.0, 12.0))
    assert not is_interlude(a, LyricLine("b", 9.9, 12.0))
    assert is_interlude(a, LyricLine("b", 8.0, 12.0), min_gap=3.0)


def test_tracker_changed_only_on_change():
    tr = LineTracker(_set(("a", 0.0, 1.0), ("b", 1.0, 2.0), ("c", 2.0, 3.0)))
    assert tr.changed_index(0.0) == 0
    assert tr.changed_index(0.01) is None
    assert tr.changed_index(0.999) is None
    assert tr.changed_index(1.0) == 1
    assert tr.changed_index(1.5) is None
    assert tr.changed_index(2.5) == 2


def test_tracker_seek_backwards():
    tr = LineTracker(_set(("a", 0.0, 1.0), ("b", 1.0, 2.0)))
    assert tr.update(1.5).index == 1
    frame = tr.update(0.5)
    assert frame.changed
    assert frame.index == 0
    assert tr.current_line.text == "a"


def test_tracker_interlude_frames():
    lyric_set = finalize([LyricLine("a", 10.0, 12.0), LyricLine("b", 30.0, 32.0)], source="test")
    tr = LineTracker(lyric_set)

    intro = tr.update(1.0)
    assert intro.index == 0
    assert intro.in_interlude

    line = tr.update(11.0)
    assert line.index == 1
    assert not line.in_interlude

    gap = tr.update(20.0)
    assert gap.index is None
    assert gap.changed
    assert gap.in_interlude

    assert tr.update(27.0).index == 2

    outro = tr.update(40.0)
    assert outro.index is None
    assert outro.in_interlude


def test_short_gap_is_not_interlude():
    tr = LineTracker(_set(("a", 0.0, 4.0), ("b", 6.0, 8.0)), tolerance=0.0)
    frame = tr.update(5.0)
    assert frame.index is None
    assert not frame.in_interlude


def test_word_progress():
    words = (LyricWord("one", 1.0, 2.0), LyricWord("two", 2.0, 3.0))
    tr = LineTracker(LyricSet(lines=(LyricLine("one two", 1.0, 3.0, words),)))
    assert tr.word_progress(1.5) == []  # nothing active yet
    tr.update(1.5)
    assert tr.word_progress(1.5) == [0.5, 0.0]
    assert tr.word_progress(2.5) == [1.0, 0.5]


def test_word_progress_clamped():
    w = LyricWord("x", 1.0, 1.0)
    assert w.progress(0.5) == 0.0
    assert w.progress(1.0) == 1.0
    assert LyricWord("y", 0.0, 2.0).progress(5.0) == 1.0


def test_look_ahead_near_song_start_is_continuous():
    def opens_at(start, position):
        return active_index(_set(("x", start, start + 2.0)), position)

    assert opens_at(3.4, 0.5) == 0
    assert opens_at(3.6, 0.5) == 0
    assert opens_at(3.4, 0.4) is None
    assert opens_at(4.5, 0.9) is None
    assert opens_at(4.5, 1.0) == 0
    # a line starting before the clamp opens at its own start
    assert opens_at(0.2, 0.2) == 0
    assert opens_at(0.2, 0.1) is None
