import pytest

from lyricsync.lyrics.model import LyricLine, LyricSet, LyricsFormat, LyricWord
from lyricsync.lyrics.process import finalize
from lyricsync.quality.scorer import (
    Candidate,
    analyze,
    make_candidate,
    provider_bonus,
    real_lines,
    score,
    select_best,
)


def _lines(n, step=3.0, start=0.0, words=False):
    out = []
    for i in range(n):
        s = start + i * step
        w = (LyricWord(f"w{i}", s, s + step / 2), LyricWord(f"x{i}", s + step / 2, s + step)) if words else ()
        out.append(LyricLine(text=f"line {i}", start_time=s, end_time=s + step, words=w))
    return out


def test_clean_lines_are_valid():
    report = analyze(_lines(20))
    assert report.total_lines == 20
    assert report.reverse_count == report.overlap_count == report.short_count == 0
    assert report.quality_score == 100.0
    assert report.is_valid
    assert report.issues == ()


def test_score_line_level():
    # 0 word sync + 30 quality + 10 line count + 15 coverage + 5 bonus
    assert score(_lines(20), 60.0, "lrclib", LyricsFormat.LRC) == pytest.approx(60.0)


def test_score_best_case_is_100():
    assert score(_lines(30, step=2.0, words=True), 60.0, "amll", LyricsFormat.TTML) == pytest.approx(100.0)


def test_score_without_duration_skips_coverage():
    assert score(_lines(20), 0.0, "lrclib", LyricsFormat.LRC) == pytest.approx(45.0)


def test_plain_text_gets_no_provider_bonus():
    assert provider_bonus("lrclib", LyricsFormat.PLAIN) == 0.0
    assert provider_bonus("amll", LyricsFormat.TTML) == 10.0
    assert provider_bonus("unknown") == 0.0


def test_placeholder_and_ellipsis_are_not_real_lines():
    lyric_set = finalize(_lines(5, start=4.0), source="lrclib")
    lines = list(lyric_set.lines) + [LyricLine("...", 100.0, 101.0)]
    assert len(real_lines(lines)) == 5
    assert analyze(lyric_set).total_lines == 5


def test_reversals_never_increase_score():
    base = _lines(20)
    base_score = score(base, 60.0, "netease")
    reversed_lines = list(base)
    for i in (5, 10, 15):
        reversed_lines[i] = LyricLine(reversed_lines[i].text, 0.5, 3.0)
    report = analyze(reversed_lines)
    assert report.reverse_count >= 3
    assert score(reversed_lines, 60.0, "netease") <= base_score


def test_overlaps_never_increase_score():
    base = _lines(20)
    base_score = score(base, 60.0, "qqmusic")
    overlapping = list(base)
    for i in (3, 7, 11):
        ln = overlapping[i]
        overlapping[i] = LyricLine(ln.text, ln.start_time, ln.end_time + 2.0)
    report = analyze(overlapping)
    assert report.overlap_count == 3
    assert score(overlapping, 60.0, "qqmusic") < base_score


def test_heavy_overlap_marks_invalid():
    lines = [LyricLine(f"l{i}", i * 1.0, i * 1.0 + 5.0) for i in range(10)]
    report = analyze(lines)
    assert not report.is_valid
    assert any("overlaps" in issue for issue in report.issues)


def test_too_few_lines_invalid():
    report = analyze(_lines(2))
    assert not report.is_valid


def test_empty_report():
    report = analyze(LyricSet(lines=()))
    assert report.total_lines == 0
    assert not report.is_valid
    assert score(LyricSet(lines=()), 60.0, "amll") == 0.0


def _cand(provider, value, valid=True):
    lines = _lines(10) if valid else _lines(2)
    c = make_candidate(provider, LyricsFormat.LRC, lines, 30.0)
    return Candidate(provider=c.provider, format=c.format, lines=c.lines, score=value, report=c.report)


def test_select_prefers_valid_candidate():
    best = select_best([_cand("invalid", 90.0, valid=False), _cand("valid", 50.0)])
    assert best.provider == "valid"


def test_select_highest_valid():
    best = select_best([_cand("a", 40.0), _cand("b", 70.0), _cand("c", 55.0)])
    assert best.provider == "b"


def test_select_falls_back_to_best_invalid():
    best = select_best([_cand("low", 10.0, valid=False), _cand("high", 20.0, valid=False)])
    assert best is not None
    assert best.provider == "high"


def test_select_empty():
    assert select_best([]) is None
