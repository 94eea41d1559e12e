from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass

from .model import LyricLine, LyricsFormat, LyricWord, SourceResult

logger = logging.getLogger(__name__)

# [mm:ss] / [mm:ss.xx] / [mm:ss.xxx] / [mm:ss:xx]
_TS_RE = re.compile(r"\[(\d{1,3}):(\d{1,2})(?:[.:](\d{1,3}))?\]")
_OFFSET_RE = re.compile(r"^\[offset:\s*([+-]?\d+)\s*\]\s*$", re.IGNORECASE)
_TAG_RE = re.compile(r"^\[([a-zA-Z#]{1,8}):(.*)\]\s*$")

LAST_LINE_DURATION_S = 5.0

_TTML_P_RE = re.compile(r"<p\b([^>]*)>(.*?)</p>", re.DOTALL)
_TTML_BEGIN_RE = re.compile(r'\bbegin="([^"]+)"')
_TTML_END_RE = re.compile(r'\bend="([^"]+)"')
_TTML_ROLE_SPAN_RE = re.compile(
    r'<span\b[^>]*ttm:role="x-(?:translation|roman)"[^>]*>.*?</span>', re.DOTALL
)
_TTML_TIMED_SPAN_RE = re.compile(r"<span\b([^>]*)>([^<]+)</span>")
_TAG_STRIP_RE = re.compile(r"<[^>]+>")
_TIME_SPLIT_RE = re.compile(r"[:,.]")
_TIME_PART_RE = re.compile(r"[0-9]+")

_YRC_LINE_RE = re.compile(r"^\[(\d+),(\d+)\](.*)$")
_YRC_WORD_RE = re.compile(r"\((\d+),(\d+),(\d+)\)([^(]*)")
_YRC_HEADER_RE = re.compile(r"\(\d+,\d+,\d+\)")


@dataclass(frozen=True, slots=True)
class LrcParseStats:
    lines_total: int
    lines_emitted: int
    lines_with_timestamps: int
    lines_ignored: int


def _frac_to_s(frac: str | None) -> float:
    if not frac:
        return 0.0
    # "2" -> 0.2, "23" -> 0.23, "234" -> 0.234
    return int(frac.ljust(3, "0")[:3]) / 1000.0


def _with_synthesized_ends(starts: list[tuple[float, str]]) -> list[LyricLine]:
    starts.sort(key=lambda e: e[0])
    dedup: list[tuple[float, str]] = []
    prev: tuple[float, str] | None = None
    for item in starts:
        if item != prev:
            dedup.append(item)
            prev = item

    lines: list[LyricLine] = []
    for i, (start, text) in enumerate(dedup):
        if i + 1 < len(dedup):
            end = dedup[i + 1][0]
        else:
            end = start + LAST_LINE_DURATION_S
        lines.append(LyricLine(text=text, start_time=start, end_time=end))
    return lines


def parse_lrc_with_stats(text: str) -> tuple[list[LyricLine], LrcParseStats]:
    """
    Line-level timed text.

    Supported:
    - [mm:ss], [mm:ss.x], [mm:ss.xx], [mm:ss.xxx]
    - multiple timestamps per line
    - [offset:+/-ms]
    - basic tags ([ar:], [ti:], ...) which are ignored

    End of each line is the start of the next one; the last line gets 5 s.
    """
    offset_s = 0.0
    starts: list[tuple[float, str]] = []

    total = 0
    lines_with_ts = 0
    ignored = 0

    for raw in (text or "").splitlines():
        total += 1
        line = raw.strip()
        if not line:
            ignored += 1
            continue

        off = _OFFSET_RE.match(line)
        if off:
            offset_s = int(off.group(1)) / 1000.0
            continue

        ts = list(_TS_RE.finditer(line))
        if not ts:
            if not _TAG_RE.match(line):
                ignored += 1
            continue

        payload = line[ts[-1].end() :].strip()
        if not payload:
            ignored += 1
            continue

        lines_with_ts += 1
        for m in ts:
            seconds = int(m.group(2))
            if seconds > 59:
                logger.debug("Skipping LRC timestamp with invalid seconds: %s", m.group(0))
                continue
            t = int(m.group(1)) * 60 + seconds + _frac_to_s(m.group(3)) + offset_s
            starts.append((max(t, 0.0), payload))

    lines = _with_synthesized_ends(starts)
    stats = LrcParseStats(
        lines_total=total,
        lines_emitted=len(lines),
        lines_with_timestamps=lines_with_ts,
        lines_ignored=ignored,
    )
    return lines, stats


def parse_lrc(text: str) -> list[LyricLine] | None:
    lines, _stats = parse_lrc_with_stats(text)
    return lines or None


def parse_ttml_time(value: str) -> float | None:
    """
    Clock values as found in lyric TTML: MM:SS.mmm, HH:MM:SS.mmm, HH:MM:SS.

    With three components the last group is read as milliseconds when it is
    above 60 or exactly three digits long, otherwise as seconds.
    """
    value = (value or "").strip()
    if not value:
        return None
    if ":" not in value:
        try:
            return float(value[:-1] if value.endswith("s") else value)
        except ValueError:
            return None

    parts = _TIME_SPLIT_RE.split(value)
    if not all(_TIME_PART_RE.fullmatch(p) for p in parts):
        return None
    nums = [int(p) for p in parts]

    if len(parts) == 2:
        return nums[0] * 60 + nums[1]
    if len(parts) == 3:
        if nums[2] > 60 or len(parts[2]) == 3:
            return nums[0] * 60 + nums[1] + nums[2] / 1000.0
        return nums[0] * 3600 + nums[1] * 60 + nums[2]
    if len(parts) == 4:
        return nums[0] * 3600 + nums[1] * 60 + nums[2] + int(parts[3].ljust(3, "0")[:3]) / 1000.0
    return None


def _clean_text(raw: str) -> str:
    return " ".join(html.unescape(raw).split())


def parse_ttml(text: str) -> list[LyricLine] | None:
    """
    Word-level TTML as published by the AMLL database:

        <p begin="00:01.737" end="00:06.722">
          <span begin="00:01.737" end="00:02.175">word</span> ...
          <span ttm:role="x-translation">...</span>
        </p>

    Translation and romanization spans are dropped; every remaining timed
    span becomes a LyricWord.
    """
    lines: list[LyricLine] = []

    for p in _TTML_P_RE.finditer(text or ""):
        attrs, content = p.group(1), p.group(2)
        begin_m = _TTML_BEGIN_RE.search(attrs)
        end_m = _TTML_END_RE.search(attrs)
        if not begin_m or not end_m:
            continue
        start = parse_ttml_time(begin_m.group(1))
        end = parse_ttml_time(end_m.group(1))
        if start is None or end is None:
            logger.debug("Skipping TTML paragraph with bad timing: %r", attrs)
            continue

        content = _TTML_ROLE_SPAN_RE.sub("", content)

        words: list[LyricWord] = []
        for span in _TTML_TIMED_SPAN_RE.finditer(content):
            span_attrs = span.group(1)
            wb = _TTML_BEGIN_RE.search(span_attrs)
            we = _TTML_END_RE.search(span_attrs)
            if not wb or not we:
                continue
            w_start = parse_ttml_time(wb.group(1))
            w_end = parse_ttml_time(we.group(1))
            word = html.unescape(span.group(2))
            if w_start is None or w_end is None or not word.strip():
                continue
            words.append(LyricWord(text=word, start_time=w_start, end_time=max(w_end, w_start)))

        line_text = _clean_text(_TAG_STRIP_RE.sub("", content))
        if not line_text:
            continue
        words.sort(key=lambda w: w.start_time)
        lines.append(LyricLine(text=line_text, start_time=start, end_time=max(end, start), words=tuple(words)))

    lines.sort(key=lambda ln: ln.start_time)
    synced = sum(1 for ln in lines if ln.has_word_sync)
    logger.debug("Parsed %s TTML lines (%s with word sync)", len(lines), synced)
    return lines or None


def parse_yrc(text: str) -> list[LyricLine] | None:
    """
    Compact word-level format:

        [lineStartMs,lineDurationMs](wordStartMs,wordDurationMs,0)word(...)word
    """
    lines: list[LyricLine] = []

    for raw in (text or "").splitlines():
        line = raw.strip()
        # JSON credit lines
        if not line or line.startswith("{"):
            continue
        m = _YRC_LINE_RE.match(line)
        if not m:
            continue

        start_ms = int(m.group(1))
        duration_ms = int(m.group(2))
        content = m.group(3)

        words: list[LyricWord] = []
        for w in _YRC_WORD_RE.finditer(content):
            word = w.group(4)
            if not word:
                continue
            w_start = int(w.group(1)) / 1000.0
            w_end = (int(w.group(1)) + int(w.group(2))) / 1000.0
            words.append(LyricWord(text=word, start_time=w_start, end_time=w_end))

        if words:
            line_text = "".join(w.text for w in words).strip()
        else:
            line_text = _YRC_HEADER_RE.sub("", content).strip()
        if not line_text:
            continue

        lines.append(
            LyricLine(
                text=line_text,
                start_time=start_ms / 1000.0,
                end_time=(start_ms + duration_ms) / 1000.0,
                words=tuple(words),
            )
        )

    lines.sort(key=lambda ln: ln.start_time)
    return lines or None


def parse_plain(text: str, duration_s: float) -> list[LyricLine] | None:
    """Untimed text: spread the lines evenly over the song."""
    texts = [ln.strip() for ln in (text or "").splitlines() if ln.strip()]
    if not texts:
        return None
    if duration_s <= 0:
        logger.info("Skipping untimed lyrics: track duration unknown")
        return None
    per_line = duration_s / len(texts)
    return [
        LyricLine(text=t, start_time=i * per_line, end_time=(i + 1) * per_line)
        for i, t in enumerate(texts)
    ]


def parse_source(result: SourceResult, duration_s: float) -> list[LyricLine] | None:
    fmt = result.format
    if fmt is LyricsFormat.LRC:
        return parse_lrc(result.raw_text)
    if fmt is LyricsFormat.TTML:
        return parse_ttml(result.raw_text)
    if fmt is LyricsFormat.YRC:
        return parse_yrc(result.raw_text)
    if fmt is LyricsFormat.PLAIN:
        return parse_plain(result.raw_text, duration_s)
    logger.warning("Unknown lyrics format from %s: %s", result.provider, fmt)
    return None
