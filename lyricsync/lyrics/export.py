from __future__ import annotations

import json

from .model import LyricSet


def export_json(lyric_set: LyricSet) -> str:
    return json.dumps(
        {
            "source": lyric_set.source,
            "synced": lyric_set.synced,
            "lines": [
                {
                    "text": line.text,
                    "start": round(line.start_time, 3),
                    "end": round(line.end_time, 3),
                    "words": [
                        {"text": w.text, "start": round(w.start_time, 3), "end": round(w.end_time, 3)}
                        for w in line.words
                    ],
                }
                for line in lyric_set.lines
            ],
        },
        ensure_ascii=False,
        indent=2,
    )


def _fmt_lrc_time(seconds: float) -> str:
    ms = int(round(max(seconds, 0.0) * 1000))
    m, rem = divmod(ms, 60_000)
    s, ms2 = divmod(rem, 1_000)
    # keep 2 decimals for compatibility
    return f"{m:02d}:{s:02d}.{ms2 // 10:02d}"


def export_lrc(lyric_set: LyricSet, include_placeholder: bool = False) -> str:
    out: list[str] = []
    for line in lyric_set.lines:
        if line.is_placeholder and not include_placeholder:
            continue
        out.append(f"[{_fmt_lrc_time(line.start_time)}]{line.text}")
    return "\n".join(out) + ("\n" if out else "")


def _fmt_srt_time(seconds: float) -> str:
    # HH:MM:SS,mmm
    ms = int(round(max(seconds, 0.0) * 1000))
    h, rem = divmod(ms, 3_600_000)
    m, rem = divmod(rem, 60_000)
    s, ms2 = divmod(rem, 1_000)
    return f"{h:02d}:{m:02d}:{s:02d},{ms2:03d}"


def export_srt(lyric_set: LyricSet) -> str:
    """Subtitle cues from the line bounds; the loading placeholder is left out."""
    out: list[str] = []
    for i, line in enumerate(lyric_set.real_lines, start=1):
        end = max(line.end_time, line.start_time + 0.001)
        out.append(str(i))
        out.append(f"{_fmt_srt_time(line.start_time)} --> {_fmt_srt_time(end)}")
        out.append(line.text)
        out.append("")
    return "\n".join(out)
