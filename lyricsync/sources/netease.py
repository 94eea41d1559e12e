from __future__ import annotations

import logging
from typing import Any

from lyricsync.lyrics.model import LyricsFormat, SourceResult, TrackIdentity

from .base import HttpLyricsSource
from .matching import artist_matches, contains_cjk, title_matches, to_simplified
from .types import CatalogSong

logger = logging.getLogger(__name__)

NETEASE_SEARCH = "https://music.163.com/api/search/get"
NETEASE_LYRIC_V1 = "https://music.163.com/api/song/lyric/v1"
NETEASE_LYRIC = "https://music.163.com/api/song/lyric"
NETEASE_HEADERS = {"Referer": "https://music.163.com"}

MAX_DURATION_DIFF_S = 5.0


def _keywords(title: str, artist: str) -> list[str]:
    # catalog titles are often localized, so latin titles search by artist first
    both = f"{title} {artist}".strip()
    if contains_cjk(title):
        return [both, artist] if artist else [both]
    return [artist, both] if artist else [both]


def search_keywords(track: TrackIdentity) -> list[str]:
    """Simplified-Chinese keywords first (the catalog is Simplified), then the originals."""
    keywords = _keywords(to_simplified(track.title), to_simplified(track.artist))
    for kw in _keywords(track.title, track.artist):
        if kw not in keywords:
            keywords.append(kw)
    return keywords


def pick_song(candidates: list[CatalogSong], *, duration_known: bool = True) -> CatalogSong | None:
    """
    Duration first, names second. Candidates are expected pre-filtered to
    the duration window; the first tier that matches wins.
    """
    ordered = sorted(candidates, key=lambda c: c.duration_diff)
    if not duration_known:
        return next((c for c in ordered if c.title_match and c.artist_match), None)

    tiers = (
        lambda c: c.duration_diff < 1 and (c.title_match or c.artist_match),
        lambda c: c.duration_diff < 2 and c.artist_match,
        lambda c: c.duration_diff < 1,
        lambda c: c.duration_diff < 3 and c.title_match,
    )
    for accept in tiers:
        for c in ordered:
            if accept(c):
                return c
    return None


class NetEaseSource(HttpLyricsSource):
    """Regional catalog: search for a song id, then fetch word- or line-level lyrics."""

    name = "netease"

    def fetch(self, track: TrackIdentity) -> SourceResult | None:
        song = self.find_song(track)
        if song is None:
            logger.info("netease: no match for %s", track.display)
            return None
        logger.info(
            "netease: matched %s by %s (diff=%.1fs)", song.name, song.artist, song.duration_diff
        )
        return self.fetch_lyrics(song.id)

    def find_song(self, track: TrackIdentity) -> CatalogSong | None:
        for keyword in search_keywords(track):
            if not keyword:
                continue
            candidates = self.search(keyword, track)
            song = pick_song(candidates, duration_known=track.duration_s > 0)
            if song is not None:
                return song
        return None

    def search(self, keyword: str, track: TrackIdentity) -> list[CatalogSong]:
        data = self._get_json(
            NETEASE_SEARCH,
            params={"s": keyword, "type": 1, "limit": 20},
            headers=NETEASE_HEADERS,
        )
        songs = ((data or {}).get("result") or {}).get("songs") if isinstance(data, dict) else None
        if not isinstance(songs, list):
            return []

        out: list[CatalogSong] = []
        for song in songs:
            if not isinstance(song, dict):
                continue
            song_id = song.get("id")
            name = song.get("name")
            if song_id is None or not isinstance(name, str):
                continue
            artists = song.get("artists") or []
            artist = ""
            if artists and isinstance(artists[0], dict):
                artist = str(artists[0].get("name") or "")

            duration_s = float(song.get("duration") or 0) / 1000.0
            diff = abs(duration_s - track.duration_s) if track.duration_s > 0 else 0.0
            if diff >= MAX_DURATION_DIFF_S:
                continue

            out.append(
                CatalogSong(
                    id=str(song_id),
                    name=name,
                    artist=artist,
                    duration_s=duration_s,
                    duration_diff=diff,
                    title_match=title_matches(name, track.title),
                    artist_match=artist_matches(artist, track.artist),
                )
            )
        logger.debug("netease: %s usable results for %r", len(out), keyword)
        return out

    def fetch_lyrics(self, song_id: str) -> SourceResult | None:
        data = self._get_json(
            NETEASE_LYRIC_V1,
            params={"id": song_id, "lv": 1, "yv": 1, "tv": 0, "rv": 0},
            headers=NETEASE_HEADERS,
        )
        yrc = _lyric_field(data, "yrc")
        if yrc:
            return SourceResult(self.name, yrc, LyricsFormat.YRC)

        data = self._get_json(
            NETEASE_LYRIC,
            params={"id": song_id, "lv": 1, "tv": 1},
            headers=NETEASE_HEADERS,
        )
        lrc = _lyric_field(data, "lrc")
        if lrc:
            return SourceResult(self.name, lrc, LyricsFormat.LRC)

        translated = _lyric_field(data, "tlyric")
        if translated:
            logger.info("netease: only translated lyrics for song %s", song_id)
            return SourceResult(self.name, translated, LyricsFormat.LRC)

        logger.info("netease: no lyric content for song %s", song_id)
        return None


def _lyric_field(data: Any, key: str) -> str | None:
    if not isinstance(data, dict):
        return None
    block = data.get(key)
    if not isinstance(block, dict):
        return None
    text = block.get("lyric")
    if not isinstance(text, str) or not text.strip():
        return None
    return text
