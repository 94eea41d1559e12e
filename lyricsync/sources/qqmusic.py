from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from lyricsync.lyrics.model import LyricsFormat, SourceResult, TrackIdentity

from .base import HttpLyricsSource
from .itunes import ITunesClient
from .matching import to_simplified
from .types import CatalogSong

logger = logging.getLogger(__name__)

QQ_SEARCH = "https://c.y.qq.com/soso/fcgi-bin/client_search_cp"
QQ_LYRIC = "https://c.y.qq.com/lyric/fcgi-bin/fcg_query_lyric_new.fcg"
QQ_HEADERS = {"Referer": "https://y.qq.com/portal/player.html"}

MAX_DURATION_DIFF_S = 3.0
ACCEPT_DURATION_DIFF_S = 2.0


@dataclass(frozen=True, slots=True)
class SearchRound:
    keyword: str
    require_match: bool
    label: str


def _rounds(title: str, artist: str) -> list[SearchRound]:
    rounds = [
        SearchRound(f"{title} {artist}".strip(), True, "title+artist"),
        SearchRound(artist, False, "artist only"),
        SearchRound(title, True, "title only"),
    ]
    return [r for r in rounds if r.keyword]


def search_rounds(title: str, artist: str) -> list[SearchRound]:
    """Rounds on the Simplified forms first, then any differing original keywords."""
    rounds = _rounds(to_simplified(title), to_simplified(artist))
    seen = {r.keyword for r in rounds}
    for r in _rounds(title, artist):
        if r.keyword not in seen:
            rounds.append(r)
            seen.add(r.keyword)
    return rounds


def is_related(keyword: str, song_name: str, song_artist: str, title: str, artist: str) -> bool:
    def fold(s: str) -> str:
        return to_simplified(s).casefold()

    kw = fold(keyword)
    s_artist = fold(song_artist)
    s_name = fold(song_name)
    t = fold(title)
    a = fold(artist)

    if s_artist and (s_artist in kw or (a and (a in s_artist or s_artist in a))):
        return True
    return bool(s_name and t) and (t in s_name or s_name in t)


class QQMusicSource(HttpLyricsSource):
    """
    Regional catalog with line-level lyrics. Titles shown by western
    storefronts can be swapped for the CN storefront names before searching.
    """

    name = "qqmusic"

    def __init__(self, *, itunes: ITunesClient | None = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.itunes = itunes

    def fetch(self, track: TrackIdentity) -> SourceResult | None:
        title, artist = track.title, track.artist
        if self.itunes is not None:
            localized = self.itunes.find_cn_metadata(track)
            if localized is not None:
                title, artist = localized
                logger.info("qqmusic: searching with CN metadata %s - %s", artist, title)

        song = self.find_song(title, artist, track.duration_s)
        if song is None:
            logger.info("qqmusic: no match for %s", track.display)
            return None
        logger.info("qqmusic: matched %s by %s (diff=%.1fs)", song.name, song.artist, song.duration_diff)
        return self.fetch_lyrics(song.id)

    def find_song(self, title: str, artist: str, duration_s: float) -> CatalogSong | None:
        for rnd in search_rounds(title, artist):
            candidates = self.search(rnd.keyword, title, artist, duration_s)
            for c in sorted(candidates, key=lambda c: c.duration_diff):
                if rnd.require_match and not (c.artist_match or c.title_match):
                    logger.debug("qqmusic: skip %s by %s (%s)", c.name, c.artist, rnd.label)
                    continue
                if c.duration_diff < ACCEPT_DURATION_DIFF_S:
                    return c
        return None

    def search(self, keyword: str, title: str, artist: str, duration_s: float) -> list[CatalogSong]:
        data = self._get_json(
            QQ_SEARCH,
            params={"p": 1, "n": 20, "w": keyword, "format": "json"},
            headers=QQ_HEADERS,
        )
        try:
            songs = data["data"]["song"]["list"]
        except (KeyError, TypeError):
            return []
        if not isinstance(songs, list):
            return []

        out: list[CatalogSong] = []
        for song in songs:
            if not isinstance(song, dict):
                continue
            mid = song.get("songmid")
            name = song.get("songname")
            if not isinstance(mid, str) or not isinstance(name, str):
                continue
            singers = song.get("singer") or []
            singer = ""
            if singers and isinstance(singers[0], dict):
                singer = str(singers[0].get("name") or "")

            length = float(song.get("interval") or 0)
            diff = abs(length - duration_s) if duration_s > 0 else 0.0
            if diff >= MAX_DURATION_DIFF_S:
                continue

            related = is_related(keyword, name, singer, title, artist)
            out.append(
                CatalogSong(
                    id=mid,
                    name=name,
                    artist=singer,
                    duration_s=length,
                    duration_diff=diff,
                    title_match=related,
                    artist_match=related,
                )
            )
        return out

    def fetch_lyrics(self, song_mid: str) -> SourceResult | None:
        data = self._get_json(
            QQ_LYRIC,
            params={"songmid": song_mid, "format": "json", "nobase64": 1},
            headers=QQ_HEADERS,
        )
        text = data.get("lyric") if isinstance(data, dict) else None
        if not isinstance(text, str) or not text.strip():
            logger.info("qqmusic: no lyric content for %s", song_mid)
            return None
        return SourceResult(self.name, text, LyricsFormat.LRC)
