from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Sequence

from lyricsync.errors import ProviderError
from lyricsync.lyrics.model import LyricsFormat, SourceResult, TrackIdentity

from .base import HttpLyricsSource
from .itunes import ITunesClient
from .types import AmllIndexEntry

logger = logging.getLogger(__name__)

AMLL_MIRRORS: tuple[tuple[str, str], ...] = (
    ("jsDelivr", "https://cdn.jsdelivr.net/gh/Steve-xmh/amll-ttml-db@main/"),
    ("GitHub", "https://raw.githubusercontent.com/Steve-xmh/amll-ttml-db/main/"),
    ("ghproxy", "https://ghproxy.com/https://raw.githubusercontent.com/Steve-xmh/amll-ttml-db/main/"),
)
AMLL_PLATFORMS: tuple[str, ...] = ("ncm-lyrics", "am-lyrics", "qq-lyrics", "spotify-lyrics")
INDEX_TTL_S = 6 * 3600.0


def parse_index(content: str, platform: str) -> list[AmllIndexEntry]:
    """
    One JSON object per line:

        {"id": "...", "metadata": [["musicName", ["..."]], ["artists", [...]]],
         "rawLyricFile": "..."}
    """
    entries: list[AmllIndexEntry] = []
    for raw in content.splitlines():
        raw = raw.strip()
        if not raw:
            continue
        try:
            item = json.loads(raw)
        except ValueError:
            continue
        if not isinstance(item, dict):
            continue
        entry_id = item.get("id")
        raw_file = item.get("rawLyricFile")
        metadata = item.get("metadata")
        if not isinstance(entry_id, str) or not isinstance(raw_file, str) or not isinstance(metadata, list):
            continue

        music_name = ""
        artists: tuple[str, ...] = ()
        album = ""
        for pair in metadata:
            if not isinstance(pair, list) or len(pair) < 2 or not isinstance(pair[1], list):
                continue
            key, values = pair[0], [str(v) for v in pair[1]]
            if key == "musicName" and values:
                music_name = values[0]
            elif key == "artists":
                artists = tuple(values)
            elif key == "album" and values:
                album = values[0]

        if music_name:
            entries.append(
                AmllIndexEntry(
                    id=entry_id,
                    music_name=music_name,
                    artists=artists,
                    album=album,
                    raw_lyric_file=raw_file,
                    platform=platform,
                )
            )
    return entries


def score_entry(entry: AmllIndexEntry, title: str, artist: str) -> int:
    """0 when the entry is not a candidate: the title and one artist must match."""
    title_l = title.casefold().strip()
    artist_l = artist.casefold().strip()
    name_l = entry.music_name.casefold().strip()

    if not title_l or not name_l:
        return 0
    if name_l == title_l:
        score = 100
    elif title_l in name_l or name_l in title_l:
        score = 50
    else:
        return 0

    for a in entry.artists:
        a_l = a.casefold().strip()
        if not a_l or not artist_l:
            continue
        if a_l == artist_l:
            return score + 80
        if a_l in artist_l or artist_l in a_l:
            return score + 40
    # same title, different artist
    return 0


class AmllSource(HttpLyricsSource):
    """
    Word-level TTML from the AMLL database, reachable through several mirrors.

    The per-platform indexes are loaded lazily, kept for INDEX_TTL_S and
    refreshed from whichever mirror answers; the last mirror that worked is
    tried first.
    """

    name = "amll"

    def __init__(
        self,
        *,
        itunes: ITunesClient | None = None,
        mirrors: Sequence[tuple[str, str]] = AMLL_MIRRORS,
        platforms: Sequence[str] = AMLL_PLATFORMS,
        index_ttl_s: float = INDEX_TTL_S,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.itunes = itunes
        self.mirrors = tuple(mirrors)
        self.platforms = tuple(platforms)
        self.index_ttl_s = index_ttl_s
        self._index: list[AmllIndexEntry] = []
        self._index_loaded_at = 0.0
        self._mirror_idx = 0
        self._index_lock = threading.Lock()

    def _mirror_order(self) -> list[tuple[int, tuple[str, str]]]:
        n = len(self.mirrors)
        return [((self._mirror_idx + i) % n, self.mirrors[(self._mirror_idx + i) % n]) for i in range(n)]

    def fetch(self, track: TrackIdentity) -> SourceResult | None:
        if self.itunes is not None:
            track_id = self.itunes.find_track_id(track)
            if track_id is not None:
                logger.info("amll: trying direct hit for Apple Music id %s", track_id)
                ttml = self._fetch_ttml("am-lyrics", f"{track_id}.ttml", stop_on_404=True)
                if ttml:
                    return SourceResult(self.name, ttml, LyricsFormat.TTML)

        entry = self.find_entry(track)
        if entry is None:
            logger.info("amll: no index match for %s", track.display)
            return None

        logger.info("amll: matched %s by %s [%s]", entry.music_name, ", ".join(entry.artists), entry.platform)
        ttml = self._fetch_ttml(entry.platform, f"{entry.id}.ttml")
        if not ttml:
            return None
        return SourceResult(self.name, ttml, LyricsFormat.TTML)

    def find_entry(self, track: TrackIdentity) -> AmllIndexEntry | None:
        index = self.load_index()
        best: AmllIndexEntry | None = None
        best_score = 0
        for entry in index:
            s = score_entry(entry, track.title, track.artist)
            if s > best_score:
                best, best_score = entry, s
        return best

    def load_index(self) -> list[AmllIndexEntry]:
        with self._index_lock:
            if self._index and time.time() - self._index_loaded_at < self.index_ttl_s:
                return self._index

            for idx, (mirror_name, base_url) in self._mirror_order():
                entries: list[AmllIndexEntry] = []
                for platform in self.platforms:
                    r = self._get(f"{base_url}{platform}/index.jsonl", timeout_s=max(self.timeout_s, 15.0))
                    if r is None or r.status_code != 200:
                        logger.warning("amll: %s index unavailable on %s", platform, mirror_name)
                        continue
                    platform_entries = parse_index(r.text, platform)
                    logger.debug("amll: %s: %s entries from %s", platform, len(platform_entries), mirror_name)
                    entries.extend(platform_entries)
                if entries:
                    self._index = entries
                    self._index_loaded_at = time.time()
                    self._mirror_idx = idx
                    logger.info("amll: index loaded from %s (%s entries)", mirror_name, len(entries))
                    return self._index

            if not self._index:
                raise ProviderError("amll: no mirror served the index")
            logger.warning("amll: all mirrors failed, keeping the previous index")
            return self._index

    def _fetch_ttml(self, platform: str, filename: str, *, stop_on_404: bool = False) -> str | None:
        for idx, (mirror_name, base_url) in self._mirror_order():
            r = self._get(f"{base_url}{platform}/{filename}")
            if r is None:
                continue
            if r.status_code == 404:
                if stop_on_404:
                    return None
                logger.debug("amll: %s/%s not on %s", platform, filename, mirror_name)
                continue
            self._mirror_idx = idx
            return r.text
        return None
