from __future__ import annotations

import logging
from typing import Any, List

from lyricsync.lyrics.model import LyricsFormat, SourceResult, TrackIdentity

from .base import HttpLyricsSource
from .matching import score_search_match
from .types import SearchResult

logger = logging.getLogger(__name__)

LRCLIB_API = "https://lrclib.net/api"
SEARCH_MAX_DURATION_DIFF_S = 5.0
# an exact title plus synced text alone scores 55
SEARCH_MIN_SCORE = 55


class LrcLibSource(HttpLyricsSource):
    """Line-level lyrics lookup by artist, title and duration."""

    name = "lrclib"

    def fetch(self, track: TrackIdentity) -> SourceResult | None:
        params: dict[str, Any] = {
            "artist_name": track.artist,
            "track_name": track.title,
        }
        if track.duration_s > 0:
            params["duration"] = int(round(track.duration_s))

        r = self._get(f"{LRCLIB_API}/get", params=params, headers={"Accept": "application/json"})
        if r is None:
            return None

        if r.status_code == 404:
            logger.info("lrclib: no exact match for %s, trying search", track.display)
            return self._from_search(track)

        try:
            data = r.json()
        except ValueError as e:
            logger.warning("lrclib: invalid JSON: %s", e)
            return None

        synced = (data or {}).get("syncedLyrics")
        if synced:
            return SourceResult(self.name, str(synced).rstrip() + "\n", LyricsFormat.LRC)

        # plain text has no intro timing; leave it to the plain-text provider
        logger.info("lrclib: plain lyrics only for %s, skipping", track.display)
        return None

    def _from_search(self, track: TrackIdentity) -> SourceResult | None:
        results = self.search(track_name=track.title, artist_name=track.artist)
        best = self._find_best_match(track, results)
        if best is None or not best.synced_lyrics_text:
            return None
        logger.info("lrclib: search matched %s - %s", best.artist_name, best.track_name)
        return SourceResult(self.name, best.synced_lyrics_text, LyricsFormat.LRC)

    @staticmethod
    def _find_best_match(track: TrackIdentity, results: list[SearchResult]) -> SearchResult | None:
        best_score = 0
        best: SearchResult | None = None
        for r in results:
            if r.instrumental or not r.has_synced_lyrics:
                continue
            if track.duration_s > 0 and r.duration and abs(r.duration - track.duration_s) > SEARCH_MAX_DURATION_DIFF_S:
                continue
            s = score_search_match(
                title=track.title,
                artist=track.artist,
                candidate_title=r.track_name,
                candidate_artist=r.artist_name,
                has_synced=r.has_synced_lyrics,
                has_plain=r.has_plain_lyrics,
            )
            if s > best_score:
                best_score = s
                best = r
        return best if best_score > SEARCH_MIN_SCORE else None

    def search(
        self,
        *,
        q: str | None = None,
        track_name: str | None = None,
        artist_name: str | None = None,
        album_name: str | None = None,
    ) -> List[SearchResult]:
        """
        Search through /api/search.

        At least one of `q` or `track_name` is required.
        """
        if not q and not track_name:
            raise ValueError("At least one of 'q' or 'track_name' must be provided")

        params = {}
        if q:
            params["q"] = q
        if track_name:
            params["track_name"] = track_name
        if artist_name:
            params["artist_name"] = artist_name
        if album_name:
            params["album_name"] = album_name

        data = self._get_json(f"{LRCLIB_API}/search", params=params)
        if not isinstance(data, list):
            return []

        results = []
        for item in data:
            if not isinstance(item, dict):
                continue
            synced = item.get("syncedLyrics")
            plain = item.get("plainLyrics")
            results.append(
                SearchResult(
                    id=item.get("id"),
                    track_name=item.get("trackName") or "",
                    artist_name=item.get("artistName") or "",
                    album_name=item.get("albumName") or "",
                    duration=item.get("duration"),
                    instrumental=bool(item.get("instrumental", False)),
                    has_synced_lyrics=bool(synced),
                    has_plain_lyrics=bool(plain),
                    synced_lyrics_text=str(synced).rstrip() + "\n" if synced else None,
                    plain_lyrics_text=str(plain).rstrip() + "\n" if plain else None,
                )
            )
        return results
