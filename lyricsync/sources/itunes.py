from __future__ import annotations

import logging

from lyricsync.lyrics.model import TrackIdentity

from .base import HttpClient
from .matching import artist_matches, title_matches

logger = logging.getLogger(__name__)

ITUNES_SEARCH = "https://itunes.apple.com/search"
TRACK_ID_MAX_DIFF_S = 3.0
CN_METADATA_MAX_DIFF_S = 2.0


class ITunesClient(HttpClient):
    """
    Catalog lookups against the iTunes Search API. AMLL uses the catalog
    id, QQ Music the localized names.
    """

    name = "itunes"

    def find_track_id(self, track: TrackIdentity) -> int | None:
        data = self._get_json(
            ITUNES_SEARCH,
            params={"term": f"{track.title} {track.artist}", "entity": "song", "limit": 10},
        )
        if not isinstance(data, dict):
            return None

        for item in data.get("results") or []:
            track_id = item.get("trackId")
            name = item.get("trackName")
            artist = item.get("artistName")
            if not isinstance(track_id, int) or not name or not artist:
                continue
            t_match = title_matches(name, track.title)
            a_match = artist_matches(artist, track.artist)
            d_match = False
            if track.duration_s > 0:
                d_match = abs((item.get("trackTimeMillis") or 0) / 1000.0 - track.duration_s) < TRACK_ID_MAX_DIFF_S
            if t_match and (a_match or d_match):
                return track_id
        return None

    def find_cn_metadata(self, track: TrackIdentity) -> tuple[str, str] | None:
        """(title, artist) as listed on the CN storefront, matched by duration."""
        if track.duration_s <= 0 or not track.artist:
            return None
        data = self._get_json(
            ITUNES_SEARCH,
            params={"term": track.artist, "country": "CN", "media": "music", "limit": 20},
        )
        if not isinstance(data, dict):
            return None

        for item in data.get("results") or []:
            name = item.get("trackName")
            artist = item.get("artistName")
            millis = item.get("trackTimeMillis")
            if not name or not artist or not isinstance(millis, (int, float)):
                continue
            if abs(millis / 1000.0 - track.duration_s) < CN_METADATA_MAX_DIFF_S:
                logger.debug("iTunes CN match: %s - %s", artist, name)
                return name, artist
        return None
