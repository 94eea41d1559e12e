from __future__ import annotations

import logging
from urllib.parse import quote

from lyricsync.lyrics.model import LyricsFormat, SourceResult, TrackIdentity

from .base import HttpLyricsSource

logger = logging.getLogger(__name__)

LYRICS_OVH_API = "https://api.lyrics.ovh/v1"


class LyricsOvhSource(HttpLyricsSource):
    name = "lyrics_ovh"

    def fetch(self, track: TrackIdentity) -> SourceResult | None:
        if not track.artist or not track.title:
            return None
        url = f"{LYRICS_OVH_API}/{quote(track.artist, safe='')}/{quote(track.title, safe='')}"

        data = self._get_json(url)
        if not isinstance(data, dict):
            return None
        lyrics = data.get("lyrics")
        if not lyrics or not str(lyrics).strip():
            return None
        # This source is plain lyrics (no timing). Keep text as-is.
        return SourceResult(self.name, str(lyrics).rstrip() + "\n", LyricsFormat.PLAIN)
