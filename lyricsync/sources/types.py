from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SearchResult:
    """One hit from the line-level lookup search endpoint."""
    id: int | None
    track_name: str
    artist_name: str
    album_name: str
    duration: float | None
    instrumental: bool
    has_synced_lyrics: bool
    has_plain_lyrics: bool
    synced_lyrics_text: str | None = None
    plain_lyrics_text: str | None = None


@dataclass(frozen=True, slots=True)
class CatalogSong:
    """Search hit from a regional catalog (NetEase / QQ Music)."""
    id: str
    name: str
    artist: str
    duration_s: float
    duration_diff: float
    title_match: bool
    artist_match: bool


@dataclass(frozen=True, slots=True)
class AmllIndexEntry:
    id: str
    music_name: str
    artists: tuple[str, ...]
    album: str
    raw_lyric_file: str
    platform: str
