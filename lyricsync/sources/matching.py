from __future__ import annotations

import regex
import zhconv

_HAN_RE = regex.compile(r"\p{Han}")


def contains_cjk(text: str) -> bool:
    """True when the text carries Han ideographs (Chinese titles/artists)."""
    return bool(text) and _HAN_RE.search(text) is not None


def to_simplified(text: str) -> str:
    """Traditional Chinese folded to Simplified; other text is returned as is."""
    if not contains_cjk(text):
        return text
    return zhconv.convert(text, "zh-hans")


def _norm(s: str | None) -> str:
    return " ".join(to_simplified(s or "").split()).casefold()


def split_artists(artist: str) -> list[str]:
    parts = regex.split(r"\s*(?:,|&|/|、|\bfeat\.?|\bft\.?)\s*", artist or "", flags=regex.IGNORECASE)
    return [p for p in (_norm(x) for x in parts) if p]


def title_matches(candidate: str, wanted: str) -> bool:
    a, b = _norm(candidate), _norm(wanted)
    return bool(a and b) and (a in b or b in a)


def artist_matches(candidate: str, wanted: str) -> bool:
    a, b = _norm(candidate), _norm(wanted)
    if not a or not b:
        return False
    if a in b or b in a:
        return True
    return any(x in a or a in x for x in split_artists(wanted))


def score_search_match(
    *,
    title: str,
    artist: str,
    candidate_title: str,
    candidate_artist: str,
    has_synced: bool = False,
    has_plain: bool = False,
) -> int:
    """Title/artist agreement score for search results; 0 means unrelated."""
    want_title = _norm(title)
    want_artist = _norm(artist)
    want_artists = split_artists(artist) or ([want_artist] if want_artist else [])
    r_title = _norm(candidate_title)
    r_artist = _norm(candidate_artist)

    score = 0
    if r_title == want_title:
        score += 50
    elif title_matches(r_title, want_title):
        score += 15

    if r_artist and r_artist == want_artist:
        score += 50
    elif r_artist in want_artists:
        score += 45
    elif artist_matches(r_artist, want_artist):
        score += 20

    if has_synced:
        score += 5
    elif has_plain:
        score += 2
    return score
