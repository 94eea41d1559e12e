from __future__ import annotations

import threading

import pytest

from lyricsync.cache.memory import LyricsCache
from lyricsync.errors import LyricsNotFound, ProviderError
from lyricsync.lyrics.model import LyricLine, LyricSet, LyricsFormat, TrackIdentity
from lyricsync.sources import service
from lyricsync.sources.service import (
    LyricsOrchestrator,
    LyricsStatus,
    Strategy,
    priority_order,
)
from tests.mocks.sources_mock import LRC, SHORT_LRC, TTML, FakeSource

SONG = TrackIdentity("Song", "Artist", 40.0)
OTHER = TrackIdentity("Other", "Artist", 40.0)


@pytest.fixture
def make_orchestrator():
    created = []

    def _make(sources, *, strategy=Strategy.PARALLEL, cache=None, **kwargs):
        orch = LyricsOrchestrator(
            sources,
            cache or LyricsCache(),
            strategy=strategy,
            fetch_timeout_s=kwargs.pop("fetch_timeout_s", 2.0),
            **kwargs,
        )
        created.append(orch)
        return orch

    yield _make
    for orch in created:
        orch.close()


def test_cache_hit_skips_network(make_orchestrator):
    src = FakeSource("lrclib", default=LRC)
    cache = LyricsCache()
    cached = LyricSet(lines=(LyricLine("cached", 1.0, 2.0),), source="lrclib")
    cache.put(SONG.key, cached)
    orch = make_orchestrator([src], cache=cache)

    fut = orch.request(SONG)
    assert fut.done()
    state = fut.result()
    assert state.status is LyricsStatus.FOUND
    assert state.lyric_set is cached
    assert orch.state.status is LyricsStatus.FOUND
    assert src.calls == []


def test_force_refresh_bypasses_cache(make_orchestrator):
    src = FakeSource("lrclib", default=LRC)
    cache = LyricsCache()
    cache.put(SONG.key, LyricSet(lines=(LyricLine("cached", 1.0, 2.0),)))
    orch = make_orchestrator([src], cache=cache)

    lyric_set = orch.resolve(SONG, force_refresh=True, timeout=5)
    assert src.calls == ["Song"]
    assert lyric_set.source == "lrclib"


def test_resolved_set_has_placeholder_and_is_cached(make_orchestrator):
    orch = make_orchestrator([FakeSource("lrclib", default=LRC)])
    lyric_set = orch.resolve(SONG, timeout=5)
    assert lyric_set.has_placeholder
    assert lyric_set[0].end_time == lyric_set[1].start_time == 3.0
    assert len(lyric_set.real_lines) == 10
    assert orch.cache.get(SONG.key).lyric_set is lyric_set


def test_priority_order():
    names = ["lyrics_ovh", "netease", "lrclib", "amll", "qqmusic", "custom"]
    sources = [FakeSource(n) for n in names]
    latin = [s.name for s in priority_order(sources, TrackIdentity("Hello", "Adele"))]
    cjk = [s.name for s in priority_order(sources, TrackIdentity("晴天", "周杰伦"))]
    assert latin == ["amll", "lrclib", "qqmusic", "netease", "lyrics_ovh", "custom"]
    assert cjk == ["amll", "qqmusic", "netease", "lrclib", "lyrics_ovh", "custom"]


def test_priority_stops_at_first_valid(make_orchestrator):
    amll = FakeSource("amll")
    lrclib = FakeSource("lrclib", default=LRC)
    qq = FakeSource("qqmusic", default=LRC)
    orch = make_orchestrator([qq, lrclib, amll], strategy=Strategy.PRIORITY)

    lyric_set = orch.resolve(SONG, timeout=5)
    assert lyric_set.source == "lrclib"
    assert amll.calls == ["Song"]
    assert qq.calls == []


def test_priority_cjk_prefers_regional_catalogs(make_orchestrator):
    lrclib = FakeSource("lrclib", default=LRC)
    qq = FakeSource("qqmusic", default=LRC)
    orch = make_orchestrator([lrclib, qq], strategy=Strategy.PRIORITY)

    lyric_set = orch.resolve(TrackIdentity("晴天", "周杰伦", 40.0), timeout=5)
    assert lyric_set.source == "qqmusic"
    assert lrclib.calls == []


def test_priority_keeps_invalid_candidate_as_fallback(make_orchestrator):
    lrclib = FakeSource("lrclib", default=SHORT_LRC)
    qq = FakeSource("qqmusic", default=RuntimeError("boom"))
    ovh = FakeSource("lyrics_ovh")
    orch = make_orchestrator([lrclib, qq, ovh], strategy=Strategy.PRIORITY)

    lyric_set = orch.resolve(SONG, timeout=5)
    assert lyric_set.source == "lrclib"
    assert len(lyric_set.real_lines) == 2
    # the walk went on after the invalid candidate
    assert qq.calls == ["Song"]
    assert ovh.calls == ["Song"]


def test_parallel_picks_best_score(make_orchestrator):
    sources = [
        FakeSource("lrclib", default=LRC),
        FakeSource("amll", default=TTML),
        FakeSource("netease", default=RuntimeError("unreachable")),
        FakeSource("qqmusic", default=("garbage that parses to nothing", LRC[1])),
    ]
    orch = make_orchestrator(sources)
    lyric_set = orch.resolve(SONG, timeout=5)
    assert lyric_set.source == "amll"
    assert lyric_set.has_word_sync
    assert all(s.calls == ["Song"] for s in sources)


def test_provider_error_is_contained(make_orchestrator):
    failing = FakeSource("amll", default=ProviderError("index unavailable"))
    orch = make_orchestrator([failing, FakeSource("lrclib", default=LRC)], strategy=Strategy.PRIORITY)
    assert orch.resolve(SONG, timeout=5).source == "lrclib"
    assert failing.calls == ["Song"]


def test_malformed_ttml_does_not_sink_other_providers(make_orchestrator):
    bad = '<p begin="00:01.000" end="00:0².000">bad</p>'
    amll = FakeSource("amll", default=(bad, LyricsFormat.TTML))
    orch = make_orchestrator([amll, FakeSource("lrclib", default=LRC)])
    lyric_set = orch.resolve(SONG, timeout=5)
    assert lyric_set.source == "lrclib"
    assert orch.state.status is LyricsStatus.FOUND


def test_parse_failure_is_contained(make_orchestrator, monkeypatch):
    real_parse = service.parse_source

    def parse(result, duration_s):
        if result.provider == "amll":
            raise ValueError("broken payload")
        return real_parse(result, duration_s)

    monkeypatch.setattr(service, "parse_source", parse)
    orch = make_orchestrator([FakeSource("amll", default=TTML), FakeSource("lrclib", default=LRC)])
    assert orch.resolve(SONG, timeout=5).source == "lrclib"


def test_parallel_ignores_slow_provider(make_orchestrator):
    gate = threading.Event()
    slow = FakeSource("amll", default=TTML, gates={"Song": gate})
    fast = FakeSource("lrclib", default=LRC)
    orch = make_orchestrator([slow, fast], fetch_timeout_s=0.3)
    try:
        lyric_set = orch.resolve(SONG, timeout=5)
    finally:
        gate.set()
    assert lyric_set.source == "lrclib"


def test_not_found(make_orchestrator):
    src = FakeSource("lrclib")
    orch = make_orchestrator([src])

    with pytest.raises(LyricsNotFound):
        orch.resolve(SONG, timeout=5)
    assert orch.state.status is LyricsStatus.NOT_FOUND
    assert orch.state.lyric_set is None
    assert orch.cache.get(SONG.key).is_not_found

    # negative cache: no second network round
    with pytest.raises(LyricsNotFound):
        orch.resolve(SONG, timeout=5)
    assert src.calls == ["Song"]


def test_not_found_keeps_previous_set_for_same_song(make_orchestrator):
    src = FakeSource("lrclib", {"Song": LRC})
    orch = make_orchestrator([src])
    first = orch.resolve(SONG, timeout=5)

    src.responses.clear()
    with pytest.raises(LyricsNotFound):
        orch.resolve(SONG, force_refresh=True, timeout=5)
    assert orch.state.status is LyricsStatus.NOT_FOUND
    assert orch.state.lyric_set is first

    with pytest.raises(LyricsNotFound):
        orch.resolve(OTHER, timeout=5)
    assert orch.state.identity == OTHER
    assert orch.state.lyric_set is None


def test_stale_result_is_never_published(make_orchestrator):
    gate = threading.Event()
    src = FakeSource("lrclib", {"Song": LRC, "Other": LRC}, gates={"Song": gate})
    orch = make_orchestrator([src], fetch_timeout_s=5.0)
    events = []
    orch.add_listener(lambda st: events.append((st.status, st.identity.title if st.identity else None)))

    fut_a = orch.request(SONG)
    assert src.started.wait(2.0)
    lyric_set_b = orch.resolve(OTHER, timeout=5)
    assert lyric_set_b is not None

    gate.set()
    state_a = fut_a.result(timeout=5)
    assert state_a.status is LyricsStatus.FOUND

    assert (LyricsStatus.FOUND, "Song") not in events
    assert orch.state.identity == OTHER
    assert orch.state.lyric_set is lyric_set_b
    # the late result still warms the cache
    assert orch.cache.is_warm(SONG.key)


def test_resolve_returns_none_when_superseded(make_orchestrator):
    gate = threading.Event()
    src = FakeSource("lrclib", {"Song": LRC, "Other": LRC}, gates={"Song": gate})
    orch = make_orchestrator([src], fetch_timeout_s=5.0)
    result = {}

    worker = threading.Thread(target=lambda: result.setdefault("a", orch.resolve(SONG, timeout=5)))
    worker.start()
    assert src.started.wait(2.0)
    orch.resolve(OTHER, timeout=5)
    gate.set()
    worker.join(5)
    assert result["a"] is None


def test_same_identity_joins_flight(make_orchestrator):
    gate = threading.Event()
    src = FakeSource("lrclib", {"Song": LRC}, gates={"Song": gate})
    orch = make_orchestrator([src], fetch_timeout_s=5.0)

    first = orch.request(SONG)
    second = orch.request(SONG)
    assert first is second
    gate.set()
    assert first.result(timeout=5).status is LyricsStatus.FOUND
    assert src.calls == ["Song"]


def test_listeners_see_loading_then_found(make_orchestrator):
    orch = make_orchestrator([FakeSource("lrclib", default=LRC)])
    seen = []
    listener = seen.append
    orch.add_listener(listener)
    orch.resolve(SONG, timeout=5)
    assert [s.status for s in seen] == [LyricsStatus.LOADING, LyricsStatus.FOUND]

    orch.remove_listener(listener)
    orch.resolve(SONG, timeout=5)
    assert len(seen) == 2


def test_preload_skips_warm_entries(make_orchestrator):
    src = FakeSource("lrclib", default=LRC)
    cache = LyricsCache()
    cache.put(SONG.key, LyricSet(lines=(LyricLine("cached", 1.0, 2.0),)))
    pauses = []
    orch = make_orchestrator([src], cache=cache, sleep=pauses.append, preload_delay_s=0.5)

    third = TrackIdentity("Third", "Artist", 40.0)
    fetched = orch.preload([SONG, OTHER, third]).result(timeout=5)

    assert fetched == 2
    assert src.calls == ["Other", "Third"]
    assert pauses == [0.5]
    assert cache.is_warm(OTHER.key)
    assert cache.is_warm(third.key)
    # preloading never changes what is displayed
    assert orch.state.status is LyricsStatus.IDLE


def test_request_after_close_fails(make_orchestrator):
    orch = make_orchestrator([FakeSource("lrclib", default=LRC)])
    orch.close()
    with pytest.raises(RuntimeError):
        orch.request(SONG)
