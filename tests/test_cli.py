from concurrent.futures import TimeoutError as FutureTimeout

from typer.testing import CliRunner

from lyricsync.cli import app
from lyricsync.sources.service import LyricsOrchestrator

runner = CliRunner()


def test_parse_lrc_file(tmp_path):
    path = tmp_path / "song.lrc"
    path.write_text("[ar:Someone]\n[00:01.00]a\n[00:04.00]b\n[00:07.00]c\n", encoding="utf-8")

    result = runner.invoke(app, ["parse", str(path), "--duration", "12"])

    assert result.exit_code == 0, result.output
    assert "lines_emitted=3" in result.output
    assert "lines=3" in result.output
    assert "valid=True" in result.output
    assert "score=" in result.output


def test_parse_rejects_unknown_format(tmp_path):
    path = tmp_path / "song.txt"
    path.write_text("x\n", encoding="utf-8")
    result = runner.invoke(app, ["parse", str(path), "--format", "srt"])
    assert result.exit_code != 0


def test_sources_lists_configured(monkeypatch):
    monkeypatch.setenv("LYRICSYNC_SOURCES", "lrclib,bogus")
    monkeypatch.setenv("LYRICSYNC_STRATEGY", "priority")
    result = runner.invoke(app, ["sources"])
    assert result.exit_code == 0
    assert "lrclib\n" in result.output
    assert "bogus (unknown)" in result.output
    assert "strategy=priority" in result.output


def test_fetch_timeout_exits_cleanly(monkeypatch):
    def slow_resolve(self, identity, force_refresh=False, timeout=None):
        raise FutureTimeout()

    monkeypatch.setenv("LYRICSYNC_SOURCES", "lrclib")
    monkeypatch.setattr(LyricsOrchestrator, "resolve", slow_resolve)
    result = runner.invoke(app, ["fetch", "Song", "Artist"])
    assert result.exit_code == 1
    assert "Timed out looking up lyrics for Artist - Song" in result.output
