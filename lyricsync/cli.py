from __future__ import annotations

import sys
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path

import colorama
import typer

from lyricsync.app import watch as watch_loop
from lyricsync.config import load_config
from lyricsync.errors import LyricsNotFound
from lyricsync.logging_setup import setup_logging
from lyricsync.lyrics.export import export_json, export_lrc, export_srt
from lyricsync.lyrics.model import LyricsFormat, SourceResult, TrackIdentity
from lyricsync.lyrics.parse import parse_lrc_with_stats, parse_source
from lyricsync.lyrics.process import finalize
from lyricsync.quality.scorer import analyze, score
from lyricsync.sources.service import LyricsOrchestrator, Strategy, build_sources


app = typer.Typer(no_args_is_help=True, add_completion=False)


@app.command()
def fetch(
    title: str,
    artist: str,
    duration: float = typer.Option(0.0, "--duration", "-d", help="Track duration in seconds"),
    strategy: str | None = typer.Option(None, "--strategy", help="parallel|priority"),
    json_output: bool = typer.Option(False, "--json", help="Print the lyrics as JSON"),
    lrc_output: bool = typer.Option(False, "--lrc", help="Print the lyrics as LRC"),
    srt_output: bool = typer.Option(False, "--srt", help="Print the lyrics as SRT subtitles"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Resolve lyrics for one track and print them."""
    setup_logging(debug)
    cfg = load_config()
    if strategy is not None:
        try:
            cfg = cfg.with_overrides(strategy=Strategy(strategy.lower()).value)
        except ValueError:
            raise typer.BadParameter("strategy must be one of: parallel, priority")

    identity = TrackIdentity(title=title, artist=artist, duration_s=duration)
    with LyricsOrchestrator.from_config(cfg) as orchestrator:
        try:
            lyric_set = orchestrator.resolve(identity, timeout=cfg.fetch_timeout_s * 6)
        except LyricsNotFound:
            typer.echo(f"No lyrics found for {identity.display}", err=True)
            raise typer.Exit(code=1)
        except FutureTimeout:
            typer.echo(f"Timed out looking up lyrics for {identity.display}", err=True)
            raise typer.Exit(code=1)

    if lyric_set is None:
        raise typer.Exit(code=1)

    if json_output:
        typer.echo(export_json(lyric_set))
        return
    if lrc_output:
        typer.echo(export_lrc(lyric_set), nl=False)
        return
    if srt_output:
        typer.echo(export_srt(lyric_set), nl=False)
        return

    report = analyze(lyric_set)
    typer.echo(f"source={lyric_set.source}")
    typer.echo(f"synced={lyric_set.synced}")
    typer.echo(f"lines={len(lyric_set.real_lines)}")
    typer.echo(f"word_sync={lyric_set.has_word_sync}")
    typer.echo(f"quality={report.quality_score:.1f}")
    typer.echo()
    for line in lyric_set.real_lines:
        typer.echo(line.text)


@app.command()
def parse(
    path: Path,
    fmt: str = typer.Option("lrc", "--format", case_sensitive=False, help="lrc|ttml|yrc|plain"),
    duration: float = typer.Option(0.0, "--duration", "-d", help="Track duration in seconds"),
):
    """Parse a local lyrics file and print stats, quality report and score."""
    try:
        lyrics_format = LyricsFormat(fmt.lower())
    except ValueError:
        raise typer.BadParameter("format must be one of: lrc, ttml, yrc, plain")

    text = path.read_text(encoding="utf-8")
    if lyrics_format is LyricsFormat.LRC:
        _lines, stats = parse_lrc_with_stats(text)
        typer.echo(f"lines_total={stats.lines_total}")
        typer.echo(f"lines_with_timestamps={stats.lines_with_timestamps}")
        typer.echo(f"lines_ignored={stats.lines_ignored}")
        typer.echo(f"lines_emitted={stats.lines_emitted}")

    lines = parse_source(SourceResult("file", text, lyrics_format), duration)
    if not lines:
        typer.echo("No lyric lines found", err=True)
        raise typer.Exit(code=1)

    lyric_set = finalize(lines, source="file", synced=lyrics_format is not LyricsFormat.PLAIN)
    report = analyze(lyric_set)
    typer.echo(f"lines={len(lyric_set.real_lines)}")
    typer.echo(f"word_sync={lyric_set.has_word_sync}")
    typer.echo(f"reverse={report.reverse_count}")
    typer.echo(f"overlap={report.overlap_count}")
    typer.echo(f"short={report.short_count}")
    typer.echo(f"quality={report.quality_score:.1f}")
    typer.echo(f"valid={report.is_valid}")
    if report.issues:
        typer.echo(f"issues={', '.join(report.issues)}")
    typer.echo(f"score={score(lyric_set, duration, 'file', lyrics_format, report=report):.1f}")


@app.command()
def watch(
    title: str,
    artist: str,
    duration: float = typer.Option(0.0, "--duration", "-d", help="Track duration in seconds"),
    start: float = typer.Option(0.0, "--start", help="Simulated playback start position (s)"),
    speed: float = typer.Option(1.0, "--speed", help="Simulated playback speed"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """
    Resolve lyrics and follow them against a simulated playback clock.
    """
    setup_logging(debug)
    cfg = load_config()
    identity = TrackIdentity(title=title, artist=artist, duration_s=duration)
    raise typer.Exit(code=watch_loop(cfg, identity, sys.stdout, start=start, speed=max(speed, 0.1)))


@app.command()
def sources():
    """List configured lyrics providers."""
    cfg = load_config()
    built = {src.name for src in build_sources(cfg)}
    for name in cfg.sources:
        mark = "" if name in built else " (unknown)"
        typer.echo(f"{name}{mark}")
    typer.echo(f"strategy={cfg.strategy}")


def main() -> None:
    colorama.just_fix_windows_console()
    app()


if __name__ == "__main__":
    main()
