"""UI display helpers — print functions, progress bar, lyric viewport."""
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import APP_VERSION
from .lyrics import cue_window
from .models import Cue, Track

console = Console()


def fmt_time(seconds: float) -> str:
    m, s = divmod(int(max(seconds, 0)), 60)
    return f"{m:02d}:{s:02d}"


def progress_bar(elapsed: float, duration: float, width: int = 20) -> str:
    if not duration or duration <= 0:
        return ""
    filled = min(width, max(0, int(elapsed / duration * width)))
    return "[green]" + "━" * filled + "[/green]" + "[dim]" + "·" * (width - filled) + "[/dim]"


def print_header():
    console.print(
        f"\n  [bold cyan]♪  QQ Music[/bold cyan]"
        f"  [dim]v{APP_VERSION}[/dim]"
    )


def print_results(tracks: list[Track], playing_mid: Optional[str] = None):
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", style="white")
    table.add_column("Artist")
    for i, t in enumerate(tracks, 1):
        marker = "[blue]♫[/blue] " if t.songmid == playing_mid else ""
        table.add_row(str(i), marker + escape(t.title), escape(t.artist))
    console.print(table)
    console.print("  [dim]play <n> to stream · download <n> to save[/dim]")


def print_now_playing(track: dict):
    """Now-playing panel from a track dict (as broadcast by the controller)."""
    title = escape(track.get("title", "?"))
    artist = escape(track.get("artist", ""))
    console.print(Panel(
        f"  [bold]{title}[/bold]\n  {artist}",
        title="[bold green]♫[/bold green] Now playing",
        border_style="green",
        expand=False,
        padding=(0, 1),
    ))


def print_status_line(snapshot: dict):
    """One-liner with play state, progress and the current lyric."""
    track = snapshot.get("track")
    if not track:
        console.print(f"  [dim]{snapshot.get('status', 'idle')} — nothing playing[/dim]")
        return
    status = snapshot.get("status", "")
    icon = {"playing": "[green]♫[/green]", "paused": "[yellow]⏸[/yellow]",
            "loading": "[cyan]…[/cyan]", "ended": "[dim]■[/dim]"}.get(status, "[dim]·[/dim]")
    elapsed = snapshot.get("elapsed", 0.0)
    duration = snapshot.get("duration", 0.0)
    progress = ""
    if duration:
        progress = f"  {fmt_time(elapsed)}/{fmt_time(duration)} {progress_bar(elapsed, duration)}"
    line = ""
    idx = snapshot.get("cue_index")
    lines = snapshot.get("lines") or []
    if idx is not None and idx < len(lines):
        line = f"\n     [italic]{escape(lines[idx]['text'])}[/italic]"
    console.print(
        f"\n  {icon}{progress}  [dim]{escape(track.get('title', ''))} · {escape(track.get('artist', ''))}[/dim]{line}"
    )


def print_lyrics(cues: list[Cue], index: Optional[int], before: int = 3, after: int = 4):
    if not cues:
        console.print("  [dim]No lyrics for this song.[/dim]")
        return
    offset, window = cue_window(cues, index, before=before, after=after)
    for i, cue in enumerate(window, offset):
        text = escape(cue.text)
        if i == index:
            console.print(f"  [bold white]{fmt_time(cue.time)}  {text}[/bold white]")
        else:
            console.print(f"  [dim]{fmt_time(cue.time)}  {text}[/dim]")


def print_lyric_line(text: str):
    console.print(f"  [italic cyan]♪ {escape(text)}[/italic cyan]")


def print_error(message: str):
    console.print(f"  [red]{escape(message)}[/red]")


def print_help():
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(style="dim")
    for cmd, desc in [
        ("search <words>", "search songs and artists"),
        ("play <n>", "stream result n"),
        ("download <n>", "save result n as .m4a"),
        ("pause / resume / space", "toggle playback"),
        ("seek <sec> | +n | -n", "jump to a position"),
        ("lyrics", "show lyrics around the current line"),
        ("status", "show what's playing"),
        ("cookie <value>", "save your QQ Music cookie"),
        ("cookie clear", "forget the saved cookie"),
        ("test", "check the cookie against QQ Music"),
        ("quit", "exit"),
    ]:
        table.add_row(cmd, desc)
    console.print(table)
