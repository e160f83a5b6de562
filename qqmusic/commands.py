"""Command parsing + handlers for the terminal client."""
import asyncio
import re
from pathlib import Path
from typing import Optional

from .api import check_cookie, search_songs
from .config import SAVE_DIR
from .controller import PlaybackController
from .download import download_song
from .errors import ErrorKind, format_error
from .models import Track
from .settings import CredentialStore
from .ui import console, print_error, print_help, print_lyrics, print_results, print_status_line

_ALIASES = {
    "s": "search", "find": "search",
    "p": "play",
    "d": "download", "dl": "download",
    "toggle": "toggle_pause",
    "lrc": "lyrics",
    "now": "status",
    "q": "quit", "exit": "quit", "bye": "quit",
    "?": "help", "h": "help",
}

_KNOWN = {
    "search", "play", "download", "pause", "resume", "toggle_pause", "seek",
    "lyrics", "status", "cookie", "test", "help", "quit",
}

_RELATIVE_SEEK = re.compile(r"^([+-])\s*(\d+(?:\.\d+)?)$")


def parse_command(text: str) -> dict:
    """
    Returns:
    {
        "command": one of _KNOWN | None,
        "arg":     str | int | float | dict | None,
        "raw":     original text,
    }
    Free text that isn't a command is treated as a search.
    """
    result: dict = {"command": None, "arg": None, "raw": text}
    if not text:
        return result
    if not text.strip():
        # A lone space toggles playback
        result["command"] = "toggle_pause"
        return result

    t = text.strip()
    rel = _RELATIVE_SEEK.match(t)
    if rel:
        sign = -1 if rel.group(1) == "-" else 1
        result["command"] = "seek"
        result["arg"] = {"value": sign * float(rel.group(2)), "relative": True}
        return result

    head, _, rest = t.partition(" ")
    name = _ALIASES.get(head.lower(), head.lower())
    rest = rest.strip()

    if name not in _KNOWN:
        result["command"] = "search"
        result["arg"] = t
        return result

    result["command"] = name
    if name in ("play", "download"):
        result["arg"] = int(rest) if rest.isdigit() else None
    elif name == "seek":
        result["arg"] = _parse_seek(rest)
    elif name in ("search", "cookie"):
        result["arg"] = rest or None
    return result


def _parse_seek(rest: str) -> Optional[dict]:
    rel = _RELATIVE_SEEK.match(rest)
    if rel:
        sign = -1 if rel.group(1) == "-" else 1
        return {"value": sign * float(rel.group(2)), "relative": True}
    # mm:ss or plain seconds
    m = re.match(r"^(\d+):(\d{1,2})$", rest)
    if m:
        return {"value": int(m.group(1)) * 60 + int(m.group(2)), "relative": False}
    try:
        return {"value": float(rest), "relative": False}
    except ValueError:
        return None


class MusicApp:
    """Terminal client state: last search results, controller, downloads."""

    def __init__(
        self,
        store: CredentialStore,
        controller: PlaybackController,
        save_dir: Path = SAVE_DIR,
    ):
        self.store = store
        self.controller = controller
        self.save_dir = save_dir
        self.results: list[Track] = []
        self.downloads: set[asyncio.Task] = set()
        self._play_task: Optional[asyncio.Task] = None

    def _pick(self, n: Optional[int]) -> Optional[Track]:
        if not self.results:
            print_error("Search for something first.")
            return None
        if n is None or not 1 <= n <= len(self.results):
            print_error(f"Pick a number between 1 and {len(self.results)}.")
            return None
        return self.results[n - 1]

    async def handle(self, cmd: dict) -> bool:
        """Run one parsed command. Returns False when the user wants to quit."""
        name = cmd.get("command")
        arg = cmd.get("arg")

        if name is None:
            return True
        if name == "quit":
            return False
        if name == "help":
            print_help()
        elif name == "search":
            await self.search(arg or "")
        elif name == "play":
            track = self._pick(arg)
            if track:
                self.play(track)
        elif name == "download":
            track = self._pick(arg)
            if track:
                self.download(track)
        elif name == "pause":
            self.controller.pause()
        elif name == "resume":
            self.controller.resume()
        elif name == "toggle_pause":
            self.controller.toggle_pause()
        elif name == "seek":
            self.seek(arg)
        elif name == "lyrics":
            session = self.controller.session
            if session is None:
                console.print("  [dim]Nothing playing.[/dim]")
            else:
                print_lyrics(session.cues, session.cue_index)
        elif name == "status":
            print_status_line(self.controller.snapshot())
        elif name == "cookie":
            self.set_cookie(arg)
        elif name == "test":
            await self.test_cookie()
        return True

    # ── Actions ──────────────────────────────────────────────────────────────

    async def search(self, keyword: str):
        with console.status("  [yellow]Searching...[/yellow]", spinner="dots"):
            result = await search_songs(keyword, self.store.get())
        if result.empty:
            console.print("  [yellow]No songs found.[/yellow]")
            return
        if not result.ok:
            print_error(format_error(result.error, result.detail, {"query": keyword}))
            return
        self.results = result.tracks
        playing = self.controller.track.songmid if self.controller.track else None
        print_results(self.results, playing_mid=playing)

    def play(self, track: Track):
        """Start playback in the background; the controller reports progress."""
        self._play_task = asyncio.create_task(self.controller.start(track))

    def download(self, track: Track):
        """Downloads run independently of playback and of each other."""
        console.print(f"  [dim]Downloading {track.display_name}...[/dim]")
        task = asyncio.create_task(self._download(track))
        self.downloads.add(task)
        task.add_done_callback(self.downloads.discard)

    async def _download(self, track: Track):
        result = await download_song(track, self.store.get(), save_dir=self.save_dir)
        if result.ok:
            console.print(f"  [green]Saved:[/green] {result.path}")
        else:
            message = format_error(
                result.error or ErrorKind.IO_ERROR, result.detail,
                {"songmid": track.songmid, "stage": result.stage},
            )
            print_error(f"Download failed ({result.stage}): {message}")

    def seek(self, arg: Optional[dict]):
        session = self.controller.session
        if session is None or arg is None:
            return
        target = session.current_time + arg["value"] if arg["relative"] else arg["value"]
        target = max(0.0, target)
        if session.duration > 0:
            target = min(target, session.duration)
        self.controller.seek(target)

    def set_cookie(self, value: Optional[str]):
        if not value:
            masked = self.store.masked()
            console.print(f"  Cookie: {masked or '[yellow]not set[/yellow]'}")
            return
        if value.lower() == "clear":
            self.store.remove()
            if self.store.from_env:
                console.print("  [yellow]Saved cookie cleared, but QQMUSIC_COOKIE is still set and stays in use.[/yellow]")
            else:
                console.print("  [green]Cookie cleared.[/green]")
            return
        self.store.set(value)
        if self.store.from_env:
            console.print("  [yellow]Cookie saved, but QQMUSIC_COOKIE overrides it until unset.[/yellow]")
            return
        console.print("  [green]Cookie saved.[/green] Run [bold]test[/bold] to check it.")

    async def test_cookie(self):
        cookie = self.store.get()
        if not cookie:
            print_error(format_error(ErrorKind.MISSING_CREDENTIAL))
            return
        with console.status("  [yellow]Testing...[/yellow]", spinner="dots"):
            ok = await check_cookie(cookie)
        if ok:
            console.print("  [green]Connection OK ✓[/green]")
        else:
            console.print("  [red]Connection failed ✗[/red]")

    async def shutdown(self):
        """Stop playback; let in-flight downloads finish."""
        await self.controller.stop()
        if self.downloads:
            console.print(f"  [dim]Waiting for {len(self.downloads)} download(s)...[/dim]")
            await asyncio.gather(*self.downloads, return_exceptions=True)
