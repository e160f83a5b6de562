"""QQ Music — terminal player entry point.

    python music.py          interactive terminal client
    python music.py --web    serve the web control surface
"""
import asyncio
import logging
import sys

from qqmusic.commands import MusicApp, parse_command
from qqmusic.config import DEV_MODE, WEB_HOST, WEB_PORT
from qqmusic.controller import PlaybackController
from qqmusic.preflight import run_preflight
from qqmusic.settings import CredentialStore
from qqmusic.state import PlaybackState
from qqmusic.ui import (
    console,
    print_error,
    print_header,
    print_help,
    print_lyric_line,
    print_now_playing,
)

logger = logging.getLogger(__name__)

# Controller events the terminal renders; download events belong to the web surface
_RENDERED = ("now_playing", "error", "lyrics", "status", "tick")


async def render_events(queue: asyncio.Queue):
    """Print controller events as they arrive: now playing, errors, lyric lines."""
    lines: list[dict] = []
    last_index = None
    while True:
        event, data = await queue.get()
        if event == "now_playing":
            lines, last_index = [], None
            print_now_playing(data["track"])
        elif event == "error":
            print_error(data["message"])
        elif event == "lyrics":
            lines = data["lines"]
            last_index = None
        elif event == "status" and data["status"] == "ended":
            console.print("  [dim]■ finished — resume to play again[/dim]")
        elif event == "tick":
            idx = data.get("cue_index")
            if idx is not None and idx != last_index and idx < len(lines):
                print_lyric_line(lines[idx]["text"])
            last_index = idx


async def main():
    print_header()

    store = CredentialStore()
    ok = await run_preflight(store)
    if not ok:
        sys.exit(1)

    state = PlaybackState()
    controller = PlaybackController(state, cookie_provider=store.get)
    app = MusicApp(store, controller)
    renderer = asyncio.create_task(render_events(state.subscribe("terminal", events=_RENDERED)))

    print_help()
    loop = asyncio.get_running_loop()
    try:
        while True:
            text = await loop.run_in_executor(None, input, "\n  › ")
            if not await app.handle(parse_command(text)):
                break
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        renderer.cancel()
        await app.shutdown()
        console.print("  [dim]Bye.[/dim]")


def run_web():
    import uvicorn
    from qqmusic.web.server import create_app

    uvicorn.run(create_app(), host=WEB_HOST, port=WEB_PORT, log_level="debug" if DEV_MODE else "info")


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.DEBUG if DEV_MODE else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if "--web" in sys.argv[1:]:
        run_web()
    else:
        try:
            asyncio.run(main())
        except KeyboardInterrupt:
            pass
