"""Starlette app — HTTP routes + WebSocket control surface."""
import asyncio
import logging
import shutil
import uuid
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import Callable, Optional

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from ..api import search_songs
from ..config import APP_VERSION, CATALOG_LIMIT, PLAYER_BIN, SAVE_DIR, SEARCH_PAGE_SIZE
from ..controller import PlaybackController
from ..download import download_song
from ..errors import ErrorKind, format_error, friendly_message
from ..models import Track
from ..player import AudioPlayer, FFplayPlayer
from ..settings import CredentialStore
from ..state import PlaybackState

logger = logging.getLogger(__name__)

# Shared state
_state = PlaybackState()
_store: Optional[CredentialStore] = None
_controller: Optional[PlaybackController] = None

# Tracks seen in recent search results, keyed by songmid, oldest first
_catalog: "OrderedDict[str, Track]" = OrderedDict()
_background: set[asyncio.Task] = set()

_ERROR_STATUS = {
    ErrorKind.MISSING_CREDENTIAL: 401,
    ErrorKind.ACCESS_GATED: 403,
    ErrorKind.TRANSPORT: 502,
}


def _error_response(kind: ErrorKind, detail: str = "") -> JSONResponse:
    return JSONResponse(
        {"error": kind.value, "message": friendly_message(kind), "detail": detail},
        status_code=_ERROR_STATUS.get(kind, 500),
    )


# ── Health ───────────────────────────────────────────────────────────────────

async def health(request):
    checks = {
        "cookie": {"ok": bool(_store and _store.get())},
        "player": {"ok": shutil.which(PLAYER_BIN) is not None, "binary": PLAYER_BIN},
    }
    all_ok = all(c["ok"] for c in checks.values())
    return JSONResponse({
        "status": "ok" if all_ok else "degraded",
        "version": APP_VERSION,
        "checks": checks,
    })


# ── Search / download ────────────────────────────────────────────────────────

async def search(request: Request):
    keyword = request.query_params.get("q", "").strip()
    try:
        size = int(request.query_params.get("n", SEARCH_PAGE_SIZE))
    except ValueError:
        size = SEARCH_PAGE_SIZE
    size = max(1, min(size, 50))

    result = await search_songs(keyword, _store.get(), page_size=size)
    if result.empty:
        return JSONResponse({"tracks": [], "empty": True})
    if not result.ok:
        format_error(result.error, result.detail, {"query": keyword})
        return _error_response(result.error, result.detail)

    _remember(result.tracks)
    return JSONResponse({"tracks": [t.to_dict() for t in result.tracks], "empty": False})


def _remember(tracks: list[Track]):
    """Add tracks to the catalog, evicting the oldest past CATALOG_LIMIT."""
    for track in tracks:
        _catalog[track.songmid] = track
        _catalog.move_to_end(track.songmid)
    while len(_catalog) > CATALOG_LIMIT:
        _catalog.popitem(last=False)


async def start_download(request: Request):
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "invalid JSON body"}, status_code=400)
    songmid = body.get("songmid") if isinstance(body, dict) else None
    if not isinstance(songmid, str):
        return JSONResponse({"error": "songmid must be a string"}, status_code=400)
    track = _catalog.get(songmid)
    if track is None:
        return JSONResponse({"error": "unknown songmid — search first"}, status_code=404)

    _spawn(_run_download(track))
    return JSONResponse({"accepted": True, "songmid": songmid}, status_code=202)


def _spawn(coro) -> asyncio.Task:
    """Run coro in the background, keeping a reference until it finishes."""
    task = asyncio.create_task(coro)
    _background.add(task)
    task.add_done_callback(_background.discard)
    return task


async def _run_download(track: Track):
    result = await download_song(track, _store.get(), save_dir=SAVE_DIR)
    if result.ok:
        _state.broadcast("download_done", {"songmid": track.songmid, "path": str(result.path)})
        return
    message = format_error(
        result.error or ErrorKind.IO_ERROR, result.detail,
        {"songmid": track.songmid, "stage": result.stage},
    )
    _state.broadcast("download_failed", {
        "songmid": track.songmid, "stage": result.stage, "message": message,
    })


async def playback_state(request):
    return JSONResponse(_controller.snapshot())


# ── WebSocket ────────────────────────────────────────────────────────────────

async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    client_id = str(uuid.uuid4())
    queue = _state.subscribe(client_id)
    logger.info("WS connected: %s", client_id)

    await websocket.send_json({"type": "sync", "data": _controller.snapshot()})

    # Two tasks: one reads from client, one writes from queue
    async def _reader():
        while True:
            try:
                data = await websocket.receive_json()
            except WebSocketDisconnect:
                return
            except ValueError as e:
                logger.warning("WS %s sent invalid JSON: %s", client_id, e)
                continue
            # One bad message must not end the channel
            try:
                await _handle_ws_message(data)
            except Exception as e:
                logger.error("WS message %r failed: %s", data, e)

    async def _writer():
        try:
            while True:
                event, data = await queue.get()
                await websocket.send_json({"type": event, "data": data})
        except Exception as e:
            logger.debug("WS writer stopped: %s", e)

    reader_task = asyncio.create_task(_reader())
    writer_task = asyncio.create_task(_writer())

    try:
        done, pending = await asyncio.wait(
            [reader_task, writer_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
    finally:
        _state.unsubscribe(client_id)
        logger.info("WS disconnected: %s", client_id)


async def _handle_ws_message(data: dict):
    """Route incoming WebSocket messages to controller methods."""
    if not isinstance(data, dict):
        return
    msg_type = data.get("type", "")

    if msg_type == "play":
        songmid = data.get("songmid")
        if not isinstance(songmid, str):
            _state.broadcast("error", {"kind": "bad_request", "message": "play needs a songmid string."})
            return
        track = _catalog.get(songmid)
        if track is None:
            _state.broadcast("error", {"kind": "unknown_track", "message": "Search for the song first."})
            return
        _spawn(_controller.start(track))

    elif msg_type == "pause":
        _controller.pause()

    elif msg_type == "resume":
        _controller.resume()

    elif msg_type == "toggle_pause":
        _controller.toggle_pause()

    elif msg_type == "seek":
        session = _controller.session
        try:
            target = float(data.get("time", 0))
        except (TypeError, ValueError):
            return
        if session is not None:
            target = max(0.0, target)
            if session.duration > 0:
                target = min(target, session.duration)
        _controller.seek(target)

    elif msg_type == "stop":
        await _controller.stop()

    else:
        logger.warning("Unknown WS message type: %s", msg_type)


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(
    store: Optional[CredentialStore] = None,
    player_factory: Callable[[], AudioPlayer] = FFplayPlayer,
) -> Starlette:
    global _store, _controller

    _store = store or CredentialStore()
    _controller = PlaybackController(_state, cookie_provider=_store.get, player_factory=player_factory)
    _catalog.clear()

    routes = [
        Route("/api/health", health),
        Route("/api/search", search),
        Route("/api/download", start_download, methods=["POST"]),
        Route("/api/state", playback_state),
        WebSocketRoute("/ws", websocket_endpoint),
    ]

    return Starlette(routes=routes, lifespan=_lifespan)


@asynccontextmanager
async def _lifespan(app):
    yield
    # Silence playback, let downloads finish
    if _controller:
        await _controller.stop()
        logger.info("Playback stopped")
    if _background:
        await asyncio.gather(*_background, return_exceptions=True)
