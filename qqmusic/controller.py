"""Playback controller — one live session, a progress sampler and the lyric cursor.

Receives commands via methods, broadcasts state via PlaybackState.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

from .api import get_music_url
from .config import POLL_INTERVAL
from .errors import ErrorKind, format_error
from .lyrics import current_index, load_cues
from .models import Cue, StreamResolution, Track
from .player import AudioPlayer, FFplayPlayer
from .state import PlaybackState

logger = logging.getLogger(__name__)

Resolver = Callable[[str, str], Awaitable[StreamResolution]]
LyricLoader = Callable[[str, str], Awaitable[list[Cue]]]


class Status(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"
    ERROR = "error"


@dataclass
class PlaybackSession:
    """The live binding between one track and one player instance.

    Owns its background tasks so that releasing the session is the only
    thing needed to silence it.
    """
    track: Track
    player: AudioPlayer
    playing: bool = False
    current_time: float = 0.0
    duration: float = 0.0
    cues: list[Cue] = field(default_factory=list)
    sampler: Optional[asyncio.Task] = None
    lyrics_task: Optional[asyncio.Task] = None
    released: bool = False

    def stop_sampler(self):
        task, self.sampler = self.sampler, None
        if task and not task.done():
            task.cancel()

    def release(self, stop: bool = True):
        """Stop + dispose the player and cancel owned tasks. Safe to call twice."""
        if self.released:
            return
        self.released = True
        self.playing = False
        self.stop_sampler()
        if self.lyrics_task and not self.lyrics_task.done():
            self.lyrics_task.cancel()
        if stop:
            self.player.stop()
        self.player.dispose()

    @property
    def cue_index(self) -> Optional[int]:
        return current_index(self.cues, self.current_time)


class PlaybackController:
    def __init__(
        self,
        state: PlaybackState,
        cookie_provider: Callable[[], str],
        player_factory: Callable[[], AudioPlayer] = FFplayPlayer,
        resolver: Resolver = get_music_url,
        lyric_loader: LyricLoader = load_cues,
        poll_interval: float = POLL_INTERVAL,
    ):
        self.state = state
        self._cookie_provider = cookie_provider
        self._player_factory = player_factory
        self._resolver = resolver
        self._lyric_loader = lyric_loader
        self._poll_interval = poll_interval

        self._session: Optional[PlaybackSession] = None
        self._status = Status.IDLE
        self._start_lock = asyncio.Lock()

    # ── Properties ───────────────────────────────────────────────────────────

    @property
    def status(self) -> Status:
        return self._status

    @property
    def session(self) -> Optional[PlaybackSession]:
        return self._session

    @property
    def track(self) -> Optional[Track]:
        return self._session.track if self._session else None

    # ── Session ownership ────────────────────────────────────────────────────

    def _release_current(self):
        """Detach and fully release the active session, if any."""
        old, self._session = self._session, None
        if old is not None:
            old.release()

    def _set_status(self, status: Status):
        if status is self._status:
            return
        self._status = status
        self.state.broadcast("status", {"status": status.value})

    def _fail(self, kind: ErrorKind, detail: str, track: Optional[Track]) -> str:
        message = format_error(kind, detail, {"songmid": track.songmid if track else None})
        self._set_status(Status.ERROR)
        self.state.broadcast("error", {"kind": kind.value, "message": message})
        return message

    # ── Commands ─────────────────────────────────────────────────────────────

    async def start(self, track: Track) -> StreamResolution:
        """Play track, replacing whatever is playing now."""
        async with self._start_lock:
            # The previous player must be silent before anything else happens
            self._release_current()
            self._set_status(Status.LOADING)
            self.state.broadcast("now_playing", {"track": track.to_dict(), "cover": track.cover_url()})

            resolution = await self._resolver(track.songmid, self._cookie_provider())
            if not resolution.ok:
                self._fail(resolution.error or ErrorKind.TRANSPORT, resolution.detail, track)
                return resolution

            player = self._player_factory()
            session = PlaybackSession(track=track, player=player)
            player.on_ready = lambda: self._handle_ready(session)
            player.on_ended = lambda: self._handle_ended(session)
            player.on_error = lambda msg: self._handle_error(session, msg)

            if not player.set_source(resolution.url):
                player.dispose()
                self._fail(ErrorKind.PLAYER_ERROR, "could not load audio source", track)
                return StreamResolution(error=ErrorKind.PLAYER_ERROR, detail="could not load audio source")

            self._session = session
            logger.info("Loading %s", track.display_name)
            return resolution

    def pause(self):
        session = self._session
        if session is None or self._status is not Status.PLAYING:
            return
        session.player.pause()
        session.playing = False
        session.stop_sampler()
        session.current_time = session.player.current_time
        self._set_status(Status.PAUSED)
        self._broadcast_tick(session)

    def resume(self):
        session = self._session
        if session is None or self._status not in (Status.PAUSED, Status.ENDED):
            return
        # A finished stream can't resume in place, rewind first
        finished = session.duration > 0 and session.current_time >= session.duration
        if self._status is Status.ENDED or finished:
            target = 0.0 if finished else session.current_time
            session.player.current_time = target
            session.current_time = target
        session.player.play()
        self._enter_playing(session)

    def toggle_pause(self):
        if self._status is Status.PLAYING:
            self.pause()
        else:
            self.resume()

    def seek(self, seconds: float):
        """Jump to seconds. Clamping to [0, duration] is the caller's job."""
        session = self._session
        if session is None or self._status not in (Status.PLAYING, Status.PAUSED, Status.ENDED):
            return
        session.player.current_time = seconds
        session.current_time = seconds
        self._broadcast_tick(session)

    async def stop(self):
        """Release the session and go idle."""
        async with self._start_lock:
            self._release_current()
            self._set_status(Status.IDLE)

    # ── Player callbacks ─────────────────────────────────────────────────────

    def _handle_ready(self, session: PlaybackSession):
        if session is not self._session:
            return  # stale player from a replaced session
        session.player.play()
        session.duration = max(session.player.duration or 0.0, 0.0)
        self._enter_playing(session)
        session.lyrics_task = asyncio.get_running_loop().create_task(self._load_lyrics(session))

    def _handle_ended(self, session: PlaybackSession):
        if session is not self._session:
            return
        session.playing = False
        session.stop_sampler()
        session.current_time = 0.0
        self._set_status(Status.ENDED)
        self._broadcast_tick(session)

    def _handle_error(self, session: PlaybackSession, message: str):
        if session is not self._session:
            return
        self._session = None
        session.release(stop=False)
        self._fail(ErrorKind.PLAYER_ERROR, message, session.track)

    # ── Background work ──────────────────────────────────────────────────────

    def _enter_playing(self, session: PlaybackSession):
        session.playing = True
        session.stop_sampler()
        session.sampler = asyncio.get_running_loop().create_task(self._sample(session))
        self._set_status(Status.PLAYING)

    async def _sample(self, session: PlaybackSession):
        """Read position/duration from the player every poll interval."""
        while session is self._session and session.playing:
            session.current_time = session.player.current_time
            duration = session.player.duration
            if duration and duration > 0:
                session.duration = duration
            self._broadcast_tick(session)
            await asyncio.sleep(self._poll_interval)

    async def _load_lyrics(self, session: PlaybackSession):
        try:
            cues = await self._lyric_loader(session.track.songmid, self._cookie_provider())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Lyrics unavailable for %s: %s", session.track.songmid, e)
            cues = []
        if session is not self._session:
            return
        session.cues = cues
        self.state.broadcast("lyrics", {
            "songmid": session.track.songmid,
            "lines": [{"time": c.time, "text": c.text} for c in cues],
        })
        self._broadcast_tick(session)

    def _broadcast_tick(self, session: PlaybackSession):
        self.state.broadcast("tick", {
            "elapsed": round(session.current_time, 2),
            "duration": round(session.duration, 2),
            "cue_index": session.cue_index,
        })

    def snapshot(self) -> dict:
        """Full state snapshot for a newly connected client."""
        session = self._session
        if session is None:
            return {"status": self._status.value, "track": None}
        return {
            "status": self._status.value,
            "track": session.track.to_dict(),
            "cover": session.track.cover_url(),
            "elapsed": round(session.current_time, 2),
            "duration": round(session.duration, 2),
            "cue_index": session.cue_index,
            "lines": [{"time": c.time, "text": c.text} for c in session.cues],
        }
