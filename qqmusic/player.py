"""Audio Playback — opaque player interface + ffplay subprocess backend"""
import asyncio
import logging
import os
import shutil
import signal
import subprocess
import time
from typing import Callable, Optional

from .config import PLAYER_BIN, PROBE_BIN

logger = logging.getLogger(__name__)


def get_audio_duration(source: str, probe_bin: str = PROBE_BIN) -> Optional[float]:
    """Get stream duration in seconds using ffprobe. Returns None on failure."""
    try:
        result = subprocess.run(
            [probe_bin, "-v", "error", "-show_entries", "format=duration",
             "-of", "default=noprint_wrappers=1:nokey=1", source],
            capture_output=True, text=True, timeout=15,
        )
        return float(result.stdout.strip())
    except (OSError, subprocess.SubprocessError, ValueError):
        return None


class AudioPlayer:
    """What the playback controller needs from an audio engine.

    Callbacks are plain callables invoked on the event loop:
    on_ready() once the source can play, on_ended() on natural end of
    stream, on_error(message) on a runtime failure.
    """

    def __init__(self):
        self.on_ready: Optional[Callable[[], None]] = None
        self.on_ended: Optional[Callable[[], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None

    def set_source(self, url: str) -> bool:
        raise NotImplementedError

    def play(self):
        raise NotImplementedError

    def pause(self):
        raise NotImplementedError

    def stop(self):
        raise NotImplementedError

    def dispose(self):
        raise NotImplementedError

    @property
    def current_time(self) -> float:
        raise NotImplementedError

    @current_time.setter
    def current_time(self, seconds: float):
        raise NotImplementedError

    @property
    def duration(self) -> float:
        raise NotImplementedError

    def _emit_ready(self):
        if self.on_ready:
            self.on_ready()

    def _emit_ended(self):
        if self.on_ended:
            self.on_ended()

    def _emit_error(self, message: str):
        if self.on_error:
            self.on_error(message)


class FFplayPlayer(AudioPlayer):
    """Streams a URL through ffplay.

    ffplay has no control channel, so position is tracked with a monotonic
    clock, pause suspends the process in place (SIGSTOP) and seeking restarts
    it at the target offset.
    """

    def __init__(self, binary: str = PLAYER_BIN, probe_bin: str = PROBE_BIN):
        super().__init__()
        self._binary = binary
        self._probe_bin = probe_bin
        self._source: Optional[str] = None
        self._proc: Optional[subprocess.Popen] = None
        self._paused: bool = False
        self._duration: float = 0.0
        self._play_start: float = 0.0
        self._paused_at: float = 0.0
        self._total_paused: float = 0.0
        self._offset: float = 0.0
        self._disposed: bool = False
        self._prepare_task: Optional[asyncio.Task] = None
        self._watcher_task: Optional[asyncio.Task] = None

    # ── Source ─────────────────────────────────────────────────────────────────

    def set_source(self, url: str) -> bool:
        """Accept the URL and probe it in the background; on_ready follows."""
        if self._disposed or not url:
            return False
        if shutil.which(self._binary) is None:
            logger.error("Player binary not found: %s", self._binary)
            return False
        self._source = url
        self._duration = 0.0
        self._offset = 0.0
        self._prepare_task = asyncio.get_running_loop().create_task(self._prepare())
        return True

    async def _prepare(self):
        loop = asyncio.get_running_loop()
        duration = await loop.run_in_executor(None, get_audio_duration, self._source, self._probe_bin)
        if self._disposed:
            return
        self._duration = duration or 0.0
        self._emit_ready()

    # ── Playback ───────────────────────────────────────────────────────────────

    def play(self):
        if self._disposed or not self._source:
            return
        if self._proc and self._proc.poll() is None:
            if self._paused:
                self._resume()
            return
        self._spawn(self._offset)

    def _spawn(self, position: float):
        proc = subprocess.Popen(
            [self._binary, "-nodisp", "-autoexit", "-loglevel", "error",
             "-ss", f"{position:.3f}", self._source],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        self._proc = proc
        self._paused = False
        self._offset = position
        self._play_start = time.monotonic()
        self._paused_at = 0.0
        self._total_paused = 0.0
        self._watcher_task = asyncio.get_running_loop().create_task(self._watch(proc))

    async def _watch(self, proc: subprocess.Popen):
        """Wait for ffplay to exit, then report end of stream or failure."""
        loop = asyncio.get_running_loop()
        code = await loop.run_in_executor(None, proc.wait)
        if proc is not self._proc:
            return  # replaced by seek/stop, not a playback event
        self._offset = self.current_time
        self._proc = None
        self._play_start = 0.0
        if code == 0:
            self._emit_ended()
        else:
            self._emit_error(f"{self._binary} exited with status {code}")

    def pause(self):
        """Suspend ffplay in place (SIGSTOP). Position is preserved."""
        if self._proc and self._proc.poll() is None and not self._paused:
            try:
                os.kill(self._proc.pid, signal.SIGSTOP)
                self._paused = True
                self._paused_at = time.monotonic()
            except ProcessLookupError:
                pass

    def _resume(self):
        try:
            os.kill(self._proc.pid, signal.SIGCONT)
            if self._paused_at > 0:
                self._total_paused += time.monotonic() - self._paused_at
                self._paused_at = 0.0
        except ProcessLookupError:
            pass
        self._paused = False

    def _terminate(self):
        """Kill the current ffplay without firing ended/error."""
        proc, self._proc = self._proc, None
        if self._watcher_task and not self._watcher_task.done():
            self._watcher_task.cancel()
        self._watcher_task = None
        if proc and proc.poll() is None:
            if self._paused:
                # SIGSTOP blocks SIGTERM, resume first
                try:
                    os.kill(proc.pid, signal.SIGCONT)
                except ProcessLookupError:
                    pass
            proc.terminate()
            try:
                proc.wait(timeout=2)
            except subprocess.TimeoutExpired:
                proc.kill()
        self._paused = False

    def stop(self):
        self._terminate()
        self._offset = 0.0
        self._play_start = 0.0

    def dispose(self):
        self.stop()
        if self._prepare_task and not self._prepare_task.done():
            self._prepare_task.cancel()
        self._disposed = True
        self._source = None
        self.on_ready = self.on_ended = self.on_error = None

    # ── Position ───────────────────────────────────────────────────────────────

    @property
    def current_time(self) -> float:
        """Seconds into the stream, accounting for pauses and seeks."""
        if self._play_start == 0:
            return self._offset
        if self._paused and self._paused_at > 0:
            raw = self._paused_at - self._play_start - self._total_paused
        else:
            raw = time.monotonic() - self._play_start - self._total_paused
        return self._offset + raw

    @current_time.setter
    def current_time(self, seconds: float):
        position = max(0.0, float(seconds))
        running = self._proc is not None and self._proc.poll() is None
        if not running:
            self._offset = position
            self._play_start = 0.0
            return
        was_paused = self._paused
        self._terminate()
        self._spawn(position)
        if was_paused:
            self.pause()

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def disposed(self) -> bool:
        return self._disposed
