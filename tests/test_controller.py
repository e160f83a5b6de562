"""Tests for the playback controller.

The fake player never fires callbacks on its own; tests call
_emit_ready / _emit_ended / _emit_error to drive it.
"""
import asyncio

from conftest import PlayerFactory
from qqmusic.controller import PlaybackController, PlaybackSession, Status
from qqmusic.errors import ErrorKind
from qqmusic.models import Cue, StreamResolution
from qqmusic.state import PlaybackState


async def _resolve_ok(songmid, cookie):
    return StreamResolution(url=f"http://stream/{songmid}.m4a")


async def _resolve_gated(songmid, cookie):
    return StreamResolution(error=ErrorKind.ACCESS_GATED, detail="empty purl")


async def _no_lyrics(songmid, cookie):
    return []


def _controller(factory, **kwargs) -> PlaybackController:
    kwargs.setdefault("resolver", _resolve_ok)
    kwargs.setdefault("lyric_loader", _no_lyrics)
    return PlaybackController(
        PlaybackState(),
        cookie_provider=lambda: "uin=1",
        player_factory=factory,
        poll_interval=0.01,
        **kwargs,
    )


def _drain(queue) -> list:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


class TestStart:
    """Tests for starting and replacing sessions."""

    def test_replacement_silences_previous_first(self, player_factory, track_a, track_b) -> None:
        async def go():
            ctl = _controller(player_factory)
            await ctl.start(track_a)
            player_factory.players[0]._emit_ready()
            await asyncio.sleep(0.02)
            await ctl.start(track_b)
            player_factory.players[1]._emit_ready()
            return ctl

        ctl = asyncio.run(go())
        log = player_factory.log
        assert log.index(("p0", "stop")) < log.index(("p1", "set_source"))
        assert log.index(("p0", "dispose")) < log.index(("p1", "play"))
        assert [p.name for p in player_factory.live] == ["p1"]
        assert ctl.track == track_b
        assert ctl.status is Status.PLAYING

    def test_source_comes_from_resolver(self, player_factory, track_a) -> None:
        async def go():
            ctl = _controller(player_factory)
            resolution = await ctl.start(track_a)
            return ctl, resolution

        ctl, resolution = asyncio.run(go())
        assert resolution.ok
        assert player_factory.players[0].source == "http://stream/000aaa.m4a"
        assert ctl.status is Status.LOADING
        assert player_factory.log == [("p0", "set_source")]

    def test_concurrent_starts_leave_one_live_player(self, player_factory, track_a, track_b) -> None:
        async def go():
            ctl = _controller(player_factory)
            await asyncio.gather(ctl.start(track_a), ctl.start(track_b))
            return ctl

        ctl = asyncio.run(go())
        assert len(player_factory.live) == 1
        assert ctl.session.player is player_factory.live[0]

    def test_resolve_failure_reports_error(self, player_factory, track_a, errors_log) -> None:
        async def go():
            ctl = _controller(player_factory, resolver=_resolve_gated)
            queue = ctl.state.subscribe("t")
            resolution = await ctl.start(track_a)
            return ctl, resolution, _drain(queue)

        ctl, resolution, events = asyncio.run(go())
        assert resolution.error is ErrorKind.ACCESS_GATED
        assert ctl.status is Status.ERROR
        assert ctl.session is None
        assert player_factory.players == []
        errors = [data for event, data in events if event == "error"]
        assert errors[0]["kind"] == "access_gated"
        assert "access_gated" in errors_log.read_text()

    def test_rejected_source_disposes_player(self, track_a) -> None:
        factory = PlayerFactory(accept=False)

        async def go():
            ctl = _controller(factory)
            resolution = await ctl.start(track_a)
            return ctl, resolution

        ctl, resolution = asyncio.run(go())
        assert resolution.error is ErrorKind.PLAYER_ERROR
        assert factory.players[0].disposed
        assert ctl.session is None
        assert ctl.status is Status.ERROR

    def test_failure_stops_previous_track(self, player_factory, track_a, track_b) -> None:
        """A failed start still leaves nothing audible from before."""
        async def go():
            ctl = _controller(player_factory)
            await ctl.start(track_a)
            player_factory.players[0]._emit_ready()
            ctl._resolver = _resolve_gated
            await ctl.start(track_b)
            return ctl

        ctl = asyncio.run(go())
        assert player_factory.players[0].stopped
        assert player_factory.live == []
        assert ctl.status is Status.ERROR


class TestLyrics:
    """Tests for the lyric fetch running alongside playback."""

    def test_playback_does_not_wait_for_lyrics(self, player_factory, track_a) -> None:
        async def go():
            gate = asyncio.Event()

            async def slow_lyrics(songmid, cookie):
                await gate.wait()
                return [Cue(0.0, "first line")]

            ctl = _controller(player_factory, lyric_loader=slow_lyrics)
            queue = ctl.state.subscribe("t")
            await ctl.start(track_a)
            player_factory.players[0]._emit_ready()
            before = (ctl.status, list(ctl.session.cues))
            gate.set()
            await asyncio.sleep(0.03)
            return ctl, before, _drain(queue)

        ctl, before, events = asyncio.run(go())
        assert before == (Status.PLAYING, [])
        assert ("p0", "play") in player_factory.log
        assert ctl.session.cues == [Cue(0.0, "first line")]
        lyric_events = [data for event, data in events if event == "lyrics"]
        assert lyric_events[0]["lines"] == [{"time": 0.0, "text": "first line"}]

    def test_lyric_failure_keeps_playing(self, player_factory, track_a) -> None:
        async def go():
            async def broken(songmid, cookie):
                raise RuntimeError("lyrics backend down")

            ctl = _controller(player_factory, lyric_loader=broken)
            await ctl.start(track_a)
            player_factory.players[0]._emit_ready()
            await asyncio.sleep(0.03)
            return ctl

        ctl = asyncio.run(go())
        assert ctl.status is Status.PLAYING
        assert ctl.session.cues == []

    def test_late_lyrics_for_replaced_track_dropped(self, player_factory, track_a, track_b) -> None:
        async def go():
            async def lyrics(songmid, cookie):
                await asyncio.sleep(0.01)
                return [Cue(1.0, songmid)]

            ctl = _controller(player_factory, lyric_loader=lyrics)
            await ctl.start(track_a)
            player_factory.players[0]._emit_ready()
            await ctl.start(track_b)
            player_factory.players[1]._emit_ready()
            await asyncio.sleep(0.05)
            return ctl

        ctl = asyncio.run(go())
        assert ctl.session.cues == [Cue(1.0, "000bbb")]


class TestPlaybackControls:
    """Tests for pause / resume / seek / stop and the sampler."""

    def test_sampler_tracks_position_and_cue(self, player_factory, track_a) -> None:
        async def go():
            async def lyrics(songmid, cookie):
                return [Cue(5.0, "World"), Cue(12.5, "Hello")]

            ctl = _controller(player_factory, lyric_loader=lyrics)
            queue = ctl.state.subscribe("t")
            await ctl.start(track_a)
            player = player_factory.players[0]
            player._emit_ready()
            player._time = 7.0
            await asyncio.sleep(0.05)
            return ctl, _drain(queue)

        ctl, events = asyncio.run(go())
        assert ctl.session.current_time == 7.0
        assert ctl.session.duration == 200.0
        assert ctl.session.cue_index == 0
        ticks = [data for event, data in events if event == "tick"]
        assert ticks[-1] == {"elapsed": 7.0, "duration": 200.0, "cue_index": 0}

    def test_pause_stops_sampler_and_resume_restarts(self, player_factory, track_a) -> None:
        async def go():
            ctl = _controller(player_factory)
            await ctl.start(track_a)
            player = player_factory.players[0]
            player._emit_ready()
            player._time = 30.0
            ctl.pause()
            paused = (ctl.status, ctl.session.sampler, ctl.session.current_time)
            player._time = 99.0
            await asyncio.sleep(0.03)
            frozen = ctl.session.current_time
            ctl.resume()
            return ctl, paused, frozen

        ctl, paused, frozen = asyncio.run(go())
        assert paused == (Status.PAUSED, None, 30.0)
        assert frozen == 30.0
        assert player_factory.log[-2:] == [("p0", "pause"), ("p0", "play")]
        assert ctl.status is Status.PLAYING

    def test_toggle_pause(self, player_factory, track_a) -> None:
        async def go():
            ctl = _controller(player_factory)
            await ctl.start(track_a)
            player_factory.players[0]._emit_ready()
            ctl.toggle_pause()
            first = ctl.status
            ctl.toggle_pause()
            return first, ctl.status

        assert asyncio.run(go()) == (Status.PAUSED, Status.PLAYING)

    def test_seek_while_paused_stays_paused(self, player_factory, track_a) -> None:
        async def go():
            ctl = _controller(player_factory)
            await ctl.start(track_a)
            player_factory.players[0]._emit_ready()
            ctl.pause()
            ctl.seek(45.0)
            return ctl

        ctl = asyncio.run(go())
        assert ("p0", "seek", 45.0) in player_factory.log
        assert ctl.session.current_time == 45.0
        assert ctl.status is Status.PAUSED
        assert ctl.session.sampler is None

    def test_ended_then_resume_rewinds(self, player_factory, track_a) -> None:
        async def go():
            ctl = _controller(player_factory)
            await ctl.start(track_a)
            player = player_factory.players[0]
            player._emit_ready()
            player._emit_ended()
            ended = (ctl.status, ctl.session.current_time, ctl.session.sampler)
            ctl.resume()
            return ctl, ended

        ctl, ended = asyncio.run(go())
        assert ended == (Status.ENDED, 0.0, None)
        assert not player_factory.players[0].disposed
        assert player_factory.log[-2:] == [("p0", "seek", 0.0), ("p0", "play")]
        assert ctl.status is Status.PLAYING

    def test_player_error_clears_session(self, player_factory, track_a) -> None:
        async def go():
            ctl = _controller(player_factory)
            queue = ctl.state.subscribe("t")
            await ctl.start(track_a)
            player_factory.players[0]._emit_ready()
            player_factory.players[0]._emit_error("decoder died")
            ctl.pause()
            ctl.resume()
            ctl.seek(10.0)
            return ctl, _drain(queue)

        ctl, events = asyncio.run(go())
        assert ctl.session is None
        assert ctl.status is Status.ERROR
        assert player_factory.players[0].disposed
        assert ("p0", "stop") not in player_factory.log
        assert player_factory.log[-1] == ("p0", "dispose")
        assert any(e == "error" and d["kind"] == "player_error" for e, d in events)

    def test_stale_callbacks_ignored(self, player_factory, track_a, track_b) -> None:
        async def go():
            ctl = _controller(player_factory)
            await ctl.start(track_a)
            old = player_factory.players[0]
            old._emit_ready()
            await ctl.start(track_b)
            player_factory.players[1]._emit_ready()
            old._emit_ended()
            old._emit_error("late failure")
            old._emit_ready()
            return ctl

        ctl = asyncio.run(go())
        assert ctl.status is Status.PLAYING
        assert ctl.track == track_b
        assert player_factory.log.count(("p0", "play")) == 1

    def test_stop_goes_idle(self, player_factory, track_a) -> None:
        async def go():
            ctl = _controller(player_factory)
            await ctl.start(track_a)
            player_factory.players[0]._emit_ready()
            await ctl.stop()
            return ctl

        ctl = asyncio.run(go())
        assert ctl.status is Status.IDLE
        assert ctl.snapshot() == {"status": "idle", "track": None}
        assert player_factory.log[-2:] == [("p0", "stop"), ("p0", "dispose")]

    def test_controls_without_session_are_noops(self, player_factory) -> None:
        async def go():
            ctl = _controller(player_factory)
            ctl.pause()
            ctl.resume()
            ctl.toggle_pause()
            ctl.seek(12.0)
            return ctl

        ctl = asyncio.run(go())
        assert ctl.status is Status.IDLE
        assert player_factory.log == []


class TestPlaybackSession:
    """Tests for PlaybackSession.release."""

    def test_release_is_idempotent(self, player_factory, track_a) -> None:
        player = player_factory()
        session = PlaybackSession(track=track_a, player=player)
        session.release()
        session.release()
        assert player_factory.log == [("p0", "stop"), ("p0", "dispose")]
        assert session.released
