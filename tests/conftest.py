"""Shared fixtures: a scriptable fake player and httpx mock clients."""
import httpx
import pytest

from qqmusic.models import Track
from qqmusic.player import AudioPlayer


class FakePlayer(AudioPlayer):
    """Records every call into a shared log so tests can check ordering."""

    def __init__(self, log: list, name: str, accept: bool = True, duration: float = 200.0):
        super().__init__()
        self.log = log
        self.name = name
        self.accept = accept
        self.source = None
        self.playing = False
        self.stopped = False
        self.disposed = False
        self._time = 0.0
        self._duration = duration

    def set_source(self, url: str) -> bool:
        self.log.append((self.name, "set_source"))
        self.source = url
        return self.accept

    def play(self):
        self.log.append((self.name, "play"))
        self.playing = True

    def pause(self):
        self.log.append((self.name, "pause"))
        self.playing = False

    def stop(self):
        self.log.append((self.name, "stop"))
        self.stopped = True
        self.playing = False

    def dispose(self):
        self.log.append((self.name, "dispose"))
        self.disposed = True

    @property
    def current_time(self) -> float:
        return self._time

    @current_time.setter
    def current_time(self, seconds: float):
        self.log.append((self.name, "seek", seconds))
        self._time = seconds

    @property
    def duration(self) -> float:
        return self._duration


class PlayerFactory:
    def __init__(self, accept: bool = True):
        self.log: list = []
        self.players: list[FakePlayer] = []
        self.accept = accept

    def __call__(self) -> FakePlayer:
        player = FakePlayer(self.log, f"p{len(self.players)}", accept=self.accept)
        self.players.append(player)
        return player

    @property
    def live(self) -> list[FakePlayer]:
        return [p for p in self.players if not p.disposed]


@pytest.fixture
def player_factory() -> PlayerFactory:
    return PlayerFactory()


@pytest.fixture
def track_a() -> Track:
    return Track(songid=1, songmid="000aaa", albummid="alb1", title="Alpha", singers=("Ann",))


@pytest.fixture
def track_b() -> Track:
    return Track(songid=2, songmid="000bbb", albummid="alb2", title="Beta", singers=("Bob", "Cat"))


def mock_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by handler(request) -> httpx.Response."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def errors_log(tmp_path, monkeypatch):
    """Keep errors.log writes inside the test's tmp dir."""
    log = tmp_path / "output" / "errors.log"
    monkeypatch.setattr("qqmusic.errors.OUTPUT_DIR", log.parent)
    monkeypatch.setattr("qqmusic.errors.ERRORS_LOG", log)
    return log
