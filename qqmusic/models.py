"""Data model — tracks, lyric cues and typed results for the network calls."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .config import COVER_URL
from .errors import ErrorKind


def _as_str(value) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


@dataclass(frozen=True)
class Track:
    songid: int
    songmid: str
    albummid: str
    title: str
    singers: tuple[str, ...] = ()

    @classmethod
    def from_record(cls, record) -> Optional["Track"]:
        """Build a Track from one raw search record.

        The remote schema is outside our control: anything missing or of the
        wrong type becomes an empty default. A record without a songmid can't
        be streamed, so it is rejected.
        """
        if not isinstance(record, dict):
            return None
        songmid = _as_str(record.get("songmid"))
        if not songmid:
            return None

        try:
            songid = int(record.get("songid") or 0)
        except (TypeError, ValueError):
            songid = 0

        singers = []
        raw_singers = record.get("singer")
        if isinstance(raw_singers, list):
            for s in raw_singers:
                name = _as_str(s.get("name")) if isinstance(s, dict) else ""
                if name:
                    singers.append(name)

        return cls(
            songid=songid,
            songmid=songmid,
            albummid=_as_str(record.get("albummid")),
            title=_as_str(record.get("songname")) or songmid,
            singers=tuple(singers),
        )

    @property
    def artist(self) -> str:
        return " / ".join(self.singers)

    @property
    def display_name(self) -> str:
        if not self.artist:
            return self.title
        return f"{self.title} - {self.artist}"

    def cover_url(self, size: int = 300) -> str:
        if not self.albummid:
            return ""
        return COVER_URL.format(size=size, albummid=self.albummid)

    def to_dict(self) -> dict:
        return {
            "songid": self.songid,
            "songmid": self.songmid,
            "albummid": self.albummid,
            "title": self.title,
            "singers": list(self.singers),
            "artist": self.artist,
        }


@dataclass(frozen=True)
class Cue:
    time: float   # seconds
    text: str


@dataclass(frozen=True)
class SearchResult:
    tracks: list[Track] = field(default_factory=list)
    error: Optional[ErrorKind] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def empty(self) -> bool:
        return self.error is ErrorKind.NO_RESULTS


@dataclass(frozen=True)
class StreamResolution:
    url: str = ""
    error: Optional[ErrorKind] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.url)


@dataclass(frozen=True)
class DownloadJob:
    track: Track
    url: str
    filename: str


@dataclass(frozen=True)
class DownloadResult:
    path: Optional[Path] = None
    error: Optional[ErrorKind] = None
    stage: str = ""
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None and self.path is not None
