"""Lyrics — LRC parsing, lyric cursor and lyric fetch.

Parsing and cursor lookup are pure and never raise. Fetching degrades to an
empty timeline on any failure: playback must never fail because of lyrics.
"""
import html
import logging
import re
from typing import Optional

import httpx

from .config import LYRIC_REFERER, LYRIC_URL
from .models import Cue
from .net import build_headers, http_session

logger = logging.getLogger(__name__)

# [mm:ss.cc] or [mm:ss.ccc] followed by the line text
_LRC_LINE = re.compile(r"\[(\d{2}):(\d{2})\.(\d{2,3})\](.*)")


def parse_lyrics(raw: str) -> list[Cue]:
    """Parse raw LRC text into cues sorted by time.

    Lines without a timestamp are skipped, as are cues whose text is empty
    after trimming (metadata headers like [ti:] or bare timing markers).
    """
    if not isinstance(raw, str) or not raw:
        return []

    cues = []
    for match in _LRC_LINE.finditer(raw):
        minutes, seconds, frac, text = match.groups()
        divisor = 1000 if len(frac) == 3 else 100
        text = text.strip()
        if not text:
            continue
        cues.append(Cue(time=int(minutes) * 60 + int(seconds) + int(frac) / divisor, text=text))

    # sorted() is stable: equal timestamps keep source order
    return sorted(cues, key=lambda c: c.time)


def current_index(cues: list[Cue], t: float) -> Optional[int]:
    """Index of the last cue at or before t, or None before the first cue."""
    idx = None
    for i, cue in enumerate(cues):
        if cue.time <= t:
            idx = i
        else:
            break
    return idx


def cue_window(
    cues: list[Cue],
    index: Optional[int],
    before: int = 2,
    after: int = 3,
) -> tuple[int, list[Cue]]:
    """Cues around the cursor for a scrolling lyric view.

    Returns (offset, cues) where offset is the index of the first cue in the
    window. With no cursor yet the window starts at the top.
    """
    if not cues:
        return 0, []
    center = index if index is not None else 0
    start = max(0, center - before)
    end = min(len(cues), center + after + 1)
    return start, cues[start:end]


async def fetch_lyrics(
    songmid: str,
    cookie: str,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """GET fcg_query_lyric_new — raw LRC text, or "" on any failure."""
    if not songmid:
        return ""
    params = {"songmid": songmid, "format": "json", "nobase64": 1}
    headers = build_headers(cookie, Referer=LYRIC_REFERER)
    try:
        async with http_session(client) as session:
            r = await session.get(LYRIC_URL, params=params, headers=headers)
            r.raise_for_status()
            data = r.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.debug("Lyric fetch failed for %s: %s", songmid, e)
        return ""

    lyric = data.get("lyric") if isinstance(data, dict) else None
    if not isinstance(lyric, str):
        return ""
    return html.unescape(lyric)


async def load_cues(
    songmid: str,
    cookie: str,
    client: Optional[httpx.AsyncClient] = None,
) -> list[Cue]:
    return parse_lyrics(await fetch_lyrics(songmid, cookie, client=client))
