"""Stream Resolver — song search and vkey/stream-URL exchange against QQ Music."""
import json
import logging
import random
from typing import Optional

import httpx

from .config import (
    COOKIE_PROBE_QUERY,
    DEFAULT_STREAM_PREFIX,
    SEARCH_PAGE_SIZE,
    SEARCH_URL,
    VKEY_URL,
)
from .errors import ErrorKind
from .models import SearchResult, StreamResolution, Track
from .net import build_headers, http_session

logger = logging.getLogger(__name__)


def new_guid() -> str:
    """Fresh 10-digit client GUID. Never reuse one across calls."""
    return str(random.randint(1_000_000_000, 9_999_999_999))


def build_vkey_request(songmid: str, guid: str) -> dict:
    return {
        "req_0": {
            "module": "vkey.GetVkeyServer",
            "method": "CgiGetVkey",
            "param": {
                "guid": guid,
                "songmid": [songmid],
                "songtype": [0],
                "uin": "0",
                "loginflag": 1,
                "platform": "20",
            },
        }
    }


def _dig(data, *path):
    """Walk nested dicts/lists, returning None on any missing or mistyped step."""
    node = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(node, list) or len(node) <= key:
                return None
        elif not isinstance(node, dict):
            return None
        node = node[key] if isinstance(key, int) else node.get(key)
    return node


def parse_song_list(data) -> list[Track]:
    records = _dig(data, "data", "song", "list")
    if not isinstance(records, list):
        return []
    tracks = []
    for record in records:
        track = Track.from_record(record)
        if track is not None:
            tracks.append(track)
    return tracks


def parse_stream_url(data) -> str:
    """Join sip prefix + purl. Empty string when purl is absent."""
    purl = _dig(data, "req_0", "data", "midurlinfo", 0, "purl")
    if not isinstance(purl, str) or not purl:
        return ""
    sip = _dig(data, "req_0", "data", "sip", 0)
    if not isinstance(sip, str) or not sip:
        sip = DEFAULT_STREAM_PREFIX
    return sip + purl


async def _get_json(client: httpx.AsyncClient, url: str, params: dict, cookie: str):
    r = await client.get(url, params=params, headers=build_headers(cookie))
    r.raise_for_status()
    return r.json()


async def search_songs(
    keyword: str,
    cookie: str,
    page_size: int = SEARCH_PAGE_SIZE,
    client: Optional[httpx.AsyncClient] = None,
) -> SearchResult:
    """
    GET client_search_cp — ranked candidates for a free-text query.
    Returns at most page_size tracks; an empty list is NO_RESULTS, not an error.
    """
    if not cookie or not cookie.strip():
        return SearchResult(error=ErrorKind.MISSING_CREDENTIAL)
    keyword = (keyword or "").strip()
    if not keyword:
        return SearchResult(error=ErrorKind.NO_RESULTS, detail="empty query")

    params = {"w": keyword, "p": 1, "n": page_size, "format": "json"}
    try:
        async with http_session(client) as session:
            data = await _get_json(session, SEARCH_URL, params, cookie)
    except httpx.HTTPStatusError as e:
        return SearchResult(error=ErrorKind.TRANSPORT, detail=f"HTTP {e.response.status_code}")
    except httpx.HTTPError as e:
        return SearchResult(error=ErrorKind.TRANSPORT, detail=f"{type(e).__name__}: {e}")
    except ValueError as e:
        return SearchResult(error=ErrorKind.TRANSPORT, detail=f"invalid JSON: {e}")

    tracks = parse_song_list(data)[:page_size]
    if not tracks:
        logger.debug("No results for %r", keyword)
        return SearchResult(error=ErrorKind.NO_RESULTS)
    return SearchResult(tracks=tracks)


async def search_song(
    keyword: str,
    cookie: str,
    client: Optional[httpx.AsyncClient] = None,
) -> SearchResult:
    """Single-song mode: the top hit only."""
    return await search_songs(keyword, cookie, page_size=1, client=client)


async def get_music_url(
    songmid: str,
    cookie: str,
    client: Optional[httpx.AsyncClient] = None,
) -> StreamResolution:
    """
    GET musicu.fcg with a CgiGetVkey envelope.
    An empty purl means the track is access-gated, even with HTTP 200.
    """
    if not cookie or not cookie.strip():
        return StreamResolution(error=ErrorKind.MISSING_CREDENTIAL)
    if not songmid:
        return StreamResolution(error=ErrorKind.NO_RESULTS, detail="missing songmid")

    envelope = build_vkey_request(songmid, new_guid())
    params = {"data": json.dumps(envelope, separators=(",", ":"))}
    try:
        async with http_session(client) as session:
            data = await _get_json(session, VKEY_URL, params, cookie)
    except httpx.HTTPStatusError as e:
        return StreamResolution(error=ErrorKind.TRANSPORT, detail=f"HTTP {e.response.status_code}")
    except httpx.HTTPError as e:
        return StreamResolution(error=ErrorKind.TRANSPORT, detail=f"{type(e).__name__}: {e}")
    except ValueError as e:
        return StreamResolution(error=ErrorKind.TRANSPORT, detail=f"invalid JSON: {e}")

    url = parse_stream_url(data)
    if not url:
        return StreamResolution(error=ErrorKind.ACCESS_GATED, detail=f"empty purl for {songmid}")
    return StreamResolution(url=url)


async def check_cookie(cookie: str, client: Optional[httpx.AsyncClient] = None) -> bool:
    """True if a search with this cookie returns at least one song."""
    result = await search_song(COOKIE_PROBE_QUERY, cookie, client=client)
    return result.ok and bool(result.tracks)
