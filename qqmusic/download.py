"""Download Pipeline — fetch a resolved stream and save it under SAVE_DIR."""
import logging
import re
from pathlib import Path
from typing import Optional

import httpx

from .api import get_music_url
from .config import DOWNLOAD_EXT, DOWNLOAD_TIMEOUT, FILENAME_REPLACEMENT, SAVE_DIR
from .errors import ErrorKind
from .models import DownloadJob, DownloadResult, Track
from .net import build_headers, http_session

logger = logging.getLogger(__name__)

_PATH_HOSTILE = re.compile(r'[/\\:*?"<>|]')


def sanitize_filename(name: str) -> str:
    """Replace / \\ : * ? " < > | with a safe character. Idempotent."""
    return _PATH_HOSTILE.sub(FILENAME_REPLACEMENT, name)


def build_job(track: Track, url: str) -> DownloadJob:
    return DownloadJob(track=track, url=url, filename=sanitize_filename(track.display_name))


async def download_track(
    job: DownloadJob,
    save_dir: Path = SAVE_DIR,
    client: Optional[httpx.AsyncClient] = None,
) -> DownloadResult:
    """
    Fetch the whole payload, then write <save_dir>/<filename>.m4a.
    An existing file with the same name is overwritten.

    A failed write may leave a partial file behind; it is not cleaned up.
    """
    try:
        async with http_session(client, timeout=DOWNLOAD_TIMEOUT) as session:
            r = await session.get(job.url, headers=build_headers())
            if not r.is_success:
                return DownloadResult(
                    error=ErrorKind.TRANSPORT, stage="fetch", detail=f"HTTP {r.status_code}",
                )
            payload = r.content
    except httpx.TimeoutException:
        return DownloadResult(
            error=ErrorKind.TRANSPORT, stage="fetch",
            detail=f"download timed out after {DOWNLOAD_TIMEOUT:.0f}s",
        )
    except httpx.HTTPError as e:
        return DownloadResult(error=ErrorKind.TRANSPORT, stage="fetch", detail=str(e))

    save_dir = Path(save_dir)
    try:
        save_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return DownloadResult(error=ErrorKind.IO_ERROR, stage="mkdir", detail=str(e))

    path = save_dir / f"{job.filename}{DOWNLOAD_EXT}"
    try:
        path.write_bytes(payload)
    except OSError as e:
        return DownloadResult(error=ErrorKind.IO_ERROR, stage="write", detail=str(e))

    logger.info("Saved %s (%d bytes)", path, len(payload))
    return DownloadResult(path=path)


async def download_song(
    track: Track,
    cookie: str,
    save_dir: Path = SAVE_DIR,
    client: Optional[httpx.AsyncClient] = None,
) -> DownloadResult:
    """Resolve the stream URL for track, then download it."""
    resolution = await get_music_url(track.songmid, cookie, client=client)
    if not resolution.ok:
        return DownloadResult(error=resolution.error, stage="resolve", detail=resolution.detail)
    return await download_track(build_job(track, resolution.url), save_dir=save_dir, client=client)
