"""Shared httpx helpers for the QQ Music endpoints."""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from .config import HTTP_TIMEOUT, USER_AGENT


def build_headers(cookie: str = "", **extra: str) -> dict:
    """Client identity header plus the opaque cookie credential."""
    headers = {"User-Agent": USER_AGENT}
    if cookie:
        headers["Cookie"] = cookie
    headers.update(extra)
    return headers


@asynccontextmanager
async def http_session(
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = HTTP_TIMEOUT,
) -> AsyncIterator[httpx.AsyncClient]:
    """Use the caller's client when given, otherwise a short-lived one."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own:
        yield own
