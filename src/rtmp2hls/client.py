"""Async client for a running rtmp2hls server."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_SERVER = "http://localhost:8000"


class MediaServerClient:
    """Query the health probe and poll the live playlist."""

    def __init__(
        self,
        server: str = DEFAULT_SERVER,
        *,
        app: str = "live",
        stream_key: str = "stream",
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 3.0,
    ):
        """
        Initialize client.

        Args:
            server: Base URL of the rtmp2hls server
            app: RTMP application name
            stream_key: Stream key
            session: Optional aiohttp session. If None, a new one will be created.
            timeout: Per-request timeout in seconds
        """
        self.server = server.rstrip("/")
        self.app = app
        self.stream_key = stream_key
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._own_session = session is None

    async def __aenter__(self):
        if self._own_session:
            self.session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._own_session and self.session:
            await self.session.close()

    def playback_url(self) -> str:
        return f"{self.server}/{self.app}/{self.stream_key}/index.m3u8"

    async def health(self) -> dict:
        """
        Fetch ``/health``.

        Raises:
            aiohttp.ClientError: if the server is unreachable or answers non-2xx
        """
        session = self._require_session()
        async with session.get(f"{self.server}/health") as response:
            response.raise_for_status()
            return await response.json()

    async def is_healthy(self) -> bool:
        try:
            health = await self.health()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.debug("Media server not reachable: %s", exc)
            return False
        return health.get("status") == "ok"

    async def is_streaming(self) -> bool:
        try:
            health = await self.health()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.debug("Media server not reachable: %s", exc)
            return False
        return bool(health.get("streaming"))

    async def fetch_playlist(self) -> Optional[str]:
        """Return the playlist text, or ``None`` while it does not exist yet."""
        session = self._require_session()
        async with session.get(self.playback_url()) as response:
            if response.status == 404:
                return None
            response.raise_for_status()
            return await response.text()

    async def wait_for_playlist(
        self,
        timeout: float = 30.0,
        *,
        initial_delay: float = 0.5,
        max_delay: float = 4.0,
    ) -> Optional[str]:
        """
        Poll the playlist until it appears, backing off between attempts.

        A 404 or a connection failure just means "not yet".

        Returns:
            The playlist text, or ``None`` if ``timeout`` elapsed first
        """
        deadline = time.monotonic() + timeout
        delay = initial_delay

        while True:
            try:
                playlist = await self.fetch_playlist()
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                logger.debug("Playlist fetch failed: %s", exc)
                playlist = None

            if playlist is not None:
                return playlist

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(delay, remaining))
            delay = min(delay * 2, max_delay)

    def _require_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            raise RuntimeError("Session not initialized. Use 'async with' context manager.")
        return self.session
