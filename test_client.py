#!/usr/bin/env python3
"""Test the media server client against a stub HTTP server."""

import asyncio

from aiohttp import test_utils, web

PLAYLIST = "#EXTM3U\n#EXT-X-TARGETDURATION:2\n#EXT-X-MEDIA-SEQUENCE:0\n#EXTINF:2.000000,\nsegment-000.ts\n"


def _stub_app(misses: int, streaming: bool = True):
    calls = {"playlist": 0}

    async def health(request):
        return web.json_response({
            "status": "ok",
            "ffmpeg": "running",
            "workerState": "running",
            "streaming": streaming,
            "hlsPath": "/live/stream/index.m3u8" if streaming else None,
        })

    async def playlist(request):
        calls["playlist"] += 1
        if calls["playlist"] <= misses:
            raise web.HTTPNotFound()
        return web.Response(text=PLAYLIST, content_type="application/vnd.apple.mpegurl")

    app = web.Application()
    app.router.add_get("/health", health)
    app.router.add_get("/live/stream/index.m3u8", playlist)
    return app, calls


def test_health_queries():
    from rtmp2hls.client import MediaServerClient

    async def _run():
        async with test_utils.TestServer(_stub_app(misses=0, streaming=False)[0]) as server:
            base = str(server.make_url("/"))
            async with MediaServerClient(base) as client:
                assert client.playback_url() == f"{base.rstrip('/')}/live/stream/index.m3u8"
                assert await client.is_healthy()
                assert not await client.is_streaming()

        async with MediaServerClient("http://127.0.0.1:9") as client:
            assert not await client.is_healthy()
            assert not await client.is_streaming()

    asyncio.run(_run())
    print("✓ Client health test passed")


def test_wait_for_playlist_retries_not_found():
    from rtmp2hls.client import MediaServerClient

    async def _run():
        app, calls = _stub_app(misses=2)
        async with test_utils.TestServer(app) as server:
            async with MediaServerClient(str(server.make_url("/"))) as client:
                playlist = await client.wait_for_playlist(5.0, initial_delay=0.01, max_delay=0.05)
        assert playlist == PLAYLIST
        assert calls["playlist"] == 3

        async with test_utils.TestServer(_stub_app(misses=1000)[0]) as server:
            async with MediaServerClient(str(server.make_url("/"))) as client:
                assert await client.wait_for_playlist(0.2, initial_delay=0.01, max_delay=0.05) is None

    asyncio.run(_run())
    print("✓ Playlist polling test passed")


if __name__ == "__main__":
    test_health_queries()
    test_wait_for_playlist_retries_not_found()
