"""HTTP delivery of the live HLS output and the health probe."""

from __future__ import annotations

import logging

from quart import Quart, Response, abort, jsonify, send_file

from . import __version__
from .manager import PipelineManager

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

MIMETYPES = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/mp2t",
}


def create_app(manager: PipelineManager, *, supervise: bool = True) -> Quart:
    """
    Build the Quart application serving one pipeline.

    Args:
        manager: Pipeline whose segment store is served
        supervise: Start and stop the ffmpeg supervisor with the server
    """
    app = Quart(__name__)
    store = manager.store
    endpoint = manager.config.endpoint

    if supervise:
        @app.before_serving
        async def start_pipeline():
            await manager.start()

        @app.after_serving
        async def stop_pipeline():
            await manager.stop()

    @app.after_request
    async def allow_any_origin(response: Response) -> Response:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET, HEAD, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Range, Content-Type"
        return response

    @app.route("/health")
    async def health():
        """Report worker liveness and whether a playlist is being produced."""
        return jsonify(manager.health().to_dict())

    @app.route("/api")
    async def api_info():
        """Service info, including where to publish and where to play."""
        config = manager.config
        supervisor = manager.supervisor
        playlist = store.latest_playlist()
        return jsonify({
            "service": "rtmp2hls",
            "version": __version__,
            "ingest": {
                "url": endpoint.publish_url(),
                "stream_key": endpoint.stream_key,
                "port": endpoint.rtmp_port,
            },
            "hls": {
                "playlist": store.playlist_url,
                "segment_duration": config.segment_duration,
                "window_size": config.window_size,
            },
            "pipeline": {
                "state": supervisor.state.value,
                "launches": supervisor.launches,
                "restarts": supervisor.restarts,
                "last_exit_code": supervisor.last_exit_code,
                "last_segment": supervisor.last_segment,
                "media_sequence": playlist.media_sequence if playlist else None,
                "segments": len(playlist.segments) if playlist else 0,
            },
            "endpoints": {
                "health": "/health",
                "hls": f"/{endpoint.path}/<filename>",
            },
        })

    @app.route("/<app_name>/<stream_key>/<path:filename>")
    async def serve_hls(app_name: str, stream_key: str, filename: str):
        """Serve the playlist and segments straight from the segment store."""
        if app_name != endpoint.app or stream_key != endpoint.stream_key:
            abort(404)

        requested_path = store.resolve(f"{app_name}/{stream_key}/{filename}")
        if requested_path is None:
            # Not written yet or already rotated out; players retry.
            abort(404)

        mimetype = MIMETYPES.get(requested_path.suffix, "application/octet-stream")
        try:
            response = await send_file(requested_path, mimetype=mimetype)
        except FileNotFoundError:
            # Deleted by the muxer between lookup and open.
            abort(404)
        response.headers.update(NO_CACHE_HEADERS)
        return response

    return app
