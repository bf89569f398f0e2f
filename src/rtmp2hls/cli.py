"""Command-line interface for rtmp2hls."""

from __future__ import annotations

import asyncio
import logging
import sys

import aiohttp
import click

from .client import DEFAULT_SERVER, MediaServerClient
from .ffmpeg import FFmpegNotFoundError, resolve_ffmpeg
from .manager import PipelineManager
from .models import PipelineConfig, StreamEndpoint
from .server import create_app

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper()), format=LOG_FORMAT)


@click.group()
def cli():
    """Live RTMP to HLS server."""
    pass


@cli.command()
@click.option("--host", default="0.0.0.0", envvar="RTMP2HLS_HOST", show_default=True, help="HTTP bind address")
@click.option("--port", default=8000, type=int, envvar="RTMP2HLS_PORT", show_default=True, help="HTTP port")
@click.option("--rtmp-host", default="0.0.0.0", envvar="RTMP2HLS_RTMP_HOST", show_default=True, help="RTMP bind address")
@click.option("--rtmp-port", default=1935, type=int, envvar="RTMP2HLS_RTMP_PORT", show_default=True, help="RTMP port")
@click.option("--app", "app_name", default="live", envvar="RTMP2HLS_APP", show_default=True, help="RTMP application name")
@click.option("--stream-key", default="stream", envvar="RTMP2HLS_STREAM_KEY", show_default=True, help="Stream key")
@click.option(
    "--media-root",
    default="media",
    type=click.Path(file_okay=False),
    envvar="RTMP2HLS_MEDIA_ROOT",
    show_default=True,
    help="Directory the HLS output is written to and served from",
)
@click.option("--segment-duration", default=2.0, type=float, envvar="RTMP2HLS_SEGMENT_DURATION", show_default=True, help="Seconds per segment")
@click.option("--window-size", default=3, type=int, envvar="RTMP2HLS_WINDOW_SIZE", show_default=True, help="Segments kept in the live playlist")
@click.option("--monitor-interval", default=5.0, type=float, envvar="RTMP2HLS_MONITOR_INTERVAL", show_default=True, help="Seconds between ffmpeg liveness checks")
@click.option("--ffmpeg", "ffmpeg_path", envvar="RTMP2HLS_FFMPEG", help="Path to the ffmpeg executable")
@click.option("--backoff-initial", default=0.0, type=float, envvar="RTMP2HLS_BACKOFF_INITIAL", show_default=True, help="First restart delay after repeated crashes (0: relaunch on the next check)")
@click.option("--backoff-max", default=60.0, type=float, envvar="RTMP2HLS_BACKOFF_MAX", show_default=True, help="Restart delay ceiling")
@click.option("--stable-after", default=30.0, type=float, envvar="RTMP2HLS_STABLE_AFTER", show_default=True, help="Runtime after which a crash no longer counts as repeated")
@click.option("--max-restarts", type=int, envvar="RTMP2HLS_MAX_RESTARTS", help="Give up after this many crashes in a row (default: never)")
@click.option("--shutdown-timeout", default=3.0, type=float, envvar="RTMP2HLS_SHUTDOWN_TIMEOUT", show_default=True, help="Seconds to let ffmpeg exit on shutdown (0: do not wait)")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    envvar="RTMP2HLS_LOG_LEVEL",
    show_default=True,
)
def serve(
    host,
    port,
    rtmp_host,
    rtmp_port,
    app_name,
    stream_key,
    media_root,
    segment_duration,
    window_size,
    monitor_interval,
    ffmpeg_path,
    backoff_initial,
    backoff_max,
    stable_after,
    max_restarts,
    shutdown_timeout,
    log_level,
):
    """Run the ffmpeg supervisor and the HLS HTTP server."""
    configure_logging(log_level)

    try:
        config = PipelineConfig(
            endpoint=StreamEndpoint(
                app=app_name,
                stream_key=stream_key,
                rtmp_host=rtmp_host,
                rtmp_port=rtmp_port,
            ),
            media_root=media_root,
            segment_duration=segment_duration,
            window_size=window_size,
            monitor_interval=monitor_interval,
            ffmpeg_path=ffmpeg_path,
            backoff_initial=backoff_initial,
            backoff_max=backoff_max,
            stable_after=stable_after,
            max_restarts=max_restarts,
            shutdown_timeout=shutdown_timeout,
            http_host=host,
            http_port=port,
        )
    except ValueError as exc:
        raise click.UsageError(str(exc))

    try:
        executable = resolve_ffmpeg(config.ffmpeg_path)
    except FFmpegNotFoundError as exc:
        logger.error("ffmpeg not available: %s", exc)
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    manager = PipelineManager(config, executable)
    app = create_app(manager)

    logger.info("HTTP server on %s:%s, media root %s", host, port, config.media_root)
    app.run(host=host, port=port, use_reloader=False)


@cli.command()
@click.option("--server", default=DEFAULT_SERVER, help="Server URL")
def status(server):
    """Show the health of a running server."""
    async def _run():
        try:
            async with MediaServerClient(server) as client:
                health = await client.health()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(1)

        click.echo(f"Status: {health.get('status')}")
        click.echo(f"ffmpeg: {health.get('ffmpeg')}")
        click.echo(f"Streaming: {health.get('streaming')}")
        if health.get("hlsPath"):
            click.echo(f"HLS URL: {server.rstrip('/')}{health['hlsPath']}")

    asyncio.run(_run())


@cli.command()
@click.option("--server", default=DEFAULT_SERVER, help="Server URL")
@click.option("--app", "app_name", default="live", help="RTMP application name")
@click.option("--stream-key", default="stream", help="Stream key")
@click.option("--timeout", default=30.0, type=float, show_default=True, help="Seconds to wait")
def wait(server, app_name, stream_key, timeout):
    """Wait until the live playlist is being served."""
    async def _run():
        async with MediaServerClient(server, app=app_name, stream_key=stream_key) as client:
            playlist = await client.wait_for_playlist(timeout)
            url = client.playback_url()

        if playlist is None:
            click.echo(f"Error: no playlist at {url} after {timeout:g}s", err=True)
            sys.exit(1)
        click.echo(f"Live: {url}")

    asyncio.run(_run())


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
