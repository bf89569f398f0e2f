#!/usr/bin/env python3
"""Test ffmpeg discovery, argument construction and output classification."""

import os
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import mock

from rtmp2hls.ffmpeg import FFmpegNotFoundError, build_command, classify_line, resolve_ffmpeg
from rtmp2hls.models import PipelineConfig, StreamEndpoint, WorkerEvent
from rtmp2hls.segment_store import SegmentStore


def _option(command, flag):
    return command[command.index(flag) + 1]


def test_build_command():
    with TemporaryDirectory() as tmpdir:
        config = PipelineConfig(
            endpoint=StreamEndpoint(rtmp_port=1940),
            media_root=Path(tmpdir),
            segment_duration=2.0,
            window_size=3,
        )
        store = SegmentStore(config.media_root, config.endpoint)
        command = build_command("/opt/ffmpeg", config, store)

        assert command[0] == "/opt/ffmpeg"
        assert _option(command, "-listen") == "1"
        assert _option(command, "-i") == "rtmp://0.0.0.0:1940/live/stream"
        assert _option(command, "-c:v") == "copy"
        assert _option(command, "-c:a") == "copy"
        assert _option(command, "-f") == "hls"
        assert _option(command, "-hls_time") == "2"
        assert _option(command, "-hls_list_size") == "3"
        assert _option(command, "-hls_flags") == "delete_segments"
        assert _option(command, "-hls_segment_filename") == str(store.output_dir / "segment-%03d.ts")
        assert command[-1] == str(store.playlist_path)
        assert "-listen" in command[: command.index("-i")]
    print("✓ ffmpeg command construction test passed")


def test_fractional_segment_duration():
    with TemporaryDirectory() as tmpdir:
        config = PipelineConfig(media_root=Path(tmpdir), segment_duration=1.5)
        store = SegmentStore(config.media_root, config.endpoint)
        assert _option(build_command("ffmpeg", config, store), "-hls_time") == "1.5"
    print("✓ Fractional segment duration test passed")


def test_window_size_bounds_muxer_output():
    with TemporaryDirectory() as tmpdir:
        for window_size in (1, 3, 6):
            config = PipelineConfig(media_root=Path(tmpdir), window_size=window_size)
            store = SegmentStore(config.media_root, config.endpoint)
            command = build_command("ffmpeg", config, store)

            assert _option(command, "-hls_list_size") == str(window_size)
            assert "delete_segments" in _option(command, "-hls_flags").split("+")
    print("✓ Playlist window bound test passed")


def test_resolve_ffmpeg():
    with TemporaryDirectory() as tmpdir:
        binary = Path(tmpdir) / "ffmpeg"
        binary.write_text("#!/bin/sh\nexit 0\n")

        try:
            resolve_ffmpeg(str(binary))
        except FFmpegNotFoundError:
            pass
        else:
            raise AssertionError("non-executable file must be rejected")

        os.chmod(binary, 0o755)
        assert resolve_ffmpeg(str(binary)) == str(binary)

        with mock.patch.dict(os.environ, {"PATH": tmpdir}):
            assert resolve_ffmpeg() == str(binary)

        with mock.patch.dict(os.environ, {"PATH": str(Path(tmpdir) / "empty")}):
            try:
                resolve_ffmpeg()
            except FFmpegNotFoundError as exc:
                assert isinstance(exc, FileNotFoundError)
            else:
                raise AssertionError("missing ffmpeg must raise")

        try:
            resolve_ffmpeg(str(Path(tmpdir) / "missing" / "ffmpeg"))
        except FFmpegNotFoundError:
            pass
        else:
            raise AssertionError("missing path must raise")
    print("✓ ffmpeg discovery test passed")


def test_classify_line():
    samples = {
        "Input #0, flv, from 'rtmp://0.0.0.0:1935/live/stream':": WorkerEvent.INPUT_OPENED,
        "Output #0, hls, to '/srv/media/live/stream/index.m3u8':": WorkerEvent.OUTPUT_OPENED,
        "Stream mapping:": WorkerEvent.STREAM_MAPPING,
        "[hls @ 0x55d0] Opening '/srv/media/live/stream/segment-004.ts' for writing": WorkerEvent.SEGMENT_OPENED,
        "[hls @ 0x55d0] Opening '/srv/media/live/stream/index.m3u8.tmp' for writing": WorkerEvent.OUTPUT_OPENED,
        "[hls @ 0x55d0] Opening '/srv/media/live/stream/other.key' for writing": WorkerEvent.LOG,
        "frame=  240 fps= 30 q=-1.0 size=N/A time=00:00:08.00 bitrate=N/A speed=1.01x": WorkerEvent.PROGRESS,
        "size=N/A time=00:00:04.01 bitrate=N/A speed=   1x": WorkerEvent.PROGRESS,
        "rtmp://0.0.0.0:1935/live/stream: Address already in use": WorkerEvent.BIND_FAILED,
        "Error while decoding stream #0:1: Invalid data found when processing input": WorkerEvent.ERROR,
        "  Duration: N/A, start: 0.000000, bitrate: N/A": WorkerEvent.LOG,
        "": WorkerEvent.LOG,
    }
    for text, expected in samples.items():
        assert classify_line(text).event is expected, text

    segment = classify_line("[hls @ 0x1] Opening '/m/live/stream/segment-010.ts' for writing")
    assert segment.path == "/m/live/stream/segment-010.ts"

    playlist = classify_line("[hls @ 0x1] Opening '/m/live/stream/index.m3u8.tmp' for writing")
    assert playlist.event is WorkerEvent.OUTPUT_OPENED
    assert playlist.path == "/m/live/stream/index.m3u8.tmp"
    print("✓ ffmpeg output classification test passed")


if __name__ == "__main__":
    test_build_command()
    test_fractional_segment_duration()
    test_window_size_bounds_muxer_output()
    test_resolve_ffmpeg()
    test_classify_line()
