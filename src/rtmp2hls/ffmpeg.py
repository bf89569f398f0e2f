"""ffmpeg discovery, invocation and diagnostic classification."""

from __future__ import annotations

import logging
import os
import re
import shutil
from dataclasses import dataclass
from typing import List, Optional

from .models import PipelineConfig, WorkerEvent
from .segment_store import PLAYLIST_NAME, SEGMENT_SUFFIX, SegmentStore

logger = logging.getLogger(__name__)

DEFAULT_EXECUTABLE = "ffmpeg"

_OPENING_RE = re.compile(r"Opening '(?P<path>[^']+)' for (?:writing|reading)")
_PROGRESS_RE = re.compile(r"\b(?:frame|size)=\s*\S+.*\btime=\s*\S+")
_BIND_RE = re.compile(r"address already in use|cannot assign requested address|bind failed", re.IGNORECASE)
_ERROR_RE = re.compile(r"\b(?:error|invalid|failed|could not|unable to)\b", re.IGNORECASE)


class FFmpegNotFoundError(FileNotFoundError):
    """Raised when no usable ffmpeg executable can be located."""


@dataclass
class DiagnosticLine:
    """A classified line of ffmpeg stdout/stderr output."""

    event: WorkerEvent
    text: str
    path: Optional[str] = None


def resolve_ffmpeg(executable: Optional[str] = None) -> str:
    """
    Locate the ffmpeg binary.

    Args:
        executable: Explicit path or command name. Defaults to ``ffmpeg`` on PATH.

    Returns:
        Absolute path of an executable file.

    Raises:
        FFmpegNotFoundError: if the binary is missing or not executable.
    """
    candidate = executable or DEFAULT_EXECUTABLE

    if os.sep in candidate:
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return os.path.abspath(candidate)
        raise FFmpegNotFoundError(f"'{candidate}' does not exist or is not executable.")

    found = shutil.which(candidate)
    if found is None:
        raise FFmpegNotFoundError(
            f"Could not find '{candidate}' in PATH. Install ffmpeg or provide the full path."
        )
    logger.debug("Using ffmpeg at %s", found)
    return found


def build_command(executable: str, config: PipelineConfig, store: SegmentStore) -> List[str]:
    """
    Build the worker invocation.

    The input is an RTMP socket in listen mode, codecs are copied without
    re-encoding, and the hls muxer keeps a window of ``window_size``
    segments, deleting the ones that fall out of it.
    """
    return [
        executable,
        "-hide_banner",
        "-nostdin",
        "-loglevel", "info",
        "-listen", "1",
        "-i", config.endpoint.listen_url,
        "-c:v", "copy",
        "-c:a", "copy",
        "-f", "hls",
        "-hls_time", f"{config.segment_duration:g}",
        "-hls_list_size", str(config.window_size),
        "-hls_flags", "delete_segments",
        "-hls_segment_filename", store.segment_pattern,
        str(store.playlist_path),
    ]


def classify_line(line: str) -> DiagnosticLine:
    """Map a diagnostic line to a :class:`WorkerEvent`. Unknown lines are ``LOG``."""
    text = line.strip()

    if text.startswith("Input #"):
        return DiagnosticLine(WorkerEvent.INPUT_OPENED, text)
    if text.startswith("Output #"):
        return DiagnosticLine(WorkerEvent.OUTPUT_OPENED, text)
    if text.startswith("Stream mapping"):
        return DiagnosticLine(WorkerEvent.STREAM_MAPPING, text)

    match = _OPENING_RE.search(text)
    if match:
        path = match.group("path")
        if path.endswith(SEGMENT_SUFFIX):
            return DiagnosticLine(WorkerEvent.SEGMENT_OPENED, text, path)
        # The muxer rewrites the playlist through a .tmp file.
        if os.path.basename(path).startswith(PLAYLIST_NAME):
            return DiagnosticLine(WorkerEvent.OUTPUT_OPENED, text, path)
        return DiagnosticLine(WorkerEvent.LOG, text, path)

    if _PROGRESS_RE.search(text):
        return DiagnosticLine(WorkerEvent.PROGRESS, text)
    if _BIND_RE.search(text):
        return DiagnosticLine(WorkerEvent.BIND_FAILED, text)
    if _ERROR_RE.search(text):
        return DiagnosticLine(WorkerEvent.ERROR, text)

    return DiagnosticLine(WorkerEvent.LOG, text)
