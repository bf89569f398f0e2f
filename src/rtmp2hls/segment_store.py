"""Filesystem layout shared by the ffmpeg worker and the HTTP layer."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional

from .models import StreamEndpoint
from .playlist import MediaPlaylist, parse_media_playlist

logger = logging.getLogger(__name__)

PLAYLIST_NAME = "index.m3u8"
SEGMENT_SUFFIX = ".ts"


class SegmentStore:
    """
    Directory holding the rolling playlist and segment window of one stream.

    ffmpeg is the only writer. Readers get ``None`` for anything that is
    missing or half-written and are expected to retry; nothing here raises
    because a file is absent.
    """

    def __init__(
        self,
        media_root: Path,
        endpoint: StreamEndpoint,
        *,
        segment_prefix: str = "segment",
        sequence_digits: int = 3,
    ) -> None:
        self.media_root = Path(media_root)
        self.endpoint = endpoint
        self.segment_prefix = segment_prefix
        self.sequence_digits = sequence_digits
        self._segment_re = re.compile(
            rf"^{re.escape(segment_prefix)}-(\d+){re.escape(SEGMENT_SUFFIX)}$"
        )

    @property
    def output_dir(self) -> Path:
        return self.media_root / self.endpoint.app / self.endpoint.stream_key

    @property
    def playlist_path(self) -> Path:
        return self.output_dir / PLAYLIST_NAME

    @property
    def playlist_url(self) -> str:
        """URL path of the playlist as served by the HTTP layer."""
        return f"/{self.endpoint.path}/{PLAYLIST_NAME}"

    @property
    def segment_pattern(self) -> str:
        """printf-style segment filename handed to ffmpeg."""
        return str(self.output_dir / f"{self.segment_prefix}-%0{self.sequence_digits}d{SEGMENT_SUFFIX}")

    def ensure(self) -> Path:
        """Create the output directory if needed. Safe to call repeatedly."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        return self.output_dir

    def clear(self) -> int:
        """Remove a playlist and segments left behind by a previous run."""
        removed = 0
        for sequence in self.segments_on_disk():
            self.segment_path(sequence).unlink(missing_ok=True)
            removed += 1
        if self.playlist_path.is_file():
            self.playlist_path.unlink(missing_ok=True)
            removed += 1
        if removed:
            logger.info("Removed %d stale files from %s", removed, self.output_dir)
        return removed

    def segment_name(self, sequence: int) -> str:
        if sequence < 0:
            raise ValueError("sequence must be non-negative")
        return f"{self.segment_prefix}-{sequence:0{self.sequence_digits}d}{SEGMENT_SUFFIX}"

    def segment_path(self, sequence: int) -> Path:
        return self.output_dir / self.segment_name(sequence)

    def parse_sequence(self, filename: str) -> Optional[int]:
        """Return the sequence number encoded in a segment filename, if any."""
        match = self._segment_re.match(Path(filename).name)
        return int(match.group(1)) if match else None

    def has_playlist(self) -> bool:
        return self.playlist_path.is_file()

    def latest_playlist(self) -> Optional[MediaPlaylist]:
        """Parse the current playlist, or ``None`` if it is absent or torn."""
        try:
            content = self.playlist_path.read_text(encoding="utf-8")
        except (FileNotFoundError, IsADirectoryError):
            return None
        except UnicodeDecodeError:
            logger.debug("Playlist %s is mid-write, skipping", self.playlist_path)
            return None

        try:
            return parse_media_playlist(content)
        except ValueError as exc:
            logger.debug("Playlist %s not parseable yet: %s", self.playlist_path, exc)
            return None

    def segment(self, sequence: int) -> Optional[bytes]:
        """Return the bytes of segment ``sequence`` or ``None`` if rotated out."""
        try:
            return self.segment_path(sequence).read_bytes()
        except FileNotFoundError:
            return None

    def segments_on_disk(self) -> List[int]:
        """Sequence numbers of all segment files currently present, oldest first."""
        if not self.output_dir.is_dir():
            return []
        numbers = []
        for path in self.output_dir.iterdir():
            sequence = self.parse_sequence(path.name)
            if sequence is not None:
                numbers.append(sequence)
        return sorted(numbers)

    def resolve(self, relative: str) -> Optional[Path]:
        """
        Map a URL path below the media root to an existing file.

        Returns ``None`` for missing files and for paths escaping the root.
        """
        root = self.media_root.resolve()
        requested = (root / relative).resolve()

        try:
            requested.relative_to(root)
        except ValueError:
            return None

        if not requested.is_file():
            return None
        return requested
