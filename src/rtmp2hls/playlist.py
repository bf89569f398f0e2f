"""Read the HLS media playlist maintained by ffmpeg's hls muxer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class PlaylistEntry:
    """One segment reference inside a media playlist."""

    uri: str
    duration: float


@dataclass
class MediaPlaylist:
    """Parsed HLS media playlist."""

    target_duration: Optional[int] = None
    media_sequence: int = 0
    segments: List[PlaylistEntry] = field(default_factory=list)
    end_list: bool = False

    @property
    def uris(self) -> List[str]:
        return [segment.uri for segment in self.segments]


class PlaylistError(ValueError):
    """Raised when text is not an HLS media playlist."""


def parse_media_playlist(content: str) -> MediaPlaylist:
    """
    Parse a media playlist.

    Unknown tags are ignored. A playlist cut short by a concurrent
    rewrite parses to whatever complete entries it holds.

    Raises:
        PlaylistError: if the content does not start with #EXTM3U
    """
    lines = [line.strip() for line in content.splitlines()]
    lines = [line for line in lines if line]
    if not lines or lines[0] != "#EXTM3U":
        raise PlaylistError("missing #EXTM3U header")

    playlist = MediaPlaylist()
    pending_duration: Optional[float] = None

    for line in lines[1:]:
        if line.startswith("#EXT-X-TARGETDURATION:"):
            playlist.target_duration = int(float(line.split(":", 1)[1]))
        elif line.startswith("#EXT-X-MEDIA-SEQUENCE:"):
            playlist.media_sequence = int(line.split(":", 1)[1])
        elif line.startswith("#EXTINF:"):
            value = line.split(":", 1)[1].split(",", 1)[0]
            pending_duration = float(value)
        elif line == "#EXT-X-ENDLIST":
            playlist.end_list = True
        elif line.startswith("#"):
            continue
        elif pending_duration is not None:
            playlist.segments.append(PlaylistEntry(uri=line, duration=pending_duration))
            pending_duration = None

    return playlist
