"""Dataclasses and enums for rtmp2hls runtime."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class WorkerState(str, Enum):
    """Liveness of the transcoding worker as reported by the health probe."""

    RUNNING = "running"
    STOPPED = "stopped"


class SupervisorState(str, Enum):
    """Lifecycle status of the pipeline supervisor."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    TERMINATED = "terminated"
    FAILED = "failed"
    STOPPED = "stopped"


class WorkerEvent(str, Enum):
    """Classification of a single ffmpeg diagnostic line."""

    INPUT_OPENED = "input_opened"
    STREAM_MAPPING = "stream_mapping"
    OUTPUT_OPENED = "output_opened"
    SEGMENT_OPENED = "segment_opened"
    PROGRESS = "progress"
    BIND_FAILED = "bind_failed"
    ERROR = "error"
    LOG = "log"


@dataclass(frozen=True)
class StreamEndpoint:
    """The single RTMP ingest point served by this process."""

    app: str = "live"
    stream_key: str = "stream"
    rtmp_host: str = "0.0.0.0"
    rtmp_port: int = 1935

    def __post_init__(self) -> None:
        for name in ("app", "stream_key"):
            value = getattr(self, name)
            if not value or "/" in value or value in (".", ".."):
                raise ValueError(f"{name} must be a single non-empty path component, got {value!r}")
        if not 0 < self.rtmp_port < 65536:
            raise ValueError(f"rtmp_port out of range: {self.rtmp_port}")

    @property
    def path(self) -> str:
        return f"{self.app}/{self.stream_key}"

    @property
    def listen_url(self) -> str:
        """URL ffmpeg binds to in listen mode."""
        return f"rtmp://{self.rtmp_host}:{self.rtmp_port}/{self.path}"

    def publish_url(self, host: str = "localhost") -> str:
        """Server URL handed to publishers; the stream key is entered separately."""
        return f"rtmp://{host}:{self.rtmp_port}/{self.app}"


@dataclass
class PipelineConfig:
    """Configuration for the supervised RTMP -> HLS pipeline."""

    endpoint: StreamEndpoint = field(default_factory=StreamEndpoint)
    media_root: Path = Path("media")
    segment_duration: float = 2.0
    window_size: int = 3
    segment_prefix: str = "segment"
    sequence_digits: int = 3
    monitor_interval: float = 5.0
    ffmpeg_path: Optional[str] = None
    backoff_initial: float = 0.0
    backoff_max: float = 60.0
    stable_after: float = 30.0
    max_restarts: Optional[int] = None
    shutdown_timeout: float = 3.0
    http_host: str = "0.0.0.0"
    http_port: int = 8000

    def __post_init__(self) -> None:
        self.media_root = Path(self.media_root).expanduser().resolve()
        if self.segment_duration <= 0:
            raise ValueError("segment_duration must be positive")
        if self.window_size < 1:
            raise ValueError("window_size must be at least 1")
        if self.monitor_interval <= 0:
            raise ValueError("monitor_interval must be positive")
        if self.shutdown_timeout < 0:
            raise ValueError("shutdown_timeout must be non-negative")
        if self.sequence_digits < 1:
            raise ValueError("sequence_digits must be at least 1")
        if not self.segment_prefix or "/" in self.segment_prefix:
            raise ValueError("segment_prefix must be a plain file name prefix")


@dataclass
class HealthState:
    """Health snapshot, recomputed on every query."""

    worker: WorkerState
    streaming: bool
    hls_path: Optional[str] = None
    status: str = "ok"

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "ffmpeg": self.worker.value,
            "workerState": self.worker.value,
            "streaming": self.streaming,
            "hlsPath": self.hls_path,
        }
