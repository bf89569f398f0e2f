"""Wires the segment store and the supervisor for the single stream endpoint."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .backoff import RestartPolicy
from .models import HealthState, PipelineConfig
from .segment_store import SegmentStore
from .supervisor import PipelineSupervisor

logger = logging.getLogger(__name__)


class PipelineManager:
    """Owns the RTMP -> HLS pipeline for one stream endpoint."""

    def __init__(
        self,
        config: PipelineConfig,
        executable: str,
        *,
        policy: Optional[RestartPolicy] = None,
    ) -> None:
        """
        Initialize the pipeline manager.

        Args:
            config: Pipeline configuration
            executable: Resolved path of the ffmpeg binary
            policy: Optional restart policy override
        """
        self.config = config
        self.store = SegmentStore(
            config.media_root,
            config.endpoint,
            segment_prefix=config.segment_prefix,
            sequence_digits=config.sequence_digits,
        )
        self.supervisor = PipelineSupervisor(config, self.store, executable, policy=policy)

    @property
    def media_root(self) -> Path:
        return self.store.media_root

    async def start(self) -> None:
        """Start with an empty segment store and begin supervising ffmpeg."""
        self.store.ensure()
        self.store.clear()
        await self.supervisor.run()
        logger.info(
            "Pipeline up: publish to %s with stream key '%s', play %s",
            self.config.endpoint.publish_url(),
            self.config.endpoint.stream_key,
            self.store.playlist_url,
        )

    async def stop(self) -> None:
        """
        Send SIGTERM to ffmpeg.

        Waits up to ``shutdown_timeout`` seconds for it to finish the
        playlist; with a timeout of 0 the signal is fire-and-forget.
        """
        await self.supervisor.stop(timeout=self.config.shutdown_timeout or None)

    def health(self) -> HealthState:
        """
        Compute the current health snapshot.

        Returns:
            HealthState with worker liveness and playlist presence
        """
        streaming = self.store.has_playlist()
        return HealthState(
            worker=self.supervisor.worker_state,
            streaming=streaming,
            hls_path=self.store.playlist_url if streaming else None,
        )
