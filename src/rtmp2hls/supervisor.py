"""Supervision of the ffmpeg worker that feeds the segment store."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from .backoff import RestartPolicy
from .ffmpeg import DiagnosticLine, build_command, classify_line
from .models import PipelineConfig, SupervisorState, WorkerEvent, WorkerState
from .segment_store import SegmentStore
from .worker import WorkerProcess

logger = logging.getLogger(__name__)

Observer = Callable[[DiagnosticLine], None]

_EVENT_LEVELS = {
    WorkerEvent.INPUT_OPENED: logging.INFO,
    WorkerEvent.STREAM_MAPPING: logging.INFO,
    WorkerEvent.OUTPUT_OPENED: logging.INFO,
    WorkerEvent.SEGMENT_OPENED: logging.DEBUG,
    WorkerEvent.PROGRESS: logging.DEBUG,
    WorkerEvent.BIND_FAILED: logging.ERROR,
    WorkerEvent.ERROR: logging.WARNING,
    WorkerEvent.LOG: logging.DEBUG,
}


class PipelineSupervisor:
    """Keeps exactly one ffmpeg worker running for the configured endpoint."""

    def __init__(
        self,
        config: PipelineConfig,
        store: SegmentStore,
        executable: str,
        *,
        policy: Optional[RestartPolicy] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.executable = executable
        self.policy = policy or RestartPolicy(
            initial=config.backoff_initial,
            maximum=config.backoff_max,
            stable_after=config.stable_after,
            max_restarts=config.max_restarts,
        )

        self.state: SupervisorState = SupervisorState.NOT_STARTED
        self.launches = 0
        self.last_exit_code: Optional[int] = None
        self.last_segment: Optional[int] = None

        self._worker: Optional[WorkerProcess] = None
        self._observers: List[Observer] = []
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._launch_lock = asyncio.Lock()
        self._segments_this_run = 0
        self._playlist_opened = False

    @property
    def worker(self) -> Optional[WorkerProcess]:
        return self._worker

    @property
    def restarts(self) -> int:
        return max(0, self.launches - 1)

    @property
    def worker_state(self) -> WorkerState:
        return WorkerState.RUNNING if self.is_alive() else WorkerState.STOPPED

    def is_alive(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def add_observer(self, observer: Observer) -> None:
        """Receive every classified line of worker output."""
        self._observers.append(observer)

    async def start(self) -> Optional[WorkerProcess]:
        """
        Launch a worker unless one is already alive.

        Returns the live worker, or ``None`` if the process could not be
        spawned; the monitor loop retries in that case.
        """
        async with self._launch_lock:
            if self.is_alive():
                return self._worker

            if self._worker is not None:
                # Make sure the previous exit has been accounted for.
                await self._worker.wait()

            self.store.ensure()
            command = build_command(self.executable, self.config, self.store)

            try:
                worker = await WorkerProcess.launch(
                    command,
                    on_output=self._handle_output,
                    on_exit=self._handle_exit,
                )
            except OSError as exc:
                logger.error("Failed to launch ffmpeg: %s", exc)
                self.state = SupervisorState.TERMINATED
                self.policy.record_exit(0.0)
                return None

            self._worker = worker
            self._segments_this_run = 0
            self._playlist_opened = False
            self.launches += 1
            self.state = SupervisorState.RUNNING

            logger.info(
                "Started ffmpeg (pid %s) listening on %s, writing %s",
                worker.pid,
                self.config.endpoint.listen_url,
                self.store.playlist_path,
            )
            logger.debug("ffmpeg command: %s", " ".join(command))
            return worker

    async def monitor_once(self) -> bool:
        """Run one liveness check. Returns True if a worker was launched."""
        if self._stop_event.is_set() or self.is_alive():
            return False

        if self._worker is not None:
            await self._worker.wait()

        if self.policy.exhausted:
            if self.state is not SupervisorState.FAILED:
                logger.error(
                    "ffmpeg failed %d times in a row, giving up on restarts",
                    self.policy.failures,
                )
                self.state = SupervisorState.FAILED
            return False

        if not self.policy.ready():
            logger.debug("ffmpeg relaunch held back for %.1fs", self.policy.remaining())
            return False

        logger.info("No live ffmpeg worker, launching")
        return await self.start() is not None

    async def monitor(self) -> None:
        """Check the worker every ``monitor_interval`` seconds until stopped."""
        while not self._stop_event.is_set():
            try:
                await self.monitor_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Monitor check failed")
            await self._sleep(self.config.monitor_interval)

    async def run(self) -> None:
        """Launch the first worker and start the monitor loop in the background."""
        if self._task and not self._task.done():
            return

        self._stop_event.clear()
        await self.start()
        self._task = asyncio.create_task(self.monitor(), name="rtmp2hls-monitor")

    async def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop monitoring and send SIGTERM to the worker.

        By default this does not wait for the worker to exit. With
        ``timeout`` it waits that long and then sends SIGKILL.
        """
        self._stop_event.set()
        self.state = SupervisorState.STOPPED

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        worker = self._worker
        if worker is None:
            return

        if worker.terminate():
            logger.info("Sent SIGTERM to ffmpeg (pid %s)", worker.pid)

        if timeout is None:
            return

        try:
            await asyncio.wait_for(worker.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("ffmpeg (pid %s) ignored SIGTERM for %.1fs, killing", worker.pid, timeout)
            worker.kill()
            await worker.wait()

    def _handle_output(self, stream: str, text: str) -> None:
        line = classify_line(text)

        if line.event is WorkerEvent.SEGMENT_OPENED and line.path:
            sequence = self.store.parse_sequence(line.path)
            if sequence is not None:
                self.last_segment = sequence
            self._segments_this_run += 1
            if self._segments_this_run == 1:
                logger.info("ffmpeg is receiving a stream, first segment %s", line.path)

        level = _EVENT_LEVELS[line.event]
        if line.event is WorkerEvent.OUTPUT_OPENED and line.path:
            # Rewritten after every segment; only the first write per run is a milestone.
            if self._playlist_opened:
                level = logging.DEBUG
            self._playlist_opened = True

        if line.event is WorkerEvent.BIND_FAILED:
            logger.error("ffmpeg could not bind %s: %s", self.config.endpoint.listen_url, line.text)
        else:
            logger.log(level, "ffmpeg %s [%s]: %s", stream, line.event.value, line.text)

        for observer in self._observers:
            observer(line)

    def _handle_exit(self, worker: WorkerProcess) -> None:
        if worker is not self._worker:
            return

        code = worker.returncode
        self.last_exit_code = code
        runtime = worker.runtime

        if self.state is SupervisorState.STOPPED:
            logger.info("ffmpeg (pid %s) exited with code %s during shutdown", worker.pid, code)
            return

        self.state = SupervisorState.TERMINATED
        delay = self.policy.record_exit(runtime)

        level = logging.INFO if code == 0 else logging.WARNING
        logger.log(level, "ffmpeg (pid %s) exited with code %s after %.1fs", worker.pid, code, runtime)
        if delay:
            logger.warning(
                "ffmpeg exited %d times in quick succession, next launch in %.1fs",
                self.policy.failures,
                delay,
            )

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
