"""Thin asyncio wrapper around one external worker process."""

from __future__ import annotations

import asyncio
import logging
import re
import signal
import time
from typing import Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str, str], None]
ExitCallback = Callable[["WorkerProcess"], None]

_LINE_SPLIT_RE = re.compile(rb"[\r\n]")
_READ_SIZE = 4096


class WorkerProcess:
    """
    A launched subprocess with observed output.

    ffmpeg ends progress lines with a carriage return, so output is split on
    both ``\\r`` and ``\\n`` before being handed to ``on_output`` as
    ``(stream_name, line)``. ``on_exit`` fires once, after both output
    streams are drained.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        command: Sequence[str],
        *,
        on_output: Optional[OutputCallback] = None,
        on_exit: Optional[ExitCallback] = None,
    ) -> None:
        self.process = process
        self.command = list(command)
        self.launched_at = time.time()
        self._started = time.monotonic()
        self._ended: Optional[float] = None
        self._on_output = on_output
        self._on_exit = on_exit
        self._pumps: List[asyncio.Task] = []
        self._watcher: Optional[asyncio.Task] = None

    @classmethod
    async def launch(
        cls,
        command: Sequence[str],
        *,
        on_output: Optional[OutputCallback] = None,
        on_exit: Optional[ExitCallback] = None,
    ) -> "WorkerProcess":
        """Start ``command`` and begin observing it."""
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
        worker = cls(process, command, on_output=on_output, on_exit=on_exit)
        worker._observe()
        return worker

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    @property
    def runtime(self) -> float:
        """Seconds the process has been (or was) running."""
        end = self._ended if self._ended is not None else time.monotonic()
        return end - self._started

    def is_alive(self) -> bool:
        return self.process.returncode is None

    def terminate(self) -> bool:
        """Send SIGTERM. Returns False if the process had already exited."""
        return self._signal(signal.SIGTERM)

    def kill(self) -> bool:
        return self._signal(signal.SIGKILL)

    async def wait(self) -> int:
        """Wait for exit and for the output streams to drain."""
        if self._watcher is not None:
            await asyncio.shield(self._watcher)
        return await self.process.wait()

    def _signal(self, signum: int) -> bool:
        if not self.is_alive():
            return False
        try:
            self.process.send_signal(signum)
        except ProcessLookupError:
            return False
        return True

    def _observe(self) -> None:
        for name, stream in (("stdout", self.process.stdout), ("stderr", self.process.stderr)):
            if stream is not None:
                self._pumps.append(
                    asyncio.create_task(self._pump(name, stream), name=f"worker-{self.pid}-{name}")
                )
        self._watcher = asyncio.create_task(self._watch(), name=f"worker-{self.pid}-exit")

    async def _pump(self, name: str, stream: asyncio.StreamReader) -> None:
        buffer = b""
        while True:
            chunk = await stream.read(_READ_SIZE)
            if not chunk:
                break
            buffer += chunk
            *lines, buffer = _LINE_SPLIT_RE.split(buffer)
            for raw in lines:
                self._emit(name, raw)
        self._emit(name, buffer)

    def _emit(self, name: str, raw: bytes) -> None:
        text = raw.decode(errors="replace").strip()
        if not text or self._on_output is None:
            return
        try:
            self._on_output(name, text)
        except Exception:
            logger.exception("Output observer failed for worker %s", self.pid)

    async def _watch(self) -> None:
        await self.process.wait()
        if self._pumps:
            await asyncio.gather(*self._pumps, return_exceptions=True)
        self._ended = time.monotonic()
        if self._on_exit is not None:
            try:
                self._on_exit(self)
            except Exception:
                logger.exception("Exit observer failed for worker %s", self.pid)
