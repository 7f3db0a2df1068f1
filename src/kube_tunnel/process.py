"""Process handle for a single ``kubectl port-forward`` run."""

import asyncio
import atexit
import os
import signal
import threading
from collections.abc import Sequence
from types import TracebackType
from typing import Literal

from .common.exceptions import ProcessError
from .common.logging import get_logger
from .events import EventKind, EventSink, Severity, emit_event, make_event

logger = get_logger(__name__)

StreamName = Literal["stdout", "stderr"]

# Reader limit for a single kubectl output line
_LINE_LIMIT = 1024 * 1024
_DRAIN_TIMEOUT = 1.0


class ProcessReaper:
    """Kills port-forward processes still alive at interpreter exit."""

    _pids: set[int] = set()
    _lock = threading.Lock()

    @classmethod
    def register(cls, pid: int) -> None:
        with cls._lock:
            cls._pids.add(pid)

    @classmethod
    def unregister(cls, pid: int) -> None:
        with cls._lock:
            cls._pids.discard(pid)

    @classmethod
    def active_pids(cls) -> set[int]:
        with cls._lock:
            return set(cls._pids)

    @classmethod
    def reap(cls) -> None:
        """Send SIGKILL to every registered pid."""
        kill_signal = getattr(signal, "SIGKILL", signal.SIGTERM)
        for pid in cls.active_pids():
            try:
                os.kill(pid, kill_signal)
                logger.warning("Killed leftover port-forward process", pid=pid)
            except ProcessLookupError:
                pass
            except OSError as e:
                logger.error("Failed to kill leftover process", pid=pid, error=str(e))
            finally:
                cls.unregister(pid)


atexit.register(ProcessReaper.reap)


def classify_output(stream: StreamName, line: str) -> Severity:
    """Pick a severity for a kubectl output line."""
    if stream == "stderr" and "error" in line.lower():
        return Severity.ERROR
    return Severity.INFO


class TunnelProcess:
    """Owns one port-forward subprocess and its output readers.

    The process is always terminated on ``stop()`` and on context exit:
    SIGTERM first, SIGKILL once ``shutdown_timeout`` expires.
    """

    def __init__(
        self,
        command: Sequence[str],
        sink: EventSink | None = None,
        shutdown_timeout: float = 5.0,
    ):
        """Initialize the handle without spawning anything.

        Args:
            command: Full argv, binary first
            sink: Receiver for output line events
            shutdown_timeout: Seconds to wait after SIGTERM before SIGKILL
        """
        if not command:
            raise ValueError("command cannot be empty")
        self.command = tuple(command)
        self.shutdown_timeout = shutdown_timeout
        self._sink = sink
        self._process: asyncio.subprocess.Process | None = None
        self._readers: list[asyncio.Task[None]] = []
        self._returncode: int | None = None

    @property
    def pid(self) -> int | None:
        """Process ID if a process was spawned."""
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> int | None:
        """Exit status once the process has been reaped."""
        if self._process is not None and self._process.returncode is not None:
            return self._process.returncode
        return self._returncode

    def is_running(self) -> bool:
        """Check if the process is spawned and has not exited."""
        return self._process is not None and self._process.returncode is None

    async def start(self) -> int:
        """Spawn the process and start streaming its output.

        Returns:
            The process ID

        Raises:
            ProcessError: If the binary cannot be executed
        """
        if self._process is not None and self.is_running():
            logger.debug("Process already running", pid=self._process.pid)
            return self._process.pid

        logger.debug("Spawning port-forward process", command=" ".join(self.command))
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_LINE_LIMIT,
            )
        except OSError as e:
            self._process = None
            raise ProcessError(f"Failed to start {self.command[0]}: {e}") from e

        pid = self._process.pid
        ProcessReaper.register(pid)
        if self._process.stdout is not None:
            self._readers.append(
                asyncio.create_task(self._pump(self._process.stdout, "stdout"))
            )
        if self._process.stderr is not None:
            self._readers.append(
                asyncio.create_task(self._pump(self._process.stderr, "stderr"))
            )
        return pid

    async def _pump(self, stream: asyncio.StreamReader, stream_name: StreamName) -> None:
        pid = self.pid
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Line exceeded the reader limit; the buffer was discarded
                emit_event(
                    self._sink,
                    make_event(
                        EventKind.OUTPUT,
                        f"kubectl {stream_name}: line too long, dropped",
                        Severity.WARNING,
                        stream=stream_name,
                        pid=pid,
                    ),
                )
                continue
            if not raw:
                break

            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            emit_event(
                self._sink,
                make_event(
                    EventKind.OUTPUT,
                    f"kubectl {stream_name}: {line}",
                    classify_output(stream_name, line),
                    stream=stream_name,
                    line=line,
                    pid=pid,
                ),
            )

    async def _drain_readers(self) -> None:
        if not self._readers:
            return
        readers, self._readers = self._readers, []
        _, pending = await asyncio.wait(readers, timeout=_DRAIN_TIMEOUT)
        for task in pending:
            task.cancel()
        await asyncio.gather(*readers, return_exceptions=True)

    def _release(self) -> None:
        if self._process is not None:
            self._returncode = self._process.returncode
            ProcessReaper.unregister(self._process.pid)

    async def wait(self) -> int:
        """Wait for the process to exit and its output to be drained.

        Returns:
            The exit status (negative for signals on POSIX)
        """
        if self._process is None:
            raise ProcessError("Process was never started")

        returncode = await self._process.wait()
        await self._drain_readers()
        self._release()
        return returncode

    async def stop(self) -> int | None:
        """Terminate the process, killing it if it ignores SIGTERM.

        Returns:
            The exit status, or None if nothing was spawned
        """
        if self._process is None:
            return None

        process = self._process
        if process.returncode is None:
            logger.debug("Terminating port-forward process", pid=process.pid)
            try:
                process.terminate()
            except ProcessLookupError:
                pass

            try:
                await asyncio.wait_for(process.wait(), timeout=self.shutdown_timeout)
            except TimeoutError:
                logger.warning(
                    "Process did not terminate gracefully, force killing",
                    pid=process.pid,
                )
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        await self._drain_readers()
        self._release()
        return process.returncode

    async def __aenter__(self) -> "TunnelProcess":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        await self.stop()
        return False
