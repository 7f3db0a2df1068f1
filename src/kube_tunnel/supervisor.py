"""Self-healing supervisor for ``kubectl port-forward``.

The supervisor runs as one asyncio task for the lifetime of the host
process. Each cycle selects a local port, spawns kubectl, streams its
output and waits for it to exit. Exits are never fatal: the supervisor
backs off (1s doubling up to 30s) and starts again, forever, until
``shutdown()`` is requested.

State machine::

    IDLE -> STARTING -> RUNNING -> FAILED -> BACKOFF -> STARTING ...
                           |                    |
                           +---> TERMINATED <---+
"""

import asyncio
from enum import Enum
from functools import partial
from types import TracebackType
from typing import Any, Literal

from .backoff import BackoffState
from .common.exceptions import ProcessError
from .common.logging import get_logger
from .config import SupervisorSettings, TunnelConfig
from .events import (
    EventKind,
    EventSink,
    LoggingEventSink,
    Severity,
    emit_event,
    make_event,
)
from .ports import PortProbe, is_available, select_port
from .process import TunnelProcess
from .url import UrlPublisher

logger = get_logger(__name__)


class SupervisorState(str, Enum):
    """Supervisor lifecycle states."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"
    BACKOFF = "backoff"
    TERMINATED = "terminated"


_STATE_SEVERITY = {
    SupervisorState.FAILED: Severity.WARNING,
}


class PortForwardSupervisor:
    """Keeps a ``kubectl port-forward`` alive and publishes its local URL.

    Only one kubectl process is owned at a time: a new start never begins
    before the previous process has been stopped and reaped.

    Example:
        >>> supervisor = PortForwardSupervisor(build_config(os.environ))
        >>> async with supervisor:
        ...     await supervisor.wait_until_running(timeout=10)
        ...     print(supervisor.url)
    """

    def __init__(
        self,
        config: TunnelConfig,
        settings: SupervisorSettings | None = None,
        *,
        sink: EventSink | None = None,
        publisher: UrlPublisher | None = None,
        probe: PortProbe | None = None,
    ):
        """Initialize the supervisor without starting anything.

        Args:
            config: What to forward
            settings: Timing and binary settings, defaults when None
            sink: Event sink; a structlog-backed sink when None
            publisher: Publishes the local URL once a port is committed
            probe: Port availability check used by port selection
        """
        self.config = config
        self.settings = settings if settings is not None else SupervisorSettings()
        self._sink: EventSink = sink if sink is not None else LoggingEventSink()
        self._publisher = publisher
        self._probe: PortProbe = probe or partial(
            is_available,
            host=self.settings.probe_host,
            timeout=self.settings.probe_timeout,
        )

        self._state = SupervisorState.IDLE
        self._backoff = BackoffState(
            minimum=self.settings.backoff_min,
            maximum=self.settings.backoff_max,
        )
        self._committed_port: int | None = None
        self._process: TunnelProcess | None = None
        self._restart_count = 0
        self._last_exit_code: int | None = None

        self._shutdown_event = asyncio.Event()
        self._running_event = asyncio.Event()
        self._terminated_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def committed_port(self) -> int | None:
        """Local port of the current (or last) run cycle."""
        return self._committed_port

    @property
    def pid(self) -> int | None:
        if self._process is not None and self._process.is_running():
            return self._process.pid
        return None

    @property
    def restart_count(self) -> int:
        return self._restart_count

    @property
    def last_exit_code(self) -> int | None:
        return self._last_exit_code

    @property
    def backoff(self) -> BackoffState:
        return self._backoff

    @property
    def url(self) -> str | None:
        """Connection URL visible to clients, if a publisher is attached."""
        return self._publisher.url if self._publisher is not None else None

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_event.is_set()

    def is_alive(self) -> bool:
        """Check if a kubectl process is currently running."""
        return self._process is not None and self._process.is_running()

    def build_command(self, local_port: int) -> tuple[str, ...]:
        """Return the kubectl argv for ``local_port``."""
        return (
            self.settings.kubectl,
            "port-forward",
            "-n",
            self.config.namespace,
            self.config.target,
            self.config.port_mapping(local_port),
        )

    def _emit(
        self,
        kind: EventKind,
        message: str,
        severity: Severity = Severity.INFO,
        **data: Any,
    ) -> None:
        emit_event(self._sink, make_event(kind, message, severity, **data))

    def _set_state(self, state: SupervisorState, **data: Any) -> None:
        previous = self._state
        self._state = state
        if state is SupervisorState.TERMINATED:
            self._terminated_event.set()
        self._emit(
            EventKind.STATE_CHANGED,
            f"Port-forward {state.value}",
            _STATE_SEVERITY.get(state, Severity.INFO),
            previous=previous.value,
            state=state.value,
            **data,
        )

    async def run(self) -> None:
        """Supervise kubectl until shutdown is requested.

        Returns immediately, staying IDLE, when the tunnel is disabled.
        """
        if not self.config.enabled:
            logger.info("Port-forward disabled, supervisor not started")
            return
        if self._state is SupervisorState.TERMINATED:
            return

        try:
            while not self._shutdown_event.is_set():
                await self._run_cycle()
                if self._shutdown_event.is_set():
                    break
                await self._backoff_and_wait()
        finally:
            await self._release_process()
            self._running_event.clear()
            self._set_state(SupervisorState.TERMINATED, port=self._committed_port)

    async def _run_cycle(self) -> None:
        """One STARTING -> RUNNING -> FAILED pass, or TERMINATED on shutdown."""
        self._set_state(SupervisorState.STARTING)
        port = select_port(
            self.config.preferred_local_port,
            probe=self._probe,
            sink=self._sink,
            host=self.settings.probe_host,
        )
        self._committed_port = port

        command = self.build_command(port)
        self._emit(
            EventKind.SPAWN,
            f"Starting port-forward: {' '.join(command)}",
            namespace=self.config.namespace,
            service=self.config.service,
            local_port=port,
            remote_port=self.config.remote_port,
        )

        process = TunnelProcess(
            command,
            sink=self._sink,
            shutdown_timeout=self.settings.shutdown_timeout,
        )
        self._process = process
        try:
            await process.start()
        except ProcessError as e:
            self._process = None
            self._fail(None, str(e))
            return

        if self._shutdown_event.is_set():
            await self._release_process()
            return

        self._set_state(SupervisorState.RUNNING, pid=process.pid, port=port)
        self._running_event.set()
        if self._publisher is not None:
            self._publisher.publish(port)

        try:
            exit_code = await self._wait_for_exit(process)
        except ProcessError as e:
            self._fail(None, str(e))
        else:
            if exit_code is not None:
                self._fail(exit_code, f"kubectl port-forward exited with status {exit_code}")
        finally:
            self._running_event.clear()
            await self._release_process()

    async def _wait_for_exit(self, process: TunnelProcess) -> int | None:
        """Wait until the process exits (its status) or shutdown (None)."""
        exit_task = asyncio.create_task(process.wait())
        shutdown_task = asyncio.create_task(self._shutdown_event.wait())
        stable_task = asyncio.create_task(self._reset_when_stable(process))
        try:
            await asyncio.wait(
                {exit_task, shutdown_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (exit_task, shutdown_task, stable_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(exit_task, shutdown_task, stable_task, return_exceptions=True)

        if exit_task.cancelled() or (
            shutdown_task.done() and not shutdown_task.cancelled()
        ):
            return None
        error = exit_task.exception()
        if error is not None:
            raise ProcessError(f"Lost track of port-forward process: {error}") from error
        return exit_task.result()

    async def _reset_when_stable(self, process: TunnelProcess) -> None:
        await asyncio.sleep(self.settings.stable_after)
        if process.is_running() and not self._backoff.is_reset:
            self._backoff.reset()
            self._emit(
                EventKind.BACKOFF_RESET,
                "Port-forward stable, backoff reset",
                pid=process.pid,
                uptime=self.settings.stable_after,
                delay=self._backoff.current_delay,
            )

    def _fail(self, exit_code: int | None, reason: str) -> None:
        self._last_exit_code = exit_code
        self._set_state(
            SupervisorState.FAILED,
            exit_code=exit_code,
            port=self._committed_port,
            reason=reason,
        )

    async def _backoff_and_wait(self) -> None:
        delay = self._backoff.next_delay()
        self._restart_count += 1
        self._set_state(
            SupervisorState.BACKOFF,
            delay=delay,
            restart_count=self._restart_count,
        )
        self._emit(
            EventKind.BACKOFF,
            f"Restarting port-forward in {delay:g}s",
            delay=delay,
            restart_count=self._restart_count,
        )
        await self._wait_backoff(delay)

    async def _wait_backoff(self, delay: float) -> bool:
        """Sleep for ``delay`` unless shutdown comes first.

        Returns:
            True if shutdown was requested during the wait
        """
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=delay)
        except TimeoutError:
            return False
        return True

    async def _release_process(self) -> None:
        process, self._process = self._process, None
        if process is None:
            return
        returncode = await process.stop()
        if returncode is not None:
            self._last_exit_code = returncode

    def start(self) -> asyncio.Task[None]:
        """Run the supervisor as a background task.

        Returns:
            The supervisor task; calling again returns the same task
        """
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="kube-tunnel-supervisor")
        return self._task

    def request_shutdown(self) -> None:
        """Signal the loop to stop without waiting for it."""
        self._shutdown_event.set()

    async def shutdown(self) -> None:
        """Stop supervising and make sure kubectl is gone.

        Interrupts any backoff wait. If the loop does not finish within the
        shutdown timeout it is cancelled; the process is still reaped.
        """
        self._shutdown_event.set()
        task = self._task
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(
                    asyncio.shield(task),
                    timeout=self.settings.shutdown_timeout + 1.0,
                )
            except TimeoutError:
                logger.warning("Supervisor did not stop in time, cancelling")
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

        await self._release_process()
        if self._state is not SupervisorState.TERMINATED:
            self._set_state(SupervisorState.TERMINATED, port=self._committed_port)

    async def wait_until_running(self, timeout: float | None = None) -> bool:
        """Wait for the RUNNING state.

        Returns:
            True if running, False on timeout or once terminated
        """
        if self._state is SupervisorState.TERMINATED:
            return False
        running_task = asyncio.create_task(self._running_event.wait())
        terminated_task = asyncio.create_task(self._terminated_event.wait())
        try:
            await asyncio.wait(
                {running_task, terminated_task},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (running_task, terminated_task):
                task.cancel()
            await asyncio.gather(running_task, terminated_task, return_exceptions=True)
        return self._state is SupervisorState.RUNNING

    def get_status(self) -> dict[str, Any]:
        """Get a status summary for health endpoints and debugging."""
        return {
            "enabled": self.config.enabled,
            "state": self._state.value,
            "namespace": self.config.namespace,
            "service": self.config.service,
            "committed_port": self._committed_port,
            "remote_port": self.config.remote_port,
            "pid": self.pid,
            "restart_count": self._restart_count,
            "last_exit_code": self._last_exit_code,
            "backoff_delay": self._backoff.current_delay,
            "url": self.url,
        }

    async def __aenter__(self) -> "PortForwardSupervisor":
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        await self.shutdown()
        return False
