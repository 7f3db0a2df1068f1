"""Shared pytest fixtures for kube-tunnel tests."""

import asyncio
import stat
from collections.abc import Callable
from pathlib import Path

import pytest

from kube_tunnel.config import SupervisorSettings
from kube_tunnel.events import EventKind, SupervisorEvent


class RecordingSink:
    """Event sink that keeps every event and can run a hook per event."""

    def __init__(self, hook: Callable[[SupervisorEvent], None] | None = None) -> None:
        self.events: list[SupervisorEvent] = []
        self._hook = hook

    def emit(self, event: SupervisorEvent) -> None:
        self.events.append(event)
        if self._hook is not None:
            self._hook(event)

    def of_kind(self, kind: EventKind) -> list[SupervisorEvent]:
        return [event for event in self.events if event.kind == kind]

    def states(self) -> list[str]:
        return [event.data["state"] for event in self.of_kind(EventKind.STATE_CHANGED)]

    def output_lines(self) -> list[str]:
        return [event.data["line"] for event in self.of_kind(EventKind.OUTPUT)]


@pytest.fixture
def sink():
    """Fresh recording event sink."""
    return RecordingSink()


@pytest.fixture
def make_sink():
    """Factory for recording sinks with a per-event hook."""
    return RecordingSink


@pytest.fixture
def make_kubectl(tmp_path: Path):
    """Create fake kubectl executables.

    The returned factory takes the shell body and gives back the script
    path. Arguments arrive as kubectl would get them:
    ``port-forward -n <ns> svc/<service> <local>:<remote>``.
    """

    def _make(body: str, name: str = "kubectl") -> str:
        script = tmp_path / name
        script.write_text(f"#!/bin/sh\n{body}\n")
        script.chmod(script.stat().st_mode | stat.S_IEXEC | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return _make


@pytest.fixture
def forwarding_kubectl(make_kubectl):
    """Fake kubectl that reports forwarding and stays alive."""
    return make_kubectl(
        'echo "Forwarding from 127.0.0.1:${5%%:*} -> ${5##*:}"\n'
        "exec sleep 30"
    )


@pytest.fixture
def crashing_kubectl(make_kubectl):
    """Fake kubectl that fails right away."""
    return make_kubectl(
        'echo "error: lost connection to pod" >&2\n'
        "exit 1",
        name="kubectl-crash",
    )


@pytest.fixture
def fast_settings():
    """Factory for settings with short shutdown timeouts."""

    def _settings(kubectl: str, **overrides) -> SupervisorSettings:
        values = {"kubectl": kubectl, "shutdown_timeout": 1.0}
        values.update(overrides)
        return SupervisorSettings(**values)

    return _settings


@pytest.fixture
def wait_for_state():
    """Coroutine that polls until a supervisor reaches a state."""

    async def _wait(supervisor, state, timeout: float = 5.0) -> None:
        async def _poll() -> None:
            while supervisor.state != state:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_poll(), timeout=timeout)

    return _wait
