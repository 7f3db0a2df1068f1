"""Local port probing and selection.

Probing is advisory: a port that looks free here can still be taken by
another process before kubectl binds it. That race is recovered by the
supervisor's restart path, which selects again on every start.
"""

import os
import socket
from collections.abc import Callable, Iterator

from .common.logging import get_logger
from .common.utils import MAX_PORT, MIN_PORT, is_valid_port
from .events import EventKind, EventSink, Severity, emit_event, make_event

logger = get_logger(__name__)

DEFAULT_PROBE_HOST = "127.0.0.1"
DEFAULT_PROBE_TIMEOUT = 0.5

NEIGHBOR_SPAN = 10
HIGH_PORT_BLOCK = range(19200, 19300)

PortProbe = Callable[[int], bool]


def is_available(
    port: int,
    host: str = DEFAULT_PROBE_HOST,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> bool:
    """Check whether a TCP listener can be bound on ``host:port``.

    The socket is released immediately. Any bind error (in use, permission
    denied, invalid port) means "not available"; nothing is raised.

    Args:
        port: Port number to probe
        host: Interface address to bind
        timeout: Upper bound for socket operations in seconds

    Returns:
        True if bind and listen succeeded
    """
    # port 0 would bind an ephemeral port and look "available"
    if not is_valid_port(port):
        return False
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(timeout)
            if os.name == "posix":
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(1)
            return True
    except (OSError, OverflowError, ValueError, TypeError):
        return False


def os_assigned_port(host: str = DEFAULT_PROBE_HOST) -> int | None:
    """Ask the OS for an ephemeral port by binding port 0.

    Returns:
        The assigned port, or None if the OS refused
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind((host, 0))
            port: int = sock.getsockname()[1]
            return port
    except OSError as e:
        logger.debug("OS port assignment failed", host=host, error=str(e))
        return None


def candidate_ports(preferred: int) -> Iterator[int]:
    """Yield ports to try, in priority order.

    ``preferred`` first, then the ten ports above it, the ten below it, and
    finally the 19200-19299 block. Out-of-range values are skipped.
    """
    yield preferred
    for offset in range(1, NEIGHBOR_SPAN + 1):
        if preferred + offset <= MAX_PORT:
            yield preferred + offset
    for offset in range(1, NEIGHBOR_SPAN + 1):
        if preferred - offset >= MIN_PORT:
            yield preferred - offset
    yield from HIGH_PORT_BLOCK


def select_port(
    preferred: int,
    *,
    probe: PortProbe = is_available,
    sink: EventSink | None = None,
    host: str = DEFAULT_PROBE_HOST,
) -> int:
    """Pick a local port for the forwarder.

    Never fails: if every candidate and the OS allocator are exhausted the
    preferred port is returned unchanged and the bind failure surfaces when
    kubectl starts.

    Args:
        preferred: Port the caller would like to use
        probe: Availability check, ``is_available`` by default
        sink: Optional event sink for probe and decision events
        host: Interface passed to the OS allocator fallback

    Returns:
        The selected port
    """
    for port in candidate_ports(preferred):
        available = probe(port)
        emit_event(
            sink,
            make_event(
                EventKind.PORT_PROBE,
                "Probed local port",
                Severity.DEBUG,
                port=port,
                available=available,
            ),
        )
        if available:
            _report_selection(sink, preferred, port, source="candidate")
            return port

    assigned = os_assigned_port(host)
    if assigned is not None:
        _report_selection(sink, preferred, assigned, source="os")
        return assigned

    _report_selection(sink, preferred, preferred, source="fallback")
    return preferred


def _report_selection(
    sink: EventSink | None, preferred: int, port: int, *, source: str
) -> None:
    if source == "fallback":
        severity = Severity.ERROR
        message = f"No free local port found, falling back to {preferred}"
    elif port != preferred:
        severity = Severity.WARNING
        message = f"Port {preferred} not available, using port {port} instead"
    else:
        severity = Severity.INFO
        message = f"Using preferred local port {port}"

    emit_event(
        sink,
        make_event(
            EventKind.PORT_SELECTED,
            message,
            severity,
            preferred=preferred,
            port=port,
            source=source,
        ),
    )
