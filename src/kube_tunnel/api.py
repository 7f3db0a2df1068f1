"""High-level API for the port-forward supervisor.

These helpers wire configuration, event reporting and URL publication
together from an environment snapshot.
"""

import os
from collections.abc import AsyncIterator, Mapping, MutableMapping
from contextlib import asynccontextmanager
from typing import Any

from .common.logging import get_logger
from .config import (
    ENV_CONNECTION_URL,
    SupervisorSettings,
    build_config,
    build_settings,
)
from .events import EventSink, LoggingEventSink
from .ports import PortProbe
from .supervisor import PortForwardSupervisor
from .url import UrlPublisher

logger = get_logger(__name__)


def create_supervisor(
    environment: Mapping[str, str] | None = None,
    *,
    sink: EventSink | None = None,
    surface: MutableMapping[str, str] | None = None,
    settings: SupervisorSettings | None = None,
    probe: PortProbe | None = None,
) -> PortForwardSupervisor:
    """Create a supervisor from an environment snapshot without starting it.

    Args:
        environment: Configuration source; a snapshot of ``os.environ`` when None
        sink: Event sink; structlog-backed when None
        surface: Where the connection URL is published; ``os.environ`` when None
        settings: Supervisor settings; read from ``environment`` when None
        probe: Port availability check override

    Returns:
        PortForwardSupervisor: Ready to ``start()``

    Example:
        >>> supervisor = create_supervisor({"K8S_PORT_FORWARD": "true"})
        >>> supervisor.build_command(9200)
        ('kubectl', 'port-forward', '-n', 'infra', 'svc/logs-es-http', '9200:9200')
    """
    snapshot = dict(os.environ) if environment is None else dict(environment)
    event_sink = sink if sink is not None else LoggingEventSink()

    config = build_config(snapshot)
    publisher = UrlPublisher(
        surface,
        sink=event_sink,
        configured_url=snapshot.get(ENV_CONNECTION_URL),
    )
    return PortForwardSupervisor(
        config,
        settings if settings is not None else build_settings(snapshot),
        sink=event_sink,
        publisher=publisher,
        probe=probe,
    )


def start_port_forward(
    environment: Mapping[str, str] | None = None,
    **kwargs: Any,
) -> PortForwardSupervisor | None:
    """Start the supervisor in the background if the environment enables it.

    Must be called from a running event loop.

    Returns:
        The running supervisor, or None when port-forwarding is disabled
    """
    supervisor = create_supervisor(environment, **kwargs)
    if not supervisor.config.enabled:
        logger.debug("Port-forward not enabled")
        return None

    supervisor.start()
    logger.info(
        "Port-forward supervisor started",
        namespace=supervisor.config.namespace,
        service=supervisor.config.service,
        preferred_local_port=supervisor.config.preferred_local_port,
        remote_port=supervisor.config.remote_port,
    )
    return supervisor


@asynccontextmanager
async def managed_port_forward(
    environment: Mapping[str, str] | None = None,
    *,
    wait: bool = True,
    timeout: float | None = 30.0,
    **kwargs: Any,
) -> AsyncIterator[PortForwardSupervisor]:
    """Context manager that supervises kubectl for the duration of a block.

    A tunnel that is not up within ``timeout`` is logged, not raised: the
    supervisor keeps retrying in the background.

    Args:
        environment: Configuration source; ``os.environ`` snapshot when None
        wait: Wait for the first RUNNING state before entering the block
        timeout: Upper bound for that wait in seconds
        **kwargs: Passed through to ``create_supervisor``

    Yields:
        PortForwardSupervisor: The supervisor (IDLE when disabled)

    Example:
        >>> async with managed_port_forward() as supervisor:
        ...     es = AsyncElasticsearch(os.environ["ELASTICSEARCH_URL"])
    """
    supervisor = create_supervisor(environment, **kwargs)
    try:
        if supervisor.config.enabled:
            supervisor.start()
            if wait and not await supervisor.wait_until_running(timeout):
                logger.warning(
                    "Port-forward not running yet, continuing",
                    state=supervisor.state.value,
                    timeout=timeout,
                )
        yield supervisor
    finally:
        await supervisor.shutdown()
