"""kube-tunnel - a self-healing kubectl port-forward supervisor."""

# High-level API
from .api import create_supervisor, managed_port_forward, start_port_forward

# Core components
from .backoff import BackoffState
from .common.exceptions import ConfigurationError, KubeTunnelError, ProcessError
from .common.logging import get_logger, setup_logging
from .config import (
    SupervisorSettings,
    TunnelConfig,
    build_config,
    build_settings,
    make_settings,
    should_enable_port_forward,
)
from .events import (
    CompositeEventSink,
    EventKind,
    EventSink,
    LoggingEventSink,
    Severity,
    SupervisorEvent,
)
from .ports import candidate_ports, is_available, os_assigned_port, select_port
from .process import TunnelProcess
from .supervisor import PortForwardSupervisor, SupervisorState
from .url import UrlPublisher, derive_url, publish_if_absent

# Setup logging on package initialization
setup_logging(level="INFO")

# Package level logger
logger = get_logger(__name__)

__version__ = "0.1.0"


__all__ = [
    # High-level API
    "create_supervisor",
    "start_port_forward",
    "managed_port_forward",
    # Supervisor
    "PortForwardSupervisor",
    "SupervisorState",
    "BackoffState",
    "TunnelProcess",
    # Configuration
    "TunnelConfig",
    "SupervisorSettings",
    "build_config",
    "build_settings",
    "make_settings",
    "should_enable_port_forward",
    # Ports
    "is_available",
    "os_assigned_port",
    "candidate_ports",
    "select_port",
    # URL
    "UrlPublisher",
    "derive_url",
    "publish_if_absent",
    # Events
    "EventKind",
    "EventSink",
    "Severity",
    "SupervisorEvent",
    "LoggingEventSink",
    "CompositeEventSink",
    # Exceptions
    "KubeTunnelError",
    "ProcessError",
    "ConfigurationError",
    # Utilities
    "get_logger",
    "setup_logging",
]
