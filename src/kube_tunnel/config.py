"""Tunnel configuration built from an environment snapshot."""

import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .common.exceptions import ConfigurationError
from .common.logging import get_logger
from .common.utils import parse_bool, parse_port, parse_str

logger = get_logger(__name__)

# Recognized environment keys
ENV_ENABLED = "K8S_PORT_FORWARD"
ENV_NAMESPACE = "K8S_NAMESPACE"
ENV_SERVICE = "K8S_SERVICE"
ENV_LOCAL_PORT = "K8S_LOCAL_PORT"
ENV_REMOTE_PORT = "K8S_REMOTE_PORT"
ENV_KUBECTL = "K8S_KUBECTL"
ENV_CONNECTION_URL = "ELASTICSEARCH_URL"

DEFAULT_NAMESPACE = "infra"
DEFAULT_SERVICE = "logs-es-http"
DEFAULT_LOCAL_PORT = 9200
DEFAULT_REMOTE_PORT = 9200
DEFAULT_KUBECTL = "kubectl"


class TunnelConfig(BaseModel):
    """What to forward, and whether to forward at all."""

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    enabled: bool = Field(default=False, description="Start the supervisor at all")
    namespace: str = Field(default=DEFAULT_NAMESPACE, min_length=1)
    service: str = Field(default=DEFAULT_SERVICE, min_length=1)
    preferred_local_port: int = Field(default=DEFAULT_LOCAL_PORT, ge=1, le=65535)
    remote_port: int = Field(default=DEFAULT_REMOTE_PORT, ge=1, le=65535)

    @property
    def target(self) -> str:
        """Resource argument for kubectl, e.g. ``svc/logs-es-http``."""
        return f"svc/{self.service}"

    def port_mapping(self, local_port: int) -> str:
        """Return the ``LOCAL:REMOTE`` argument for kubectl."""
        return f"{local_port}:{self.remote_port}"


class SupervisorSettings(BaseModel):
    """Tuning knobs for the supervisor loop.

    ``stable_after`` is the continuous uptime after which the backoff delay
    goes back to ``backoff_min``; it defaults to three times ``backoff_max``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kubectl: str = Field(default=DEFAULT_KUBECTL, min_length=1, description="kubectl binary")
    backoff_min: float = Field(default=1.0, gt=0, description="First restart delay in seconds")
    backoff_max: float = Field(default=30.0, gt=0, description="Restart delay cap in seconds")
    stable_after: float = Field(default=90.0, gt=0, description="Uptime that resets backoff")
    shutdown_timeout: float = Field(default=5.0, gt=0, description="Grace period before SIGKILL")
    probe_timeout: float = Field(default=0.5, gt=0, le=10.0, description="Port probe timeout")
    probe_host: str = Field(default="127.0.0.1", min_length=1, description="Probe interface")


def build_config(environment: Mapping[str, str] | None = None) -> TunnelConfig:
    """Build a ``TunnelConfig`` from an environment view.

    Never fails: missing, blank or malformed values fall back to defaults.

    Args:
        environment: Key-value snapshot; ``os.environ`` when None

    Returns:
        Immutable tunnel configuration
    """
    env = os.environ if environment is None else environment
    config = TunnelConfig(
        enabled=parse_bool(env.get(ENV_ENABLED), default=False),
        namespace=parse_str(env.get(ENV_NAMESPACE), DEFAULT_NAMESPACE),
        service=parse_str(env.get(ENV_SERVICE), DEFAULT_SERVICE),
        preferred_local_port=parse_port(env.get(ENV_LOCAL_PORT), DEFAULT_LOCAL_PORT),
        remote_port=parse_port(env.get(ENV_REMOTE_PORT), DEFAULT_REMOTE_PORT),
    )
    logger.debug("Tunnel configuration built", **config.model_dump())
    return config


def build_settings(environment: Mapping[str, str] | None = None) -> SupervisorSettings:
    """Build ``SupervisorSettings`` from an environment view.

    Only the kubectl binary is read from the environment; the timing knobs
    are programmatic.
    """
    env = os.environ if environment is None else environment
    return SupervisorSettings(kubectl=parse_str(env.get(ENV_KUBECTL), DEFAULT_KUBECTL))


def make_settings(**overrides: Any) -> SupervisorSettings:
    """Create settings from keyword overrides.

    Raises:
        ConfigurationError: If an override is invalid
    """
    try:
        settings = SupervisorSettings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid supervisor settings: {e}") from e

    if settings.backoff_min > settings.backoff_max:
        raise ConfigurationError("backoff_min must not exceed backoff_max")
    return settings


def should_enable_port_forward(environment: Mapping[str, str] | None = None) -> bool:
    """Return True if the environment asks for the port-forward supervisor."""
    env = os.environ if environment is None else environment
    return parse_bool(env.get(ENV_ENABLED), default=False)
