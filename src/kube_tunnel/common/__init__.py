"""Shared helpers: logging, exceptions and parsing utilities."""

from .exceptions import ConfigurationError, KubeTunnelError, ProcessError
from .logging import get_logger, setup_logging
from .utils import (
    MAX_PORT,
    MIN_PORT,
    is_valid_port,
    parse_bool,
    parse_port,
    parse_str,
    validate_port,
)

__all__ = [
    "ConfigurationError",
    "KubeTunnelError",
    "ProcessError",
    "get_logger",
    "setup_logging",
    "MAX_PORT",
    "MIN_PORT",
    "is_valid_port",
    "parse_bool",
    "parse_port",
    "parse_str",
    "validate_port",
]
