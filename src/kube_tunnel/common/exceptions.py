"""Custom exceptions for the port-forward supervisor."""


class KubeTunnelError(Exception):
    """Base exception for all kube-tunnel errors."""
    pass


class ProcessError(KubeTunnelError):
    """Raised when the port-forward process cannot be started or stopped."""
    pass


class ConfigurationError(KubeTunnelError):
    """Raised when programmatic configuration is invalid."""
    pass
