"""Parsing and validation helpers for boundary configuration."""

# Port range constants
MIN_PORT = 1
MAX_PORT = 65535

_TRUE_VALUES = frozenset({"true", "1", "yes", "on"})
_FALSE_VALUES = frozenset({"false", "0", "no", "off"})


def is_valid_port(port: object) -> bool:
    """Return True if ``port`` is an int inside 1-65535."""
    return (
        isinstance(port, int)
        and not isinstance(port, bool)
        and MIN_PORT <= port <= MAX_PORT
    )


def validate_port(port: int, port_name: str = "Port") -> None:
    """Validate port number range.

    Args:
        port: Port number to validate
        port_name: Name of the port for error messages

    Raises:
        ValueError: If port is not in valid range (1-65535)
    """
    if not is_valid_port(port):
        raise ValueError(f"{port_name} must be between {MIN_PORT} and {MAX_PORT}")


def parse_port(value: str | None, default: int) -> int:
    """Parse a port from an environment string, falling back to ``default``.

    Args:
        value: Raw string value, or None when unset
        default: Port returned for missing, malformed or out-of-range input

    Returns:
        Parsed port number or the default
    """
    if value is None:
        return default
    try:
        port = int(value.strip())
    except ValueError:
        return default
    return port if is_valid_port(port) else default


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean-like environment string.

    Accepts true/false, 1/0, yes/no and on/off in any case. Anything else
    yields ``default``.
    """
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return default


def parse_str(value: str | None, default: str) -> str:
    """Return the stripped value, or ``default`` when unset or blank."""
    if value is None or not value.strip():
        return default
    return value.strip()
