"""Utility functions for geph-autotest."""

import random
from collections.abc import Sequence

MIN_PORT = 1
MAX_PORT = 65535

# Command-line flags whose following argument must never reach the logs
SENSITIVE_FLAGS = ("--password",)


def validate_port(port: int, port_name: str = "Port") -> None:
    """Validate port number range.

    Raises:
        ValueError: If port is not in valid range (1-65535)
    """
    if not isinstance(port, int) or not (MIN_PORT <= port <= MAX_PORT):
        raise ValueError(f"{port_name} must be between {MIN_PORT} and {MAX_PORT}")


def validate_non_empty_string(value: str, field_name: str) -> str:
    """Validate that a string is not empty or only whitespace.

    Returns:
        Stripped string value

    Raises:
        ValueError: If string is empty or only whitespace
    """
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return value.strip()


def validate_listen_address(value: str, field_name: str = "Listen address") -> str:
    """Validate a ``host:port`` listen address such as ``127.0.0.1:10910``.

    Returns:
        The address with surrounding whitespace removed

    Raises:
        ValueError: If the host is missing or the port is not a valid number
    """
    address = validate_non_empty_string(value, field_name)
    host, sep, port = address.rpartition(":")
    if not sep or not host:
        raise ValueError(f"{field_name} must look like host:port, got {address!r}")
    if not port.isdigit():
        raise ValueError(f"{field_name} has a non-numeric port: {port!r}")
    validate_port(int(port), f"{field_name} port")
    return address


def jittered_seconds(interval: int, rng: random.Random | None = None) -> int:
    """Pick a whole number of seconds uniformly from ``[0, 2 * interval]``.

    The mean of the distribution is ``interval``, so measurements spaced with
    it average out to the configured rate.
    """
    if interval < 0:
        raise ValueError("Interval cannot be negative")
    return (rng or random).randint(0, interval * 2)


def mask_sensitive_data(
    value: str | None, mask_char: str = "*", show_chars: int = 4
) -> str:
    """Mask sensitive data for logging while preserving some characters for debugging.

    Args:
        value: Sensitive string to mask (e.g. a password)
        mask_char: Character to use for masking
        show_chars: Number of characters to show at the end

    Returns:
        Masked string safe for logging
    """
    if not value:
        return "<None>"

    if len(value) <= show_chars:
        return mask_char * len(value)

    masked_length = len(value) - show_chars
    visible = value[-show_chars:] if show_chars else ""
    return mask_char * masked_length + visible


def sanitize_command(command: Sequence[str]) -> list[str]:
    """Return a copy of a command line with secret flag values masked."""
    sanitized = list(command)
    for index, arg in enumerate(sanitized[:-1]):
        if arg in SENSITIVE_FLAGS:
            sanitized[index + 1] = mask_sensitive_data(sanitized[index + 1], show_chars=0)
    return sanitized
