"""Shared infrastructure: config, logging, command execution, CSV sink."""

from hwcheck.core.errors import (
    ConfigError,
    FatalError,
    HardwareCheckError,
    RunInterrupted,
    SinkUnavailable,
)

__all__ = [
    "ConfigError",
    "FatalError",
    "HardwareCheckError",
    "RunInterrupted",
    "SinkUnavailable",
]
