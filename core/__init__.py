"""
Core Module Package.

This package contains the core infrastructure components
that all other modules depend on.

Components:
- clock: Unified time abstraction
- exceptions: Custom exception hierarchy
"""

from .clock import ClockProtocol, MockClock, SystemClock, get_clock
from .exceptions import (
    ConfigurationError,
    InvalidConfigError,
    MalformedCiphertext,
    MissingConfigError,
    NotFound,
    ParseError,
    PayloadMissingError,
    StorageError,
    StorageReadFailed,
    StorageWriteFailed,
    ValidationError,
    VaultException,
)


__all__ = [
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "get_clock",
    "VaultException",
    "ConfigurationError",
    "MissingConfigError",
    "InvalidConfigError",
    "ValidationError",
    "ParseError",
    "MalformedCiphertext",
    "NotFound",
    "StorageError",
    "StorageWriteFailed",
    "StorageReadFailed",
    "PayloadMissingError",
]
