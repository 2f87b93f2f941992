"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the upload vault.

- Per-file rejections (reported in the upload outcome)
- Read path failures (surfaced to the retrieving caller)
- Storage faults (filesystem side)

Metadata store failures are raised by storage.repositories and
are not part of this hierarchy.

============================================================
EXCEPTION HIERARCHY
============================================================
VaultException (base)
├── ConfigurationError
│   ├── MissingConfigError
│   └── InvalidConfigError
├── ValidationError
├── ParseError
├── MalformedCiphertext
├── NotFound
└── StorageError
    ├── StorageWriteFailed
    └── StorageReadFailed
        └── PayloadMissingError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class Severity(Enum):
    """How loudly an error should be logged."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorClassification(Enum):
    """Who can fix the error."""

    CLIENT = "client"
    """The submitted content; resubmitting fixed input succeeds."""

    TRANSIENT = "transient"
    """Nobody in particular; a retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """An operator."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class VaultException(Exception):
    """
    Base exception for all vault errors.

    Keyword fields that are not None are recorded in `context`
    next to anything passed in `context` itself.
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
        **fields: Any,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        self.context = dict(context or {})
        self.context.update({k: v for k, v in fields.items() if v is not None})
        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_client_error(self) -> bool:
        return self.classification == ErrorClassification.CLIENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def to_log_format(self) -> str:
        line = f"[{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
        if not self.context:
            return line
        return line + " | " + ", ".join(f"{k}={v}" for k, v in self.context.items())


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(VaultException):
    """The vault cannot start with the given configuration."""

    default_severity = Severity.CRITICAL
    default_classification = ErrorClassification.NON_RECOVERABLE


class MissingConfigError(ConfigurationError):
    def __init__(self, key: str, source: str = "environment"):
        super().__init__(
            f"Missing required configuration: {key}",
            config_key=key,
            source=source,
        )


class InvalidConfigError(ConfigurationError):
    def __init__(self, key: str, reason: str):
        # value omitted, may be key material
        super().__init__(
            f"Invalid configuration for {key}: {reason}",
            config_key=key,
            reason=reason,
        )


# ============================================================
# PER-FILE REJECTIONS
# ============================================================

class ValidationError(VaultException):
    """Uploaded file rejected before any processing (type or size)."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.CLIENT

    def __init__(self, message: str, filename: Optional[str] = None, **kwargs):
        super().__init__(message, filename=filename, **kwargs)


class ParseError(VaultException):
    """Tabular content could not be turned into records."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.CLIENT

    def __init__(
        self,
        message: str,
        filename: Optional[str] = None,
        row: Optional[int] = None,
        field: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, filename=filename, row=row, field=field, **kwargs)


# ============================================================
# READ PATH ERRORS
# ============================================================

class MalformedCiphertext(VaultException):
    """Ciphertext is truncated or does not decrypt to valid padding."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        super().__init__(message, path=path, **kwargs)


class NotFound(VaultException):
    """No metadata record exists for the requested identifier."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.CLIENT

    def __init__(self, record_id: Any, **kwargs):
        super().__init__(f"Stored file {record_id} not found", record_id=str(record_id), **kwargs)
        self.record_id = record_id


# ============================================================
# STORAGE ERRORS
# ============================================================

class StorageError(VaultException):
    """Base class for filesystem faults."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, path=path, operation=operation, **kwargs)


class StorageWriteFailed(StorageError):
    """Writing a ciphertext or staging file failed."""


class StorageReadFailed(StorageError):
    """Reading a ciphertext failed."""


class PayloadMissingError(StorageReadFailed):
    """Metadata exists but its ciphertext file does not."""

    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, record_id: Any, path: str, **kwargs):
        super().__init__(
            f"Ciphertext for {record_id} is missing at {path}",
            path=path,
            operation="open",
            **kwargs,
        )
        self.record_id = record_id
