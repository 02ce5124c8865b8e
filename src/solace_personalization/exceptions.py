"""
Solace-AI Personalization - Exception Hierarchy.

Structured exceptions for the personalization core. Errors log themselves on
construction so that fallbacks taken by public entry points stay visible.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    STORAGE = "storage"
    EXTERNAL_SERVICE = "external_service"
    INSUFFICIENT_DATA = "insufficient_data"
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    INTERNAL = "internal"


class PersonalizationError(Exception):
    """Base exception for personalization errors with structured tracking."""
    error_code: str = "PERSONALIZATION_ERROR"
    category: ErrorCategory = ErrorCategory.INTERNAL
    severity: ErrorSeverity = ErrorSeverity.MEDIUM

    def __init__(self, message: str, *, operation: str | None = None,
                 user_id: str | None = None, cause: Exception | None = None,
                 details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.user_id = user_id
        self.cause = cause
        self.details = details or {}
        self.correlation_id = str(uuid.uuid4())
        self.timestamp = datetime.now(timezone.utc)
        self._log_error()

    def _log_error(self) -> None:
        log_data: dict[str, Any] = {
            "error_code": self.error_code, "category": self.category.value,
            "severity": self.severity.value, "correlation_id": self.correlation_id,
            "operation": self.operation, "details": self.details,
        }
        if self.user_id:
            log_data["user_id"] = self.user_id
        if self.cause:
            log_data["cause_type"] = type(self.cause).__name__
            log_data["cause_message"] = str(self.cause)
        if self.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            logger.error(self.message, **log_data)
        else:
            logger.warning(self.message, **log_data)

    def to_dict(self) -> dict[str, Any]:
        return {"error": {"code": self.error_code, "message": self.message,
                          "category": self.category.value,
                          "correlation_id": self.correlation_id,
                          "timestamp": self.timestamp.isoformat()}}


class TransientIOError(PersonalizationError):
    """Storage or network failure. Retrying is the caller's responsibility."""
    error_code = "TRANSIENT_IO_ERROR"
    category = ErrorCategory.EXTERNAL_SERVICE
    severity = ErrorSeverity.MEDIUM


class StorageError(TransientIOError):
    error_code = "STORAGE_ERROR"
    category = ErrorCategory.STORAGE

    def __init__(self, message: str, *, backend: str | None = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        if backend:
            details["backend"] = backend
        super().__init__(message, details=details, **kwargs)
        self.backend = backend


class InsufficientDataError(PersonalizationError):
    """Not enough history to compute a value; callers substitute a neutral default."""
    error_code = "INSUFFICIENT_DATA"
    category = ErrorCategory.INSUFFICIENT_DATA
    severity = ErrorSeverity.LOW

    def __init__(self, message: str, *, required: int | None = None,
                 available: int | None = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        if required is not None:
            details["required"] = required
        if available is not None:
            details["available"] = available
        super().__init__(message, details=details, **kwargs)
        self.required, self.available = required, available


class ConfigurationError(PersonalizationError):
    """Invalid weights or thresholds. Fatal at startup."""
    error_code = "CONFIGURATION_ERROR"
    category = ErrorCategory.CONFIGURATION
    severity = ErrorSeverity.CRITICAL

    def __init__(self, message: str, *, config_key: str | None = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, details=details, **kwargs)
        self.config_key = config_key
