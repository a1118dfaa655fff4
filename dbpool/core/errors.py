"""
Core Error Handling System

This module provides the error hierarchy for the dbpool library.
Every error carries a machine-readable code, optional details and the
underlying cause so failures can be logged and reported consistently.
"""

from typing import Optional, Any, Dict
import traceback
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base library error class

    All custom exceptions in dbpool inherit from this class.
    Provides common error handling functionality and consistent error formatting.
    """

    def __init__(self,
                 message: str,
                 error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None,
                 cause: Optional[Exception] = None):
        """
        Initialize the error

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code for logging
            details: Additional error context and metadata
            cause: The underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__.upper()
        self.details = details or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        # Capture stack trace if available
        self.stack_trace = traceback.format_exc() if cause else None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary representation

        Returns:
            Dictionary containing error information
        """
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
            "stack_trace": self.stack_trace
        }

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Code: {self.error_code}, Details: {self.details})"
        return f"{self.message} (Code: {self.error_code})"


class ConfigurationError(AppError):
    """
    Configuration error

    Raised when configuration is missing, malformed or inconsistent.
    """

    def __init__(self,
                 config_key: str,
                 message: str,
                 error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None,
                 cause: Optional[Exception] = None):
        enhanced_details = {
            "config_key": config_key,
            **(details or {})
        }

        super().__init__(
            message=message,
            error_code=error_code or "CONFIGURATION_ERROR",
            details=enhanced_details,
            cause=cause
        )

        self.config_key = config_key


class PoolError(AppError):
    """
    Connection pool error

    Base class for every failure surfaced by the pool.
    """

    default_code = "POOL_ERROR"

    def __init__(self,
                 message: str,
                 error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None,
                 cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code=error_code or self.default_code,
            details=details,
            cause=cause
        )


class PoolClosedError(PoolError):
    """Raised when an operation is attempted after the pool was closed."""

    default_code = "POOL_CLOSED"

    def __init__(self, message: str = "Pool is closed", **kwargs):
        super().__init__(message, **kwargs)


class PoolExhaustedError(PoolError):
    """Raised when the pool is at its maximum size and cannot grow."""

    default_code = "POOL_EXHAUSTED"

    def __init__(self, max_connections: int, message: Optional[str] = None, **kwargs):
        details = {"max_connections": max_connections, **kwargs.pop("details", {})}
        super().__init__(
            message or f"Maximum pool size reached ({max_connections})",
            details=details,
            **kwargs
        )
        self.max_connections = max_connections


class ConnectionFailedError(PoolError):
    """
    Connection creation error

    Raised when the connection factory fails or times out on every attempt.
    """

    default_code = "CONNECTION_FAILED"

    def __init__(self, message: str, attempts: int = 1, **kwargs):
        details = {"attempts": attempts, **kwargs.pop("details", {})}
        super().__init__(message, details=details, **kwargs)
        self.attempts = attempts


class AcquireTimeoutError(PoolError):
    """Raised when a caller waited longer than its acquire timeout."""

    default_code = "ACQUIRE_TIMEOUT"

    def __init__(self, timeout: float, message: Optional[str] = None, **kwargs):
        details = {"timeout_seconds": timeout, **kwargs.pop("details", {})}
        super().__init__(
            message or f"Connection acquire timeout after {timeout:.3f}s",
            details=details,
            **kwargs
        )
        self.timeout = timeout


class ValidationFailedError(PoolError):
    """Raised internally when a health-check query fails on a connection."""

    default_code = "VALIDATION_FAILED"

    def __init__(self, connection_id: Any, message: Optional[str] = None, **kwargs):
        details = {"connection_id": connection_id, **kwargs.pop("details", {})}
        super().__init__(
            message or f"Validation failed for connection {connection_id}",
            details=details,
            **kwargs
        )
        self.connection_id = connection_id


class QueryTimeoutError(PoolError):
    """Raised when a query runs longer than the configured query timeout."""

    default_code = "QUERY_TIMEOUT"

    def __init__(self, timeout: float, query: Optional[str] = None, **kwargs):
        details = {"timeout_seconds": timeout, "query": query, **kwargs.pop("details", {})}
        super().__init__(
            f"Query exceeded timeout of {timeout:.3f}s",
            details=details,
            **kwargs
        )
        self.timeout = timeout
