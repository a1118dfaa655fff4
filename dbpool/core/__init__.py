"""
dbpool core infrastructure: configuration, errors, logging and retry support
"""

from .config import AppConfig, ConfigManager, Environment, LoggingConfig, PoolConfiguration, load_config
from .errors import (
    AcquireTimeoutError,
    AppError,
    ConfigurationError,
    ConnectionFailedError,
    PoolClosedError,
    PoolError,
    PoolExhaustedError,
    QueryTimeoutError,
    ValidationFailedError,
)
from .retry import RetryError, RetryStrategy, retry_async

__all__ = [
    'AppConfig',
    'ConfigManager',
    'Environment',
    'LoggingConfig',
    'PoolConfiguration',
    'load_config',
    'AcquireTimeoutError',
    'AppError',
    'ConfigurationError',
    'ConnectionFailedError',
    'PoolClosedError',
    'PoolError',
    'PoolExhaustedError',
    'QueryTimeoutError',
    'ValidationFailedError',
    'RetryError',
    'RetryStrategy',
    'retry_async',
]
