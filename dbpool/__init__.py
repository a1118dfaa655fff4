"""
dbpool - bounded asyncio pool for stateful backend connections
"""

from .connection_pool import (
    ConnectionInfo,
    ConnectionState,
    HealthCheckReport,
    Pool,
    PoolConnection,
    PoolEvent,
    PoolStatistics,
    PoolStatus,
    RawConnection,
    create_pool,
)
from .core.config import PoolConfiguration
from .core.errors import (
    AcquireTimeoutError,
    ConnectionFailedError,
    PoolClosedError,
    PoolError,
    PoolExhaustedError,
    QueryTimeoutError,
    ValidationFailedError,
)

__version__ = "1.0.0"

__all__ = [
    'Pool',
    'create_pool',
    'PoolConfiguration',
    'PoolConnection',
    'RawConnection',
    'ConnectionState',
    'ConnectionInfo',
    'HealthCheckReport',
    'PoolEvent',
    'PoolStatistics',
    'PoolStatus',
    'PoolError',
    'PoolClosedError',
    'PoolExhaustedError',
    'ConnectionFailedError',
    'AcquireTimeoutError',
    'ValidationFailedError',
    'QueryTimeoutError',
]
