"""
Connection pool package

Bounded asyncio connection pool with wait queue, health checks and statistics.
"""

from .connection import PoolConnection, RawConnection
from .events import EventData, PoolEvent, PoolEventBus
from .health_checker import HealthChecker
from .models import (
    ConnectionInfo,
    ConnectionState,
    HealthCheckReport,
    PoolStatistics,
    PoolStatus,
)
from .pool import ConnectionFactory, Pool, create_pool
from .wait_queue import WaitQueue, Waiter

__all__ = [
    'Pool',
    'create_pool',
    'ConnectionFactory',
    'PoolConnection',
    'RawConnection',
    'ConnectionState',
    'ConnectionInfo',
    'HealthCheckReport',
    'PoolStatistics',
    'PoolStatus',
    'HealthChecker',
    'WaitQueue',
    'Waiter',
    'EventData',
    'PoolEvent',
    'PoolEventBus',
]
