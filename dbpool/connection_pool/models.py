"""
Connection pool data models

Defines the connection states and the statistics/status snapshots the pool reports.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Any
from enum import Enum


class ConnectionState(Enum):
    """Connection state"""
    IDLE = "idle"                # available for lending
    ACTIVE = "active"            # lent to a caller
    VALIDATING = "validating"    # running a health-check query
    CLOSED = "closed"            # torn down, terminal
    ERROR = "error"              # failed validation, pending removal


@dataclass
class PoolCounters:
    """Cumulative pool counters"""
    created: int = 0
    acquired: int = 0
    released: int = 0
    timed_out: int = 0
    errors: int = 0
    queries: int = 0
    total_wait_time_ms: float = 0.0


@dataclass
class ConnectionInfo:
    """Snapshot of a single pooled connection"""
    connection_id: int
    state: ConnectionState
    age_seconds: float
    idle_seconds: float
    query_count: int
    error_count: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['state'] = self.state.value
        return data


@dataclass
class PoolStatistics:
    """Pool statistics: raw counters plus derived figures"""
    created: int
    acquired: int
    released: int
    timed_out: int
    errors: int
    queries: int
    total_wait_time_ms: float
    total_connections: int
    active_connections: int
    idle_connections: int
    waiting_requests: int
    average_wait_time_ms: float
    pool_utilization: float
    average_connection_age: float
    average_queries_per_connection: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PoolStatus:
    """Lightweight pool status"""
    closed: bool
    size: int
    min: int
    max: int
    active: int
    idle: int
    waiting: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HealthCheckReport:
    """Outcome of one health-check cycle"""
    checked: int = 0
    invalid: int = 0
    expired: int = 0
    replaced: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
