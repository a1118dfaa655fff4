"""
Pooled connection wrapper

Wraps a raw backend handle with pool-managed metadata and the connection state machine.
"""

import inspect
import logging
import time
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from .models import ConnectionInfo, ConnectionState

logger = logging.getLogger('dbpool.connection_pool.connection')


@runtime_checkable
class RawConnection(Protocol):
    """
    Capability every backend handle must provide

    ``query`` may be spelled ``execute`` and ``close`` may be spelled ``end``;
    either may return a plain value or an awaitable.
    """

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any: ...

    def close(self) -> Any: ...


async def run_statement(raw_connection: Any, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
    """Run ``sql`` through the handle's ``query`` or ``execute`` method"""
    method = getattr(raw_connection, 'query', None)
    if not callable(method):
        method = getattr(raw_connection, 'execute', None)
    if not callable(method):
        raise TypeError("Connection does not support query or execute method")

    result = method(sql) if params is None else method(sql, params)
    if inspect.isawaitable(result):
        result = await result
    return result


async def close_raw(raw_connection: Any) -> None:
    """Tear down a raw handle through ``close`` or ``end``"""
    method = getattr(raw_connection, 'close', None)
    if not callable(method):
        method = getattr(raw_connection, 'end', None)
    if not callable(method):
        return

    result = method()
    if inspect.isawaitable(result):
        await result


class PoolConnection:
    """Raw connection plus lifecycle state and usage counters"""

    def __init__(self, raw_connection: Any, connection_id: int):
        self.raw_connection = raw_connection
        self.connection_id = connection_id
        self.state = ConnectionState.IDLE
        self.created_at = time.monotonic()
        self.last_used_at = self.created_at
        self.query_count = 0
        self.error_count = 0

    def __repr__(self) -> str:
        return f"<PoolConnection id={self.connection_id} state={self.state.value}>"

    def is_idle(self) -> bool:
        return self.state == ConnectionState.IDLE

    def is_active(self) -> bool:
        return self.state == ConnectionState.ACTIVE

    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    def is_expired(self, idle_timeout: float) -> bool:
        """True only for an idle connection unused for longer than ``idle_timeout``"""
        if self.state != ConnectionState.IDLE:
            return False
        return self.idle_time > idle_timeout

    def mark_active(self) -> None:
        self.state = ConnectionState.ACTIVE
        self.last_used_at = time.monotonic()

    def mark_idle(self) -> None:
        self.state = ConnectionState.IDLE
        self.last_used_at = time.monotonic()

    @property
    def age(self) -> float:
        return time.monotonic() - self.created_at

    @property
    def idle_time(self) -> float:
        return time.monotonic() - self.last_used_at

    async def close(self) -> None:
        """Close the raw handle; closing twice is a no-op and close errors are logged"""
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSED
        try:
            await close_raw(self.raw_connection)
        except Exception as e:
            logger.warning(f"Error while closing connection {self.connection_id}: {e!r}")

    def to_info(self) -> ConnectionInfo:
        return ConnectionInfo(
            connection_id=self.connection_id,
            state=self.state,
            age_seconds=self.age,
            idle_seconds=self.idle_time,
            query_count=self.query_count,
            error_count=self.error_count,
        )
