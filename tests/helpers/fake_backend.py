"""
In-memory backend used by the pool tests

FakeConnection satisfies the raw-connection capability and records every
statement it receives; FakeConnectionFactory hands them out and can be
told to fail or stall.
"""

import asyncio
from typing import Any, List, Optional, Tuple

from dbpool.core.config import PoolConfiguration


class FakeConnection:
    """Raw connection double with switchable failure"""

    def __init__(self, number: int):
        self.number = number
        self.broken = False
        self.closed = False
        self.delay = 0.0
        self.statements: List[Tuple[str, Any]] = []

    def __repr__(self) -> str:
        return f"<FakeConnection #{self.number}>"

    async def query(self, sql: str, params: Optional[Any] = None) -> List[dict]:
        if self.closed:
            raise RuntimeError("connection is closed")
        self.statements.append((sql, params))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.broken:
            raise ConnectionResetError("server closed the connection unexpectedly")
        return [{"sql": sql, "params": params, "connection": self.number}]

    async def close(self) -> None:
        self.closed = True

    @property
    def health_checks(self) -> int:
        return sum(1 for sql, _ in self.statements if sql == "SELECT 1")


class FakeConnectionFactory:
    """Connection factory double"""

    def __init__(self):
        self.created: List[FakeConnection] = []
        self.calls = 0
        self.failures_remaining = 0
        self.always_fail = False
        self.delay = 0.0
        self.break_new_connections = False

    async def __call__(self) -> FakeConnection:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.always_fail or self.failures_remaining > 0:
            self.failures_remaining = max(0, self.failures_remaining - 1)
            raise ConnectionRefusedError("backend unavailable")

        connection = FakeConnection(len(self.created) + 1)
        connection.broken = self.break_new_connections
        self.created.append(connection)
        return connection


class ExecuteEndConnection:
    """Handle spelling the capability as ``execute``/``end`` with sync methods"""

    def __init__(self):
        self.executed: List[Tuple[str, Any]] = []
        self.ended = False

    def execute(self, sql: str, params: Optional[Any] = None) -> str:
        self.executed.append((sql, params))
        return f"executed {sql}"

    def end(self) -> None:
        self.ended = True


# Short timeouts and a health-check interval long enough that the
# background loop never fires during a test unless a test asks for it
FAST_POOL_SETTINGS = dict(
    min_connections=2,
    max_connections=5,
    acquire_timeout=1.0,
    connection_timeout=1.0,
    query_timeout=1.0,
    idle_timeout=60.0,
    health_check_interval=60.0,
    retry_attempts=1,
    retry_delay=0.0,
)


def fast_config(**overrides) -> PoolConfiguration:
    return PoolConfiguration(**{**FAST_POOL_SETTINGS, **overrides})
