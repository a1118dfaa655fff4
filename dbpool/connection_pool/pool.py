"""
Connection pool orchestrator

Bounded asyncio pool for expensive, stateful backend connections:
- idle reuse with on-demand growth up to ``max_connections``
- FIFO waiting with per-request deadlines
- borrow-time and periodic validation
- counters and snapshots for monitoring

All state changes happen between suspension points of a single event
loop. A connection chosen for a caller is marked ACTIVE in the same
synchronous step that selects it, and factory calls in flight count
against ``max_connections``.
"""

import asyncio
import dataclasses
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Sequence, Set

from ..core.config import PoolConfiguration
from ..core.errors import (
    AcquireTimeoutError,
    ConfigurationError,
    ConnectionFailedError,
    PoolClosedError,
    PoolExhaustedError,
    QueryTimeoutError,
    ValidationFailedError,
)
from ..core.retry import RetryError, RetryStrategy, retry_async
from .connection import PoolConnection, close_raw, run_statement
from .events import PoolEvent, PoolEventBus
from .health_checker import HealthChecker
from .models import (
    ConnectionInfo,
    ConnectionState,
    PoolCounters,
    PoolStatistics,
    PoolStatus,
)
from .wait_queue import WaitQueue, Waiter

logger = logging.getLogger('dbpool.connection_pool.pool')

ConnectionFactory = Callable[[], Awaitable[Any]]


class Pool:
    """
    Bounded pool of reusable backend connections

    Usage::

        async with Pool(PoolConfiguration(max_connections=5), factory) as pool:
            rows = await pool.query("SELECT 1")

            async with pool.connection() as conn:
                await conn.query("UPDATE ...")
    """

    def __init__(
        self,
        config: Optional[PoolConfiguration],
        connection_factory: ConnectionFactory
    ):
        if not callable(connection_factory):
            raise ConfigurationError("connection_factory", "connection_factory must be callable")

        self.config = config or PoolConfiguration()
        problems = self.config.validate()
        if problems:
            raise ConfigurationError(
                "pool",
                f"Invalid pool configuration: {', '.join(problems)}",
                details={"problems": problems}
            )

        self._connection_factory = connection_factory
        self._connections: List[PoolConnection] = []
        self._wait_queue = WaitQueue(on_timeout=self._on_waiter_timeout)
        self._counters = PoolCounters()
        self._next_connection_id = 1
        self._creating = 0
        self._closed = False
        self._initialized = False
        self._background_tasks: Set[asyncio.Task] = set()
        self._retry_strategy = RetryStrategy(
            max_attempts=self.config.retry_attempts,
            base_delay=self.config.retry_delay,
            max_delay=self.config.retry_delay,
            backoff_multiplier=1.0
        )

        self.events = PoolEventBus()
        self.health_checker = HealthChecker(self)

    def __repr__(self) -> str:
        status = self.get_status()
        return (
            f"<Pool size={status.size} active={status.active} idle={status.idle} "
            f"waiting={status.waiting} closed={status.closed}>"
        )

    async def __aenter__(self) -> 'Pool':
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Properties

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def size(self) -> int:
        return len(self._connections)

    @property
    def pending_creations(self) -> int:
        return self._creating

    @property
    def connections(self) -> List[PoolConnection]:
        """Snapshot of the pooled connections in creation order"""
        return list(self._connections)

    @property
    def waiting(self) -> int:
        return len(self._wait_queue)

    # Lifecycle

    async def initialize(self) -> None:
        """
        Open ``min_connections`` connections and start health checks

        Factory failures are logged; the pool may start below its minimum
        and is topped up by later health-check cycles.
        """
        if self._closed:
            raise PoolClosedError()
        if self._initialized:
            return

        self._initialized = True
        await self.ensure_min_connections()
        self.health_checker.start()

        logger.info(
            f"Pool initialized with {len(self._connections)} connection(s) "
            f"(min={self.config.min_connections}, max={self.config.max_connections})"
        )
        self.events.emit(PoolEvent.INITIALIZED, size=len(self._connections))

    async def close(self) -> None:
        """
        Shut the pool down; idempotent

        Pending waiters are rejected first, then every connection is closed,
        including connections currently lent out.
        """
        if self._closed:
            return

        self._closed = True

        rejected = self._wait_queue.reject_all(lambda: PoolClosedError("Pool is closing"))
        if rejected:
            logger.info(f"Rejected {rejected} waiting acquire request(s) on close")

        background = list(self._background_tasks)
        for task in background:
            task.cancel()

        await self.health_checker.stop()

        connections = list(self._connections)
        self._connections.clear()
        await asyncio.gather(*(connection.close() for connection in connections))

        if background:
            await asyncio.gather(*background, return_exceptions=True)

        logger.info(f"Pool closed ({len(connections)} connection(s) closed)")
        self.events.emit(PoolEvent.CLOSED)

    # Connection management

    async def create_connection(self) -> PoolConnection:
        """
        Open a new connection through the factory and add it to the pool

        Raises:
            PoolClosedError: the pool is closed
            PoolExhaustedError: the pool already holds (or is opening) ``max_connections``
            ConnectionFailedError: every factory attempt failed or timed out
        """
        if self._closed:
            raise PoolClosedError()
        if not self._has_capacity():
            raise PoolExhaustedError(self.config.max_connections)

        self._creating += 1
        try:
            raw_connection = await retry_async(
                self._open_raw_connection,
                self._retry_strategy,
                operation_name="create connection"
            )
        except RetryError as e:
            raise ConnectionFailedError(
                f"Failed to create connection: {e.original_error!r}",
                attempts=e.attempts,
                cause=e.original_error
            ) from e.original_error
        finally:
            self._creating -= 1

        if self._closed:
            try:
                await close_raw(raw_connection)
            except Exception as e:
                logger.warning(f"Error closing connection opened during shutdown: {e!r}")
            raise PoolClosedError()

        connection = PoolConnection(raw_connection, self._next_connection_id)
        self._next_connection_id += 1
        self._connections.append(connection)
        self._counters.created += 1

        logger.debug(f"Created connection {connection.connection_id}")
        self.events.emit(PoolEvent.CONNECTION_CREATED, id=connection.connection_id)
        return connection

    async def _open_raw_connection(self) -> Any:
        return await asyncio.wait_for(
            self._connection_factory(),
            timeout=self.config.connection_timeout
        )

    async def ensure_min_connections(self) -> int:
        """Best-effort top-up to ``min_connections``; returns how many were created"""
        created = 0
        while (not self._closed and
               len(self._connections) + self._creating < self.config.min_connections):
            try:
                await self.create_connection()
            except PoolClosedError:
                break
            except (ConnectionFailedError, PoolExhaustedError) as e:
                logger.error(f"Failed to create minimum connection: {e}")
                break
            created += 1

        if created:
            self.notify_waiters()
        return created

    async def remove_connection(self, connection: PoolConnection) -> None:
        """Drop a connection from the pool and close its raw handle"""
        if connection in self._connections:
            self._connections.remove(connection)

        await connection.close()

        logger.debug(f"Removed connection {connection.connection_id}")
        self.events.emit(PoolEvent.CONNECTION_REMOVED, id=connection.connection_id)
        self._schedule_replenish()

    async def validate_connection(self, connection: PoolConnection) -> bool:
        """
        Run the health-check query on a connection

        Returns True and leaves the connection IDLE on success. On failure the
        connection is left in ERROR state and False is returned; removing it
        is the caller's job.
        """
        if connection.state in (ConnectionState.ERROR, ConnectionState.CLOSED):
            return False

        connection.state = ConnectionState.VALIDATING
        try:
            await self._run_health_query(connection)
        except ValidationFailedError as e:
            if connection.state != ConnectionState.CLOSED:
                connection.state = ConnectionState.ERROR
            connection.error_count += 1
            logger.warning(f"{e.message}: {e.cause!r}")
            return False

        if connection.state == ConnectionState.CLOSED:
            return False

        connection.state = ConnectionState.IDLE
        return True

    async def _run_health_query(self, connection: PoolConnection) -> None:
        try:
            await asyncio.wait_for(
                run_statement(connection.raw_connection, self.config.health_check_query),
                timeout=self.config.query_timeout
            )
        except Exception as e:
            raise ValidationFailedError(connection.connection_id, cause=e) from e

    # Acquire / release

    async def acquire(self, timeout: Optional[float] = None) -> Any:
        """
        Borrow a raw connection

        Args:
            timeout: maximum seconds to wait, defaults to ``acquire_timeout``.
                Borrow-time validation retries share this budget.

        Raises:
            PoolClosedError: the pool is closed
            ConnectionFailedError: a new connection was needed and could not be opened
            AcquireTimeoutError: no connection became available in time
        """
        if self._closed:
            raise PoolClosedError()

        if timeout is None:
            timeout = self.config.acquire_timeout
        start_time = time.monotonic()
        deadline = start_time + max(0.0, timeout)

        while True:
            connection = await self._checkout(deadline, timeout)

            if self.config.validate_on_borrow:
                try:
                    valid = await self.validate_connection(connection)
                except asyncio.CancelledError:
                    self._spawn(self.remove_connection(connection))
                    raise

                if self._closed:
                    raise PoolClosedError()

                if not valid:
                    await self.remove_connection(connection)
                    if self._closed:
                        raise PoolClosedError()
                    if time.monotonic() >= deadline:
                        self._counters.timed_out += 1
                        raise AcquireTimeoutError(timeout)
                    continue

            connection.mark_active()
            self._counters.acquired += 1
            self._counters.total_wait_time_ms += (time.monotonic() - start_time) * 1000

            self.events.emit(PoolEvent.CONNECTION_ACQUIRED, id=connection.connection_id)
            return connection.raw_connection

    async def _checkout(self, deadline: float, timeout: float) -> PoolConnection:
        """Reserve an idle, new or handed-off connection (returned ACTIVE)"""
        connection = self._find_idle_connection()
        if connection is not None:
            connection.mark_active()
            return connection

        if self._has_capacity():
            # Callers queued behind this creation get a fresh attempt if it fails
            try:
                connection = await asyncio.wait_for(
                    self.create_connection(),
                    timeout=max(0.0, deadline - time.monotonic())
                )
            except ConnectionFailedError:
                self._counters.errors += 1
                self._schedule_replenish()
                raise
            except asyncio.TimeoutError:
                self._counters.timed_out += 1
                self._schedule_replenish()
                raise AcquireTimeoutError(timeout) from None
            connection.mark_active()
            return connection

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            self._counters.timed_out += 1
            raise AcquireTimeoutError(timeout)

        waiter = self._wait_queue.enqueue(remaining)
        try:
            return await waiter.future
        except asyncio.CancelledError:
            self._reclaim(waiter)
            raise

    def _reclaim(self, waiter: Waiter) -> None:
        """Give back a connection handed to a waiter whose caller was cancelled"""
        future = waiter.future
        if not future.done() or future.cancelled() or future.exception() is not None:
            return

        connection = future.result()
        logger.debug(f"Reclaiming connection {connection.connection_id} from cancelled acquire")
        if connection.state == ConnectionState.ACTIVE:
            connection.mark_idle()
            self.notify_waiters()

    async def release(self, raw_connection: Any) -> None:
        """
        Return a borrowed connection to the pool

        Never raises: unknown handles and duplicate releases are logged and ignored.
        """
        try:
            self._release(raw_connection)
        except Exception:
            logger.exception("Unexpected error while releasing connection")

    def _release(self, raw_connection: Any) -> None:
        connection = self._find_by_handle(raw_connection)
        if connection is None:
            logger.warning("Attempted to release unknown connection")
            return

        if connection.state != ConnectionState.ACTIVE:
            logger.warning(
                f"Ignoring release of connection {connection.connection_id} "
                f"in state {connection.state.value}"
            )
            return

        connection.mark_idle()
        self._counters.released += 1
        self.events.emit(PoolEvent.CONNECTION_RELEASED, id=connection.connection_id)
        self.notify_waiters()

    def notify_waiters(self) -> None:
        """Hand idle connections to waiting callers, oldest waiter first"""
        while self._wait_queue:
            connection = self._find_idle_connection()
            if connection is None:
                break

            connection.mark_active()
            if not self._wait_queue.hand_off(connection):
                connection.mark_idle()
                break

    @asynccontextmanager
    async def connection(self, timeout: Optional[float] = None) -> AsyncIterator[Any]:
        """Connection context manager; the handle is always released on exit"""
        raw_connection = await self.acquire(timeout)
        try:
            yield raw_connection
        finally:
            await self.release(raw_connection)

    async def query(
        self,
        sql: str,
        params: Optional[Sequence[Any]] = None,
        timeout: Optional[float] = None
    ) -> Any:
        """
        Acquire a connection, run one statement and release it

        Args:
            sql: statement passed to the handle's ``query``/``execute``
            params: statement parameters
            timeout: acquire timeout; execution is bounded by ``query_timeout``
        """
        raw_connection = await self.acquire(timeout)
        connection = self._find_by_handle(raw_connection)
        timed_out = False
        try:
            try:
                result = await asyncio.wait_for(
                    run_statement(raw_connection, sql, params),
                    timeout=self.config.query_timeout
                )
            except asyncio.TimeoutError as e:
                timed_out = True
                self._record_query_error(connection)
                raise QueryTimeoutError(self.config.query_timeout, query=sql, cause=e) from e
            except Exception:
                self._record_query_error(connection)
                raise

            self._counters.queries += 1
            if connection is not None:
                connection.query_count += 1
            return result
        finally:
            # The driver may still be running the abandoned statement
            if timed_out and connection is not None:
                logger.warning(f"Discarding connection {connection.connection_id} after query timeout")
                await self.remove_connection(connection)
            else:
                await self.release(raw_connection)

    # Introspection

    def get_statistics(self) -> PoolStatistics:
        counters = self._counters
        connections = self._connections
        active = self._count_state(ConnectionState.ACTIVE)
        idle = self._count_state(ConnectionState.IDLE)
        total = len(connections)

        average_wait = counters.total_wait_time_ms / counters.acquired if counters.acquired else 0.0
        average_age = sum(c.age for c in connections) / total if total else 0.0
        average_queries = sum(c.query_count for c in connections) / total if total else 0.0

        return PoolStatistics(
            created=counters.created,
            acquired=counters.acquired,
            released=counters.released,
            timed_out=counters.timed_out,
            errors=counters.errors,
            queries=counters.queries,
            total_wait_time_ms=counters.total_wait_time_ms,
            total_connections=total,
            active_connections=active,
            idle_connections=idle,
            waiting_requests=len(self._wait_queue),
            average_wait_time_ms=round(average_wait, 2),
            pool_utilization=round(active / self.config.max_connections * 100, 2),
            average_connection_age=average_age,
            average_queries_per_connection=average_queries,
        )

    def get_status(self) -> PoolStatus:
        return PoolStatus(
            closed=self._closed,
            size=len(self._connections),
            min=self.config.min_connections,
            max=self.config.max_connections,
            active=self._count_state(ConnectionState.ACTIVE),
            idle=self._count_state(ConnectionState.IDLE),
            waiting=len(self._wait_queue),
        )

    def get_connection_info(self) -> List[ConnectionInfo]:
        return [connection.to_info() for connection in self._connections]

    # Internals

    def _has_capacity(self) -> bool:
        return len(self._connections) + self._creating < self.config.max_connections

    def _find_idle_connection(self) -> Optional[PoolConnection]:
        for connection in self._connections:
            if connection.state == ConnectionState.IDLE:
                return connection
        return None

    def _find_by_handle(self, raw_connection: Any) -> Optional[PoolConnection]:
        for connection in self._connections:
            if connection.raw_connection is raw_connection:
                return connection
        return None

    def _count_state(self, state: ConnectionState) -> int:
        return sum(1 for connection in self._connections if connection.state == state)

    def _record_query_error(self, connection: Optional[PoolConnection]) -> None:
        self._counters.errors += 1
        if connection is not None:
            connection.error_count += 1

    def _on_waiter_timeout(self, waiter: Waiter) -> None:
        self._counters.timed_out += 1
        logger.warning(f"Acquire timed out after {waiter.timeout:.3f}s ({len(self._wait_queue)} still waiting)")

    def _schedule_replenish(self) -> None:
        """Open a connection in the background for callers stuck waiting after a removal"""
        if self._closed or not self._wait_queue or not self._has_capacity():
            return
        self._spawn(self._replenish_for_waiters())

    async def _replenish_for_waiters(self) -> None:
        try:
            await self.create_connection()
        except (ConnectionFailedError, PoolExhaustedError, PoolClosedError) as e:
            logger.warning(f"Could not open a connection for waiting requests: {e}")
            return
        self.notify_waiters()

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)


async def create_pool(
    connection_factory: ConnectionFactory,
    config: Optional[PoolConfiguration] = None,
    **overrides: Any
) -> Pool:
    """Build and initialize a pool; keyword overrides replace configuration fields"""
    config = dataclasses.replace(config or PoolConfiguration(), **overrides)
    pool = Pool(config, connection_factory)
    await pool.initialize()
    return pool
