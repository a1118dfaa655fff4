"""
Idle connection health checker

Periodically validates idle connections, reaps broken and expired ones,
and tops the pool back up toward its minimum size. Connections that are
lent out are never inspected.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from .connection import PoolConnection
from .models import HealthCheckReport

if TYPE_CHECKING:
    from .pool import Pool

logger = logging.getLogger('dbpool.connection_pool.health_checker')


class HealthChecker:
    """Background validator/reaper bound to one pool"""

    def __init__(self, pool: 'Pool'):
        self._pool = pool
        self._task: Optional[asyncio.Task] = None
        self._cycle_lock = asyncio.Lock()
        self.cycles = 0
        self.last_report: Optional[HealthCheckReport] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic loop on the running event loop"""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._health_check_loop())

    async def stop(self) -> None:
        """Stop the periodic loop"""
        if self._task is None:
            return

        task, self._task = self._task, None
        task.cancel()
        if task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _health_check_loop(self) -> None:
        interval = self._pool.config.health_check_interval
        while not self._pool.closed:
            try:
                await asyncio.sleep(interval)

                if self._pool.closed:
                    break

                report = await self.run_once()
                logger.debug(f"Health check cycle: {report.to_dict()}")

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Health check cycle failed: {e!r}")

    async def run_once(self) -> HealthCheckReport:
        """
        Run one health-check cycle

        Every connection that is idle when the cycle starts is checked at most
        once; checks of different connections run concurrently.
        """
        async with self._cycle_lock:
            pool = self._pool
            report = HealthCheckReport()
            if pool.closed:
                return report

            candidates = [connection for connection in pool.connections if connection.is_idle()]
            results = await asyncio.gather(
                *(self._check_connection(connection, report) for connection in candidates),
                return_exceptions=True
            )
            for connection, result in zip(candidates, results):
                if isinstance(result, Exception):
                    logger.error(f"Health check of connection {connection.connection_id} failed: {result!r}")

            if not pool.closed:
                report.replaced += await pool.ensure_min_connections()

            self.cycles += 1
            self.last_report = report
            return report

    async def _check_connection(self, connection: PoolConnection, report: HealthCheckReport) -> None:
        pool = self._pool
        config = pool.config

        # May have been lent out since the snapshot was taken
        if pool.closed or not connection.is_idle():
            return
        report.checked += 1

        if config.test_while_idle:
            if not await pool.validate_connection(connection):
                report.invalid += 1
                logger.warning(f"Removing connection {connection.connection_id} after failed health check")
                await pool.remove_connection(connection)

                if not pool.closed and pool.size + pool.pending_creations < config.min_connections:
                    report.replaced += await pool.ensure_min_connections()
                return

            pool.notify_waiters()

        if connection.is_expired(config.idle_timeout) and pool.size > config.min_connections:
            report.expired += 1
            logger.debug(f"Removing expired idle connection {connection.connection_id}")
            await pool.remove_connection(connection)
