"""
SQLite driver adapter

Adapts ``aiosqlite`` connections to the pool's raw-connection capability
(``query`` + ``close``). Connections are opened in WAL mode with a busy
timeout so concurrent pooled connections do not trip over file locks.
"""

import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence

import aiosqlite

logger = logging.getLogger('dbpool.drivers.sqlite')


class SQLiteConnection:
    """aiosqlite connection exposing ``query`` and ``close``"""

    def __init__(self, connection: aiosqlite.Connection, db_path: str, autocommit: bool = True):
        self.connection = connection
        self.db_path = db_path
        self.autocommit = autocommit

    def __repr__(self) -> str:
        return f"<SQLiteConnection db_path={self.db_path!r}>"

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[aiosqlite.Row]:
        """Execute a statement and return all fetched rows"""
        async with self.connection.execute(sql, tuple(params or ())) as cursor:
            rows = await cursor.fetchall()

        if self.autocommit and self.connection.in_transaction:
            await self.connection.commit()
        return list(rows)

    async def close(self) -> None:
        await self.connection.close()


def sqlite_connection_factory(
    db_path: str,
    journal_mode: str = "WAL",
    busy_timeout_ms: int = 30000,
    autocommit: bool = True
) -> Callable[[], Awaitable[SQLiteConnection]]:
    """
    Build a connection factory for ``db_path``

    Returns:
        Async callable opening one configured SQLiteConnection per call
    """
    async def factory() -> SQLiteConnection:
        connection = await aiosqlite.connect(db_path)
        try:
            await connection.execute(f"PRAGMA journal_mode={journal_mode};")
            await connection.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)};")
        except Exception:
            await connection.close()
            raise
        connection.row_factory = aiosqlite.Row

        logger.debug(f"Opened SQLite connection to {db_path}")
        return SQLiteConnection(connection, db_path, autocommit=autocommit)

    return factory
