"""
pytest configuration and shared fixtures
"""

import pytest
import pytest_asyncio

from dbpool.connection_pool import Pool
from helpers.fake_backend import FakeConnectionFactory, fast_config


@pytest.fixture
def factory():
    """Fresh fake connection factory"""
    return FakeConnectionFactory()


@pytest_asyncio.fixture
async def make_pool(factory):
    """Build pools on the shared factory; every pool is closed at teardown"""
    pools = []

    def _make(**overrides) -> Pool:
        pool = Pool(fast_config(**overrides), factory)
        pools.append(pool)
        return pool

    yield _make

    for pool in pools:
        await pool.close()
