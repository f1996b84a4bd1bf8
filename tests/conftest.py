import pytest


@pytest.fixture
def anyio_backend():
    # The code under test is built on asyncio primitives (asyncio.Lock, asyncio.to_thread).
    return "asyncio"
