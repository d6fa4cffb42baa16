import asyncio

import pytest
from fastapi.testclient import TestClient

from stagequiz.config import Settings
from stagequiz.main import app
from stagequiz.state import session_store


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c
    session_store.clear()


@pytest.fixture
def fast_settings():
    return Settings(
        question_batch_size=3,
        question_time_limit=3,
        tick_seconds=0.005,
        advance_delay_seconds=0.01,
        generation_chunk_size=2,
    )


async def wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.002)
