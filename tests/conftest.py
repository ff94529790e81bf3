# tests/conftest.py
import asyncio
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

# This is the crucial fix for Windows asyncio issues with pytest.
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


class FakeTransaction:
    """
    Stands in for AsyncPostgresClient.transaction()/connection(). Yields a
    connection sentinel and records whether the block exited cleanly
    (commit) or with an exception (rollback).
    """
    def __init__(self):
        self.conn = MagicMock(name="conn")
        self.committed = 0
        self.rolled_back = 0

    async def __aenter__(self):
        return self.conn

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.committed += 1
        else:
            self.rolled_back += 1
        return False


@pytest.fixture
def fake_tx() -> FakeTransaction:
    return FakeTransaction()

@pytest.fixture
def db_client(fake_tx) -> AsyncMock:
    """An AsyncPostgresClient mock whose transaction() and connection() share fake_tx."""
    client = AsyncMock()
    client.transaction = MagicMock(return_value=fake_tx)
    client.connection = MagicMock(return_value=fake_tx)
    return client

@pytest.fixture
def notifier() -> AsyncMock:
    return AsyncMock()
