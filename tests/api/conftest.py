import httpx
import pytest
import pytest_asyncio
from unittest.mock import AsyncMock

from app.eventattend.main import app
from app.eventattend.api import dependencies
from app.eventattend.api.utilities.limiter import limiter


@pytest.fixture(autouse=True)
def no_rate_limit(monkeypatch):
    monkeypatch.setattr(limiter, "enabled", False)

@pytest.fixture
def event_service() -> AsyncMock:
    return AsyncMock()

@pytest.fixture
def summary_service() -> AsyncMock:
    return AsyncMock()

@pytest.fixture
def sync_service() -> AsyncMock:
    return AsyncMock()

@pytest.fixture
def rollover_service() -> AsyncMock:
    return AsyncMock()

@pytest_asyncio.fixture
async def client(event_service, summary_service, sync_service, rollover_service):
    """An in-process client; the lifespan does not run, so no pools are opened."""
    app.dependency_overrides[dependencies.get_event_service] = lambda: event_service
    app.dependency_overrides[dependencies.get_attendance_summary_service] = lambda: summary_service
    app.dependency_overrides[dependencies.get_attendance_sync_service] = lambda: sync_service
    app.dependency_overrides[dependencies.get_rollover_service] = lambda: rollover_service
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test/api/v1") as http_client:
        yield http_client
    app.dependency_overrides.clear()
